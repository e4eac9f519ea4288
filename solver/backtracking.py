# solver/backtracking.py
from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional, Sequence, Tuple

from board import Board
from config import CFG
from models import Attempt, Piece, PlacedPiece, ProgressSnapshot, PuzzleValidationError

AttemptCallback = Callable[[Attempt], None]
ProgressCallback = Callable[[ProgressSnapshot], None]

OUTCOME_SOLVED = "solved"
OUTCOME_EXHAUSTED = "exhausted"
OUTCOME_CANCELLED = "cancelled"


def _yield_to_host() -> None:
    time.sleep(0)


def order_pieces(pieces: Sequence[Piece]) -> List[Piece]:
    """Largest pieces first; equal sizes keep their input order."""
    return sorted(pieces, key=lambda p: -p.size)


class Solver:
    """Depth-first placement search over a private copy of ``board``.

    Pieces are tried largest first. For every piece each orientation is
    scanned over anchors in row-major order (top-left first). Every successful
    placement is reported to ``on_attempt`` as a deep-copied :class:`Attempt`;
    a daemon ticker reports a :class:`ProgressSnapshot` to ``on_progress``
    every ``progress_interval`` seconds while the search runs.

    The search ends when every piece is placed, when the search space is
    exhausted, or when :meth:`stop` is called. In all three cases
    :meth:`solve` returns the attempt with the most pieces placed (the
    earliest one on ties).
    """

    def __init__(
        self,
        board: Board,
        pieces: Sequence[Piece],
        on_attempt: Optional[AttemptCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        *,
        yield_every: Optional[int] = None,
        progress_interval: Optional[float] = None,
        yield_fn: Optional[Callable[[], None]] = None,
    ) -> None:
        if not isinstance(board, Board):
            raise PuzzleValidationError(f"board must be a Board, got {type(board).__name__}")
        pieces = list(pieces)
        if not pieces:
            raise PuzzleValidationError("at least one piece is required")
        seen = set()
        for piece in pieces:
            if not isinstance(piece, Piece):
                raise PuzzleValidationError(f"pieces must be Piece objects, got {type(piece).__name__}")
            if piece.id in seen:
                raise PuzzleValidationError(f"duplicate piece id {piece.id!r}")
            seen.add(piece.id)

        self.board = board
        self.pieces = pieces
        self.on_attempt = on_attempt
        self.on_progress = on_progress

        if yield_every is None:
            yield_every = CFG.YIELD_EVERY
        if progress_interval is None:
            progress_interval = CFG.PROGRESS_INTERVAL_MS / 1000.0
        self.yield_every = max(1, int(yield_every))
        self.progress_interval = max(0.001, float(progress_interval))
        self._yield_fn = yield_fn or _yield_to_host

        self._running = False
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._attempt_id = 0
        self._best_attempt: Optional[Attempt] = None
        self._backtracks = 0
        self._yield_counter = 0
        self._start_time: Optional[float] = None
        self._elapsed = 0.0
        self.outcome: Optional[str] = None
        self.working_board: Optional[Board] = None

    # ---------- public surface ----------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def best_attempt(self) -> Optional[Attempt]:
        return self._best_attempt

    @property
    def backtracks(self) -> int:
        return self._backtracks

    @property
    def elapsed(self) -> float:
        if self._running and self._start_time is not None:
            return time.monotonic() - self._start_time
        return self._elapsed

    def stop(self) -> None:
        self._stop.set()

    def progress_snapshot(self) -> ProgressSnapshot:
        best = self._best_attempt
        depth = best.pieces_placed if best is not None else 0
        return ProgressSnapshot(
            current_depth=depth,
            backtracks=self._backtracks,
            remaining_pieces=len(self.pieces) - depth,
            elapsed=self.elapsed,
        )

    def solve(self) -> Optional[Attempt]:
        with self._run_lock:
            if self._running:
                return None
            self._running = True

        self._stop.clear()
        self._attempt_id = 0
        self._best_attempt = None
        self._backtracks = 0
        self._yield_counter = 0
        self.outcome = None
        self._start_time = time.monotonic()

        ordered = order_pieces(self.pieces)
        self.working_board = self.board.copy()
        current = Attempt(self._next_attempt_id())
        self._update_best_attempt(current)

        ticker = self._start_progress_reporting()
        solved = False
        try:
            solved = self._solve_recursive(self.working_board, ordered, 0, current)
        finally:
            self._stop_progress_reporting(ticker)
            self._elapsed = time.monotonic() - self._start_time
            self._running = False

        if solved:
            self.outcome = OUTCOME_SOLVED
        elif self._stop.is_set():
            self.outcome = OUTCOME_CANCELLED
        else:
            self.outcome = OUTCOME_EXHAUSTED
        self._emit_progress()
        return self._best_attempt

    # ---------- search ----------

    def _next_attempt_id(self) -> int:
        value = self._attempt_id
        self._attempt_id += 1
        return value

    def _solve_recursive(
        self,
        board: Board,
        pieces: List[Piece],
        piece_index: int,
        current: Attempt,
    ) -> bool:
        if self._stop.is_set():
            return False

        if piece_index >= len(pieces):
            self._update_best_attempt(current)
            return True

        # A region smaller than every remaining piece can never be filled.
        placed_ids = set(current.piece_ids())
        smallest_remaining = min(p.size for p in pieces if p.id not in placed_ids)
        if board.smallest_empty_region() < smallest_remaining:
            return False

        piece = pieces[piece_index]
        for rotation in piece.orientations():
            cells = piece.cells_at(rotation)
            for y in range(board.height):
                for x in range(board.width):
                    if self._stop.is_set():
                        return False
                    if not board.can_place(cells, x, y):
                        continue

                    board.place(cells, x, y, piece.id)
                    current.add_placed_piece(PlacedPiece(piece.id, (x, y), rotation))

                    snapshot = current.copy(attempt_id=self._next_attempt_id())
                    if self.on_attempt is not None:
                        self.on_attempt(snapshot)
                    self._update_best_attempt(snapshot)

                    if self._solve_recursive(board, pieces, piece_index + 1, current):
                        return True

                    board.remove(cells, x, y)
                    current.remove_last_placed_piece()
                    if self._stop.is_set():
                        return False

                    self._backtracks += 1
                    self._yield_counter += 1
                    if self._yield_counter >= self.yield_every:
                        self._yield_counter = 0
                        self._yield_fn()
        return False

    def _update_best_attempt(self, attempt: Attempt) -> None:
        best = self._best_attempt
        if best is None or attempt.pieces_placed > best.pieces_placed:
            self._best_attempt = attempt.copy()

    # ---------- progress ----------

    def _emit_progress(self) -> None:
        if self.on_progress is None:
            return
        self.on_progress(self.progress_snapshot())

    def _start_progress_reporting(self) -> Optional[Tuple[threading.Event, threading.Thread]]:
        if self.on_progress is None:
            return None
        stop_evt = threading.Event()

        def _ticker() -> None:
            while not stop_evt.wait(self.progress_interval):
                if not self._running:
                    break
                self._emit_progress()

        th = threading.Thread(target=_ticker, name="solver-progress", daemon=True)
        th.start()
        return stop_evt, th

    def _stop_progress_reporting(
        self, ticker: Optional[Tuple[threading.Event, threading.Thread]]
    ) -> None:
        if ticker is None:
            return
        stop_evt, th = ticker
        stop_evt.set()
        th.join(timeout=max(1.0, 2 * self.progress_interval))


__all__ = [
    "Solver",
    "order_pieces",
    "OUTCOME_SOLVED",
    "OUTCOME_EXHAUSTED",
    "OUTCOME_CANCELLED",
]
