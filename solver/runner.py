# solver/runner.py: one search at a time on a worker thread
from __future__ import annotations

import threading
from collections import deque
from typing import Deque, List, Optional, Sequence

from board import Board
from config import CFG
from models import Attempt, Piece, ProgressSnapshot
from progress import (
    reset as progress_reset,
    start_timer,
    set_status, set_board, set_piece_count, set_speed as progress_set_speed,
    set_search_progress, set_done, log_attempt_detail,
)
from solver.backtracking import OUTCOME_SOLVED, Solver


def speed_label(speed: float) -> str:
    if speed < 0.2:
        return "Very Slow"
    if speed < 0.4:
        return "Slow"
    if speed < 0.6:
        return "Medium"
    if speed < 0.8:
        return "Fast"
    return "Very Fast"


class SolverRunner:
    """Host-side control surface around :class:`Solver`.

    ``start`` launches a search on a daemon thread and returns immediately.
    Attempt events are buffered (most recent ``buffer_size``) so a polling
    viewer can drain them in order with :meth:`attempts_since`. When
    ``publish`` is set, run status and progress samples go to
    :mod:`progress` for the HTTP host and the attempt log.
    """

    def __init__(
        self,
        *,
        speed: Optional[float] = None,
        buffer_size: Optional[int] = None,
        publish: bool = True,
    ) -> None:
        self.publish = publish
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._solver: Optional[Solver] = None
        self._board: Optional[Board] = None
        self._pieces: List[Piece] = []
        size = CFG.ATTEMPT_BUFFER if buffer_size is None else buffer_size
        self._attempts: Deque[Attempt] = deque(maxlen=max(1, int(size)))
        self._latest_attempt_id = 0
        self._latest_progress: Optional[ProgressSnapshot] = None
        self.last_error: Optional[str] = None
        self.speed = CFG.DEFAULT_SPEED
        self.set_speed(CFG.DEFAULT_SPEED if speed is None else speed)

    # ---------- control ----------

    def start(self, board: Board, pieces: Sequence[Piece]) -> bool:
        """Start a search; False when one is already running.

        Validation errors from :class:`Solver` propagate to the caller.
        """
        with self._lock:
            if self.is_running():
                return False
            solver = Solver(
                board,
                pieces,
                on_attempt=self._handle_attempt,
                on_progress=self._handle_progress,
            )
            self._solver = solver
            self._board = board
            self._pieces = list(pieces)
            self._attempts.clear()
            self._latest_attempt_id = 0
            self._latest_progress = None
            self.last_error = None

            if self.publish:
                progress_reset()
                set_board(board.width, board.height)
                set_piece_count(len(self._pieces))
                progress_set_speed(self.speed)
                set_status("Solving")
                start_timer()

            th = threading.Thread(target=self._run, args=(solver,), name="solver-run", daemon=True)
            self._thread = th
            th.start()
        return True

    def stop(self) -> None:
        solver = self._solver
        if solver is not None:
            solver.stop()

    def is_running(self) -> bool:
        th = self._thread
        return th is not None and th.is_alive()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the worker; True when no search is running afterwards."""
        th = self._thread
        if th is not None:
            th.join(timeout)
        return not self.is_running()

    def reset(self, timeout: Optional[float] = 5.0) -> None:
        self.stop()
        self.wait(timeout)
        with self._lock:
            self._solver = None
            self._board = None
            self._pieces = []
            self._attempts.clear()
            self._latest_attempt_id = 0
            self._latest_progress = None
            self.last_error = None
        if self.publish:
            progress_reset()

    # ---------- pacing hint ----------

    def set_speed(self, value: float) -> float:
        try:
            f = float(value)
        except (TypeError, ValueError):
            f = CFG.DEFAULT_SPEED
        self.speed = max(0.0, min(1.0, f))
        if self.publish:
            progress_set_speed(self.speed)
        return self.speed

    def display_delay(self) -> float:
        """Seconds a viewer should hold each attempt before showing the next."""
        return 1.0 - self.speed

    def speed_label(self) -> str:
        return speed_label(self.speed)

    # ---------- state ----------

    @property
    def board(self) -> Optional[Board]:
        return self._board

    @property
    def pieces(self) -> List[Piece]:
        return list(self._pieces)

    @property
    def outcome(self) -> Optional[str]:
        solver = self._solver
        return solver.outcome if solver is not None else None

    def best_attempt(self) -> Optional[Attempt]:
        solver = self._solver
        return solver.best_attempt if solver is not None else None

    def progress(self) -> Optional[ProgressSnapshot]:
        solver = self._solver
        if solver is None:
            return None
        return self._latest_progress or solver.progress_snapshot()

    @property
    def latest_attempt_id(self) -> int:
        return self._latest_attempt_id

    def attempts_since(self, attempt_id: int = 0, limit: Optional[int] = None) -> List[Attempt]:
        with self._lock:
            out = [a for a in self._attempts if a.attempt_id > attempt_id]
        if limit is not None and limit >= 0:
            out = out[:limit]
        return out

    # ---------- worker ----------

    def _handle_attempt(self, attempt: Attempt) -> None:
        with self._lock:
            self._attempts.append(attempt)
            self._latest_attempt_id = attempt.attempt_id

    def _handle_progress(self, snap: ProgressSnapshot) -> None:
        self._latest_progress = snap
        if self.publish:
            set_search_progress(
                current_depth=snap.current_depth,
                backtracks=snap.backtracks,
                remaining_pieces=snap.remaining_pieces,
                elapsed=snap.elapsed,
                attempt_id=self._latest_attempt_id,
            )

    def _run(self, solver: Solver) -> None:
        try:
            best = solver.solve()
        except Exception as exc:
            self.last_error = f"{type(exc).__name__}: {exc}"
            if self.publish:
                set_status("Error")
                set_done(False, message=self.last_error)
            else:
                log_attempt_detail("Run failed", error=self.last_error)
            return

        placed = best.pieces_placed if best is not None else 0
        message = f"{placed} of {len(solver.pieces)} pieces placed"
        if self.publish:
            set_done(solver.outcome == OUTCOME_SOLVED, outcome=solver.outcome, message=message)


__all__ = ["SolverRunner", "speed_label"]
