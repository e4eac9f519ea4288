import threading
import time

import pytest

from board import Board
from catalog import make_piece, unique_id
from models import Piece, PlacedPiece, PuzzleValidationError
from solver.backtracking import (
    OUTCOME_CANCELLED,
    OUTCOME_EXHAUSTED,
    OUTCOME_SOLVED,
    Solver,
    order_pieces,
)


def _block(pid="B"):
    return Piece(pid, [(0, 0), (1, 0), (0, 1), (1, 1)], rotatable=False)


def _line(pid="I", rotatable=True):
    return Piece(pid, [(0, 0), (1, 0), (2, 0), (3, 0)], rotatable=rotatable)


def _brute_force_complete(board, pieces):
    """Plain exhaustive search with no pruning."""
    ordered = order_pieces(pieces)
    work = board.copy()

    def rec(i):
        if i == len(ordered):
            return True
        piece = ordered[i]
        for rot in piece.orientations():
            cells = piece.cells_at(rot)
            for y in range(work.height):
                for x in range(work.width):
                    if not work.can_place(cells, x, y):
                        continue
                    work.place(cells, x, y, piece.id)
                    ok = rec(i + 1)
                    work.remove(cells, x, y)
                    if ok:
                        return True
        return False

    return rec(0)


def test_block_and_line_fill_four_by_four():
    events = []
    solver = Solver(Board(4, 4), [_block(), _line()], on_attempt=events.append)

    best = solver.solve()

    assert solver.outcome == OUTCOME_SOLVED
    assert best.pieces_placed == 2
    assert best.placed_pieces == [
        PlacedPiece("B", (0, 0), 0),
        PlacedPiece("I", (0, 2), 0),
    ]
    assert solver.backtracks == 0
    assert [e.attempt_id for e in events] == [1, 2]
    # delivered snapshots are not rewritten by later placements
    assert events[0].pieces_placed == 1


def test_line_never_fits_small_board():
    events = []
    solver = Solver(Board(2, 2), [_line()], on_attempt=events.append)

    best = solver.solve()

    assert solver.outcome == OUTCOME_EXHAUSTED
    assert best is not None
    assert best.pieces_placed == 0
    assert best.attempt_id == 0
    assert events == []
    assert solver.backtracks == 0


def test_unplaceable_second_piece_keeps_first_placement():
    # two cells three apart never fit inside a 3×3 board in any orientation
    gap = Piece("gap", [(0, 0), (3, 0)], rotatable=True)
    events = []
    solver = Solver(Board(3, 3), [gap, _block()], on_attempt=events.append)

    best = solver.solve()

    assert solver.outcome == OUTCOME_EXHAUSTED
    assert best.pieces_placed == 1
    assert best.placed_pieces == [PlacedPiece("B", (0, 0), 0)]
    assert best.attempt_id == 1
    # the block fits at four anchors; each one is undone once
    assert [e.placed_pieces[0].position for e in events] == [(0, 0), (1, 0), (0, 1), (1, 1)]
    assert solver.backtracks == 4


def test_pieces_sorted_by_size_with_stable_ties():
    a = Piece("a", [(0, 0), (1, 0), (2, 0)])
    b = _block("b")
    c = Piece("c", [(0, 0), (0, 1), (0, 2)])
    d = _line("d")
    assert [p.id for p in order_pieces([a, b, c, d])] == ["b", "d", "a", "c"]


def test_search_does_not_mutate_inputs():
    board = Board(4, 4)
    board.place([(0, 0)], 3, 3, "pre")
    pieces = [_block(), Piece("L", [(0, 0), (0, 1), (0, 2), (1, 2)], rotatable=True)]
    before_grid = [list(row) for row in board.grid]

    Solver(board, pieces).solve()

    assert board.grid == before_grid
    assert [p.rotation for p in pieces] == [0, 0]


def test_fixed_piece_uses_its_current_orientation():
    vertical = _line("V", rotatable=False)
    vertical.rotation = 90
    best = Solver(Board(1, 4), [vertical]).solve()
    assert best.placed_pieces == [PlacedPiece("V", (0, 0), 90)]
    assert vertical.rotation == 90


def test_rotatable_piece_tries_orientations_in_order():
    # only a vertical line fits; the 0° scan fails first, then 90° succeeds
    best = Solver(Board(1, 4), [_line()]).solve()
    assert best.placed_pieces == [PlacedPiece("I", (0, 0), 90)]


def test_pruning_skips_isolated_pockets():
    board = Board(3, 1)
    board.place([(0, 0)], 1, 0, "wall")
    domino = Piece("d", [(0, 0), (1, 0)], rotatable=True)
    events = []

    best = Solver(board, [domino], on_attempt=events.append).solve()

    assert events == []
    assert best.pieces_placed == 0


@pytest.mark.parametrize(
    "width,height,names",
    [
        (4, 2, ["L", "L"]),
        (3, 3, ["P5", "P5", "P5"]),
        (4, 4, ["Block", "Block", "Block", "Block"]),
        (4, 4, ["Block", "Line4", "L", "T"]),
        (3, 2, ["P5", "P5"]),
        (5, 1, ["Line4"]),
    ],
)
def test_pruned_search_agrees_with_exhaustive_search(width, height, names):
    taken = set()
    pieces = []
    for name in names:
        pid = unique_id(name, taken)
        taken.add(pid)
        pieces.append(make_piece(name, pid))
    board = Board(width, height)

    solver = Solver(board, pieces)
    best = solver.solve()

    expected = _brute_force_complete(board, pieces)
    assert (solver.outcome == OUTCOME_SOLVED) == expected
    if expected:
        replay = Board(width, height)
        replay.apply_attempt(best, pieces)
        assert best.pieces_placed == len(pieces)


def test_best_attempt_is_monotonic_and_final_is_maximum():
    pieces = [make_piece(n) for n in ("Block", "Line4", "L", "T")]
    seen_best = []
    placed_counts = []
    solver = None

    def on_attempt(attempt):
        placed_counts.append(attempt.pieces_placed)
        seen_best.append(solver.best_attempt.pieces_placed)

    solver = Solver(Board(4, 4), pieces, on_attempt=on_attempt)
    best = solver.solve()

    assert seen_best == sorted(seen_best)
    assert best.pieces_placed == max(placed_counts)
    ids = []
    solver2 = Solver(Board(4, 4), pieces, on_attempt=lambda a: ids.append(a.attempt_id))
    solver2.solve()
    assert ids == list(range(1, len(ids) + 1))


def test_stop_from_observer_cancels_and_unwinds_board():
    pieces = [_block(f"b{i}") for i in range(4)]
    events = []
    solver = None

    def on_attempt(attempt):
        events.append(attempt)
        solver.stop()

    solver = Solver(Board(3, 3), pieces, on_attempt=on_attempt)
    best = solver.solve()

    assert solver.outcome == OUTCOME_CANCELLED
    assert len(events) == 1
    assert best.pieces_placed == 1
    assert solver.working_board.count_empty_cells() == 9
    assert not solver.is_running


def test_solve_while_running_is_rejected():
    nested = []
    solver = None

    def on_attempt(_attempt):
        nested.append(solver.solve())

    solver = Solver(Board(2, 2), [_block()], on_attempt=on_attempt)
    best = solver.solve()

    assert nested == [None]
    assert best.pieces_placed == 1


def test_concurrent_solve_calls_admit_one_search():
    gate = threading.Event()

    def on_attempt(_attempt):
        gate.wait(5.0)

    solver = Solver(Board(2, 2), [_block()], on_attempt=on_attempt)
    barrier = threading.Barrier(4)
    results = []
    results_lock = threading.Lock()

    def call():
        barrier.wait()
        best = solver.solve()
        with results_lock:
            results.append(best)

    threads = [threading.Thread(target=call) for _ in range(4)]
    for th in threads:
        th.start()
    # the admitted search is parked in on_attempt until the others return
    deadline = time.monotonic() + 5.0
    while time.monotonic() < deadline:
        with results_lock:
            if len(results) == 3:
                break
        time.sleep(0.01)
    gate.set()
    for th in threads:
        th.join(5.0)

    assert sum(1 for r in results if r is None) == 3
    finished = [r for r in results if r is not None]
    assert len(finished) == 1
    assert finished[0].pieces_placed == 1


def test_solver_can_run_again_after_stop():
    solver = Solver(Board(2, 2), [_block()])
    solver.stop()
    best = solver.solve()
    assert solver.outcome == OUTCOME_SOLVED
    assert best.pieces_placed == 1


def test_yield_every_n_backtracks():
    calls = []
    gap = Piece("gap", [(0, 0), (3, 0)], rotatable=True)
    solver = Solver(Board(3, 3), [gap, _block()], yield_every=2, yield_fn=lambda: calls.append(1))
    solver.solve()
    assert solver.backtracks == 4
    assert len(calls) == 2


def test_progress_reports_final_counters():
    snaps = []
    gap = Piece("gap", [(0, 0), (3, 0)], rotatable=True)
    solver = Solver(Board(3, 3), [gap, _block()], on_progress=snaps.append, progress_interval=0.005)

    solver.solve()

    assert snaps
    last = snaps[-1]
    assert last.current_depth == 1
    assert last.backtracks == 4
    assert last.remaining_pieces == 1
    assert last.elapsed >= 0.0
    assert last.elapsed == pytest.approx(solver.elapsed)


def test_progress_ticker_runs_while_search_is_blocked():
    release = threading.Event()
    ticks = []

    def on_attempt(_attempt):
        release.wait(2.0)

    def on_progress(snap):
        ticks.append(snap)
        if len(ticks) >= 3:
            release.set()

    solver = Solver(Board(2, 2), [_block()], on_attempt=on_attempt,
                    on_progress=on_progress, progress_interval=0.01)
    solver.solve()

    assert release.is_set()
    assert len(ticks) >= 3


@pytest.mark.parametrize(
    "pieces",
    [
        [],
        [_block("x"), _block("x")],
        ["not a piece"],
    ],
)
def test_solver_validates_pieces(pieces):
    with pytest.raises(PuzzleValidationError):
        Solver(Board(2, 2), pieces)


def test_solver_requires_board():
    with pytest.raises(PuzzleValidationError):
        Solver((2, 2), [_block()])
