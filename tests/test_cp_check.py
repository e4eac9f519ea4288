import pytest

pytest.importorskip("ortools")

from board import Board
from catalog import make_piece, unique_id
from models import Piece, PuzzleValidationError
from solver.backtracking import OUTCOME_SOLVED, Solver
from solver.cp_check import build_options, check_feasible


def _pieces(*names):
    taken = set()
    out = []
    for name in names:
        pid = unique_id(name, taken)
        taken.add(pid)
        out.append(make_piece(name, pid))
    return out


def test_build_options_counts_anchors():
    opts = build_options(Board(3, 3), make_piece("Block"))
    assert [(x, y) for x, y, _rot, _cells in opts] == [(0, 0), (1, 0), (0, 1), (1, 1)]


def test_build_options_collapses_symmetric_orientations():
    # 0° at (0,0) and 180° at (3,0) cover the same four cells
    opts = build_options(Board(4, 1), make_piece("Line4"))
    assert len(opts) == 1
    assert opts[0][:3] == (0, 0, 0)


def test_feasible_layout_replays_cleanly():
    pieces = _pieces("Block", "Block", "Block", "Block")
    ok, attempt, reason = check_feasible(Board(4, 4), pieces, max_seconds=5)
    assert ok is True
    assert reason is None
    assert attempt.pieces_placed == 4
    replay = Board(4, 4)
    replay.apply_attempt(attempt, pieces)
    assert replay.count_empty_cells() == 0


def test_area_overflow_is_rejected_before_modelling():
    ok, attempt, reason = check_feasible(Board(3, 3), _pieces("Block", "Block", "Block"))
    assert not ok
    assert attempt is None
    assert reason == "Proven infeasible under current constraints"


def test_piece_with_no_placements_is_named():
    ok, _attempt, reason = check_feasible(Board(2, 2), _pieces("Line4"))
    assert not ok
    assert reason == "No placements remain for piece Line4"


def test_three_small_ls_cannot_tile_three_by_three():
    ok, attempt, reason = check_feasible(Board(3, 3), _pieces("P5", "P5", "P5"), max_seconds=5)
    assert not ok
    assert attempt is None
    assert reason == "Proven infeasible under current constraints"


def test_occupied_cells_are_respected():
    board = Board(3, 1)
    board.place([(0, 0)], 1, 0, "wall")
    ok, _attempt, _reason = check_feasible(board, [Piece("d", [(0, 0), (1, 0)], rotatable=True)])
    assert not ok


@pytest.mark.parametrize(
    "width,height,names",
    [
        (4, 2, ("L", "L")),
        (3, 3, ("P5", "P5", "P5")),
        (4, 4, ("Block", "Line4", "L", "T")),
        (5, 2, ("P3", "P5", "Block")),
    ],
)
def test_backtracking_agrees_with_cp_sat(width, height, names):
    pieces = _pieces(*names)
    board = Board(width, height)
    ok, _attempt, _reason = check_feasible(board, pieces, max_seconds=5)
    solver = Solver(board, pieces)
    solver.solve()
    assert (solver.outcome == OUTCOME_SOLVED) == ok


def test_check_feasible_validates_pieces():
    with pytest.raises(PuzzleValidationError):
        check_feasible(Board(2, 2), [])
    with pytest.raises(PuzzleValidationError):
        check_feasible(Board(2, 2), [Piece("a", [(0, 0)]), Piece("a", [(0, 0)])])
