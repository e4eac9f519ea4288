# solver/cp_check.py: exact placement feasibility via CP-SAT
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from ortools.sat.python import cp_model as _cp

from board import Board
from config import CFG
from models import Attempt, Piece, PlacedPiece, PuzzleValidationError
from solver.backtracking import order_pieces

# (anchor_x, anchor_y, rotation, covered cells)
Option = Tuple[int, int, int, Tuple[Tuple[int, int], ...]]


def build_options(board: Board, piece: Piece) -> List[Option]:
    """Every distinct way ``piece`` fits on the empty cells of ``board``.

    Orientations follow the search order; two orientations that cover the
    same cells from the same anchor collapse into the first one.
    """
    options: List[Option] = []
    seen = set()
    for rotation in piece.orientations():
        cells = piece.cells_at(rotation)
        for y in range(board.height):
            for x in range(board.width):
                if not board.can_place(cells, x, y):
                    continue
                covered = tuple(sorted((x + dx, y + dy) for dx, dy in cells))
                if covered in seen:
                    continue
                seen.add(covered)
                options.append((x, y, rotation, covered))
    return options


def check_feasible(
    board: Board,
    pieces: Sequence[Piece],
    max_seconds: Optional[float] = None,
) -> Tuple[bool, Optional[Attempt], Optional[str]]:
    """Decide whether every piece can be placed at once.

    Returns ``(ok, attempt, reason)``. ``attempt`` lists one placement per
    piece in search order when ``ok``; ``reason`` explains a failure.
    """
    pieces = order_pieces(pieces)
    if not pieces:
        raise PuzzleValidationError("at least one piece is required")
    if len({p.id for p in pieces}) != len(pieces):
        raise PuzzleValidationError("piece ids must be unique")

    free_cells = board.count_empty_cells()
    if sum(p.size for p in pieces) > free_cells:
        return False, None, "Proven infeasible under current constraints"

    options = [build_options(board, piece) for piece in pieces]
    for piece, opts in zip(pieces, options):
        if not opts:
            return False, None, f"No placements remain for piece {piece.id}"

    m = _cp.CpModel()
    p = [[m.NewBoolVar(f"p_{i}_{k}") for k in range(len(options[i]))] for i in range(len(pieces))]

    # exactly one placement per piece
    for i in range(len(pieces)):
        m.Add(sum(p[i]) == 1)

    # no two pieces share a cell
    cell_to_vars: Dict[Tuple[int, int], List[_cp.IntVar]] = defaultdict(list)
    for i, opts in enumerate(options):
        for k, (_x, _y, _rot, covered) in enumerate(opts):
            for cell in covered:
                cell_to_vars[cell].append(p[i][k])
    for vars_here in cell_to_vars.values():
        if len(vars_here) > 1:
            m.AddAtMostOne(vars_here)

    # identical shapes are interchangeable; order their choices
    by_shape: Dict[tuple, List[int]] = {}
    for i, piece in enumerate(pieces):
        key = (piece.cells, piece.rotatable, piece.rotation)
        by_shape.setdefault(key, []).append(i)
    for idxs in by_shape.values():
        if len(idxs) < 2:
            continue
        place_idx = []
        for i in idxs:
            idx = m.NewIntVar(0, max(0, len(options[i]) - 1), f"idx_{i}")
            m.Add(idx == sum(k * p[i][k] for k in range(len(options[i]))))
            place_idx.append(idx)
        for a, b in zip(place_idx, place_idx[1:]):
            m.Add(a < b)

    seconds = CFG.CP_CHECK_SECONDS if max_seconds is None else max_seconds
    solver = _cp.CpSolver()
    solver.parameters.max_time_in_seconds = float(seconds)
    solver.parameters.num_workers = int(getattr(CFG, "CP_WORKERS", 1))
    solver.parameters.random_seed = int(getattr(CFG, "RANDOM_SEED", 0))
    solver.parameters.log_search_progress = False

    res = solver.Solve(m)

    if res in (_cp.OPTIMAL, _cp.FEASIBLE):
        attempt = Attempt(0)
        for i, piece in enumerate(pieces):
            for k, (x, y, rot, _covered) in enumerate(options[i]):
                if solver.BooleanValue(p[i][k]):
                    attempt.add_placed_piece(PlacedPiece(piece.id, (x, y), rot))
                    break
        return True, attempt, None

    if res == _cp.INFEASIBLE:
        return False, None, "Proven infeasible under current constraints"
    if res == _cp.MODEL_INVALID:
        return False, None, "Model invalid (configuration error)"
    return False, None, "Stopped before solution (timebox)"


__all__ = ["build_options", "check_feasible"]
