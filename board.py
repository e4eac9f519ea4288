from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence

from models import Attempt, Cell, Piece, PuzzleValidationError

_NEIGHBORS = ((1, 0), (-1, 0), (0, 1), (0, -1))


def _positive_int(value, name: str) -> int:
    if isinstance(value, bool):
        raise PuzzleValidationError(f"board {name} must be a positive integer, got {value!r}")
    try:
        i = int(value)
    except (TypeError, ValueError):
        raise PuzzleValidationError(f"board {name} must be a positive integer, got {value!r}") from None
    if i != value or i <= 0:
        raise PuzzleValidationError(f"board {name} must be a positive integer, got {value!r}")
    return i


class Board:
    """Rectangular grid where each cell is empty (None) or holds a piece id.

    Coordinates are (x, y) with y growing downwards; ``grid[y][x]``.
    """

    def __init__(self, width: int, height: int) -> None:
        self.width = _positive_int(width, "width")
        self.height = _positive_int(height, "height")
        self.grid: List[List[Optional[str]]] = [
            [None] * self.width for _ in range(self.height)
        ]

    def copy(self) -> "Board":
        other = Board(self.width, self.height)
        other.grid = [list(row) for row in self.grid]
        return other

    def cell(self, x: int, y: int) -> Optional[str]:
        return self.grid[y][x]

    def is_inside(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def can_place(self, cells: Iterable[Cell], anchor_x: int, anchor_y: int) -> bool:
        for dx, dy in cells:
            x = anchor_x + dx
            y = anchor_y + dy
            if not self.is_inside(x, y):
                return False
            if self.grid[y][x] is not None:
                return False
        return True

    def place(self, cells: Iterable[Cell], anchor_x: int, anchor_y: int, piece_id: str) -> None:
        """Write ``piece_id`` into every covered cell. Callers gate on can_place."""
        for dx, dy in cells:
            self.grid[anchor_y + dy][anchor_x + dx] = piece_id

    def remove(self, cells: Iterable[Cell], anchor_x: int, anchor_y: int) -> None:
        for dx, dy in cells:
            self.grid[anchor_y + dy][anchor_x + dx] = None

    def count_empty_cells(self) -> int:
        return sum(1 for row in self.grid for v in row if v is None)

    def empty_regions(self) -> List[int]:
        """Sizes of the 4-connected empty regions, in row-major discovery order."""
        seen = [[False] * self.width for _ in range(self.height)]
        sizes: List[int] = []
        for y0 in range(self.height):
            for x0 in range(self.width):
                if seen[y0][x0] or self.grid[y0][x0] is not None:
                    continue
                seen[y0][x0] = True
                queue = deque([(x0, y0)])
                size = 0
                while queue:
                    x, y = queue.popleft()
                    size += 1
                    for dx, dy in _NEIGHBORS:
                        nx = x + dx
                        ny = y + dy
                        if nx < 0 or ny < 0 or nx >= self.width or ny >= self.height:
                            continue
                        if seen[ny][nx] or self.grid[ny][nx] is not None:
                            continue
                        seen[ny][nx] = True
                        queue.append((nx, ny))
                sizes.append(size)
        return sizes

    def smallest_empty_region(self) -> int:
        # A full board reports width*height so the pruning test never fires on it.
        sizes = self.empty_regions()
        if not sizes:
            return self.width * self.height
        return min(sizes)

    def apply_attempt(self, attempt: Attempt, pieces: Sequence[Piece]) -> None:
        """Replay an attempt's placements; raises if one of them does not fit."""
        by_id: Dict[str, Piece] = {p.id: p for p in pieces}
        for placed in attempt.placed_pieces:
            piece = by_id.get(placed.piece_id)
            if piece is None:
                raise PuzzleValidationError(f"attempt references unknown piece {placed.piece_id!r}")
            cells = piece.cells_at(placed.rotation)
            x, y = placed.position
            if not self.can_place(cells, x, y):
                raise PuzzleValidationError(
                    f"piece {placed.piece_id!r} does not fit at ({x},{y}) rotation {placed.rotation}"
                )
            self.place(cells, x, y, placed.piece_id)

    def render_text(self) -> str:
        return "\n".join(
            " ".join("." if v is None else str(v) for v in row) for row in self.grid
        )

    def __str__(self) -> str:
        return self.render_text()
