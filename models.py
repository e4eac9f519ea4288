from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

Cell = Tuple[int, int]

ROTATIONS: Tuple[int, ...] = (0, 90, 180, 270)


class PuzzleValidationError(ValueError):
    """Raised when a board or piece description cannot be searched."""


def _coerce_cells(cells: Any, piece_id: str) -> Tuple[Cell, ...]:
    if cells is None:
        raise PuzzleValidationError(f"piece {piece_id!r}: cells are required")
    out: List[Cell] = []
    try:
        for cell in cells:
            x, y = cell
            if isinstance(x, bool) or isinstance(y, bool):
                raise TypeError("bool offset")
            if int(x) != x or int(y) != y:
                raise TypeError("non-integer offset")
            out.append((int(x), int(y)))
    except (TypeError, ValueError) as exc:
        raise PuzzleValidationError(
            f"piece {piece_id!r}: cells must be (x, y) integer pairs ({exc})"
        ) from exc
    if not out:
        raise PuzzleValidationError(f"piece {piece_id!r}: cells must not be empty")
    return tuple(out)


def rotate_cells(cells: Iterable[Cell], rotation: int) -> List[Cell]:
    """Apply a quarter-turn rotation to ``cells``: (x, y) -> (-y, x) per 90°."""
    rotation %= 360
    if rotation == 90:
        return [(-y, x) for x, y in cells]
    if rotation == 180:
        return [(-x, -y) for x, y in cells]
    if rotation == 270:
        return [(y, -x) for x, y in cells]
    return list(cells)


@dataclass
class Piece:
    id: str
    cells: Tuple[Cell, ...]
    rotatable: bool = False
    rotation: int = 0

    def __post_init__(self) -> None:
        self.id = str(self.id)
        if not self.id:
            raise PuzzleValidationError("piece id must not be empty")
        self.cells = _coerce_cells(self.cells, self.id)
        self.rotatable = bool(self.rotatable)
        if self.rotation not in ROTATIONS:
            raise PuzzleValidationError(
                f"piece {self.id!r}: rotation must be one of {ROTATIONS}, got {self.rotation!r}"
            )

    @property
    def size(self) -> int:
        return len(self.cells)

    def cells_at(self, rotation: int) -> List[Cell]:
        return rotate_cells(self.cells, rotation)

    def rotated_cells(self) -> List[Cell]:
        return self.cells_at(self.rotation)

    def rotate(self) -> None:
        if not self.rotatable:
            return
        self.rotation = (self.rotation + 90) % 360

    def orientations(self) -> Tuple[int, ...]:
        """Orientations the search explores for this piece, in order."""
        if self.rotatable:
            return ROTATIONS
        return (self.rotation,)

    def bounding_box(self) -> Tuple[int, int, int, int]:
        rotated = self.rotated_cells()
        xs = [x for x, _ in rotated]
        ys = [y for _, y in rotated]
        return min(xs), min(ys), max(xs), max(ys)

    @property
    def width(self) -> int:
        min_x, _, max_x, _ = self.bounding_box()
        return max_x - min_x + 1

    @property
    def height(self) -> int:
        _, min_y, _, max_y = self.bounding_box()
        return max_y - min_y + 1

    def copy(self) -> "Piece":
        return Piece(self.id, self.cells, self.rotatable, self.rotation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "cells": [list(c) for c in self.cells],
            "rotatable": self.rotatable,
            "rotation": self.rotation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Piece":
        if not isinstance(data, dict):
            raise PuzzleValidationError(f"piece must be an object, got {type(data).__name__}")
        return cls(
            id=data.get("id") or "",
            cells=data.get("cells"),
            rotatable=bool(data.get("rotatable", False)),
            rotation=int(data.get("rotation", 0) or 0),
        )

    def __str__(self) -> str:
        return f"Piece {self.id} (size: {self.size}, rotatable: {self.rotatable}, rotation: {self.rotation}°)"


@dataclass
class PlacedPiece:
    piece_id: str
    position: Tuple[int, int]
    rotation: int

    def copy(self) -> "PlacedPiece":
        return PlacedPiece(self.piece_id, (self.position[0], self.position[1]), self.rotation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pieceId": self.piece_id,
            "position": [self.position[0], self.position[1]],
            "rotation": self.rotation,
        }


@dataclass
class Attempt:
    attempt_id: int
    placed_pieces: List[PlacedPiece] = field(default_factory=list)

    @property
    def pieces_placed(self) -> int:
        return len(self.placed_pieces)

    def copy(self, attempt_id: Optional[int] = None) -> "Attempt":
        return Attempt(
            self.attempt_id if attempt_id is None else attempt_id,
            [p.copy() for p in self.placed_pieces],
        )

    def add_placed_piece(self, placed: PlacedPiece) -> None:
        self.placed_pieces.append(placed)

    def remove_last_placed_piece(self) -> Optional[PlacedPiece]:
        if not self.placed_pieces:
            return None
        return self.placed_pieces.pop()

    def piece_ids(self) -> List[str]:
        return [p.piece_id for p in self.placed_pieces]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attemptId": self.attempt_id,
            "placedPieces": [p.to_dict() for p in self.placed_pieces],
        }


@dataclass(frozen=True)
class ProgressSnapshot:
    current_depth: int
    backtracks: int
    remaining_pieces: int
    elapsed: float  # seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentDepth": self.current_depth,
            "backtracks": self.backtracks,
            "remainingPieces": self.remaining_pieces,
            "elapsed": round(self.elapsed, 3),
        }
