# catalog.py: piece templates and tolerant request parsing
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from config import CFG
from models import Cell, Piece, PuzzleValidationError

Template = Tuple[Tuple[Cell, ...], bool]  # (cells, rotatable)

TEMPLATES: Dict[str, Template] = {
    # basic shapes
    "Line4": (((0, 0), (1, 0), (2, 0), (3, 0)), True),
    "L": (((0, 0), (0, 1), (0, 2), (1, 2)), True),
    "Block": (((0, 0), (1, 0), (0, 1), (1, 1)), False),
    "T": (((0, 0), (1, 0), (2, 0), (1, 1)), True),
    # numbered set
    "P1": (((0, 0), (0, 1), (1, 0), (1, 1)), False),                 # 2×2 square
    "P2": (((0, 0), (1, 0), (2, 0), (3, 0)), True),                  # 1×4 line
    "P3": (((0, 0), (1, 0), (2, 0), (0, 1), (0, 2)), True),          # big L
    "P4": (((0, 0), (1, 0), (1, 1), (2, 1), (2, 2)), True),          # W / stairs
    "P5": (((0, 0), (1, 0), (1, 1)), True),                          # small L
    "P6": (((1, 0), (0, 1), (1, 1), (2, 1), (1, 2)), True),          # plus
    "P7": (((0, 0), (1, 0), (0, 1), (0, 2), (1, 2)), True),          # U
    "P8": (((1, 0), (2, 0), (3, 0), (0, 1), (1, 1)), True),          # N
    "P9": (((0, 0), (1, 0), (0, 1), (1, 1), (2, 1)), True),          # P
    "P10": (((0, 0), (0, 1), (1, 1), (2, 1), (3, 1)), True),         # long L
    "P11": (((0, 0), (0, 1), (1, 1), (2, 1)), True),                 # J
    "P12": (((0, 0), (1, 0), (2, 0), (3, 0), (1, 1)), True),         # Y
}

_LOOKUP = {name.lower(): name for name in TEMPLATES}

_COUNT_PREFIXES = ("q_", "qty_", "quantity_", "count_", "cnt_", "piece_")


def resolve_template(name: Any) -> Optional[str]:
    if name is None:
        return None
    key = str(name).strip().lower()
    for pre in _COUNT_PREFIXES:
        if key.startswith(pre):
            key = key[len(pre):]
            break
    return _LOOKUP.get(key)


def unique_id(base: str, taken: Set[str], next_suffix: Optional[Dict[str, int]] = None) -> str:
    """``base`` when free, else ``base1``, ``base2``, ...

    ``next_suffix`` remembers where the scan for each base left off, so a
    run of repeated ids stays linear.
    """
    if base not in taken:
        return base
    counter = 1 if next_suffix is None else next_suffix.get(base, 1)
    candidate = f"{base}{counter}"
    while candidate in taken:
        counter += 1
        candidate = f"{base}{counter}"
    if next_suffix is not None:
        next_suffix[base] = counter + 1
    return candidate


def make_piece(template: str, piece_id: Optional[str] = None, *, rotatable: Optional[bool] = None) -> Piece:
    name = resolve_template(template)
    if name is None:
        raise PuzzleValidationError(f"unknown piece template {template!r}")
    cells, default_rotatable = TEMPLATES[name]
    return Piece(
        id=piece_id or name,
        cells=cells,
        rotatable=default_rotatable if rotatable is None else bool(rotatable),
    )


def catalog_json() -> List[Dict[str, Any]]:
    out = []
    for name, (cells, rotatable) in TEMPLATES.items():
        out.append({
            "name": name,
            "cells": [list(c) for c in cells],
            "rotatable": rotatable,
            "size": len(cells),
        })
    return out


def _to_int(x: Any) -> Optional[int]:
    try:
        return int(float(x))
    except (TypeError, ValueError, OverflowError):
        return None


def _first(val: Any) -> Any:
    if isinstance(val, (list, tuple)):
        return val[0] if val else None
    return val


def _to_bool(x: Any) -> Optional[bool]:
    x = _first(x)
    if x is None or x == "":
        return None
    if isinstance(x, bool):
        return x
    return str(x).strip().lower() in ("1", "true", "yes", "on")


def _iter_items(form_like: Any) -> Iterable[Tuple[Any, Any]]:
    if isinstance(form_like, dict) or hasattr(form_like, "items"):
        for k, v in form_like.items():
            yield k, v


def _add(
    pieces: List[Piece],
    decoded: Dict[str, int],
    taken: Set[str],
    suffixes: Dict[str, int],
    *,
    base_id: str,
    cells: Any,
    rotatable: bool,
    label: str,
) -> None:
    pid = unique_id(base_id, taken, suffixes)
    piece = Piece(id=pid, cells=cells, rotatable=rotatable)
    taken.add(pid)
    pieces.append(piece)
    decoded[label] = decoded.get(label, 0) + 1


def parse_pieces(form_like: Any) -> Tuple[List[Piece], List[Tuple[str, int]], Optional[str]]:
    """
    Return (pieces, decoded_items, error_message_or_None).

    Accepts either an explicit list::

        {"pieces": [{"template": "P3", "count": 2},
                    {"id": "zig", "cells": [[0, 0], [1, 0], [1, 1]], "rotatable": true}]}

    or per-template count keys (``{"P1": 2, "qty_L": "1"}``), the way the
    selection form posts them. Requests asking for more than
    ``CFG.MAX_PIECES`` pieces in total are refused before any piece is built.
    """
    pieces: List[Piece] = []
    decoded: Dict[str, int] = {}
    taken: Set[str] = set()
    suffixes: Dict[str, int] = {}
    limit = int(CFG.MAX_PIECES)
    too_many = f"too many pieces requested; the limit is {limit}"

    if not form_like:
        return [], [], "nothing parsed from request"

    try:
        # --- Shape 1: explicit pieces list ----------------------------------
        items = form_like.get("pieces") if isinstance(form_like, dict) else None
        if isinstance(items, list):
            requested = 0
            for idx, item in enumerate(items):
                if isinstance(item, str):
                    item = {"template": item}
                if not isinstance(item, dict):
                    return [], [], f"piece #{idx + 1} must be an object"
                count = _to_int(item.get("count", 1))
                if count is None or count <= 0:
                    continue
                requested += count
                if requested > limit:
                    return [], [], too_many
                rot = _to_bool(item.get("rotatable"))
                tmpl = item.get("template")
                if tmpl is not None:
                    name = resolve_template(tmpl)
                    if name is None:
                        return [], [], f"unknown piece template {tmpl!r}"
                    cells, default_rot = TEMPLATES[name]
                    for _ in range(count):
                        _add(pieces, decoded, taken, suffixes,
                             base_id=str(item.get("id") or name),
                             cells=cells,
                             rotatable=default_rot if rot is None else rot,
                             label=name)
                else:
                    base = str(item.get("id") or f"piece{idx + 1}")
                    for _ in range(count):
                        _add(pieces, decoded, taken, suffixes,
                             base_id=base,
                             cells=item.get("cells"),
                             rotatable=bool(rot),
                             label=base)
            if pieces:
                return pieces, sorted(decoded.items()), None
            return [], [], "no pieces with a positive count"

        # --- Shape 2: per-template count keys -------------------------------
        requested = 0
        for k, v in _iter_items(form_like):
            name = resolve_template(k)
            if name is None:
                continue
            n = _to_int(_first(v))
            if not n or n <= 0:
                continue
            requested += n
            if requested > limit:
                return [], [], too_many
            cells, default_rot = TEMPLATES[name]
            for _ in range(n):
                _add(pieces, decoded, taken, suffixes,
                     base_id=name, cells=cells, rotatable=default_rot, label=name)
    except PuzzleValidationError as exc:
        return [], [], str(exc)

    if pieces:
        return pieces, sorted(decoded.items()), None
    return [], [], "nothing parsed from request"


__all__ = [
    "TEMPLATES",
    "catalog_json",
    "make_piece",
    "parse_pieces",
    "resolve_template",
    "unique_id",
]
