"""Helpers for writing solver outputs to disk."""

from __future__ import annotations

import os
from html import escape
from typing import Optional, Sequence

from config import CFG
from models import Attempt, Piece


def _resolve_output_path(base_dir: str, configured_name: str, fallback: str) -> str:
    """Return the absolute path where an output artifact should be written."""

    name = (configured_name or "").strip() or fallback
    if os.path.isabs(name):
        return name
    return os.path.join(base_dir, name)


def write_coords(attempt: Optional[Attempt], pieces: Sequence[Piece], Wc: int, Hc: int, base_dir: str) -> str:
    """Write the best attempt's placements to the configured text file."""

    path = _resolve_output_path(base_dir, CFG.COORDS_OUT, "coords.txt")
    os.makedirs(os.path.dirname(path), exist_ok=True)

    by_id = {p.id: p for p in pieces}
    with open(path, "w", encoding="utf-8") as f:
        f.write(f"board {Wc} × {Hc}\n")
        if attempt is None or not attempt.placed_pieces:
            f.write("No placements\n")
            return path
        f.write(f"placed {attempt.pieces_placed} of {len(pieces)} pieces\n")
        for placed in attempt.placed_pieces:
            x, y = placed.position
            piece = by_id.get(placed.piece_id)
            cells = ""
            if piece is not None:
                cells = " ".join(f"({x + dx},{y + dy})" for dx, dy in piece.cells_at(placed.rotation))
            f.write(f"{placed.piece_id} @ ({x},{y}) rot {placed.rotation}° cells {cells}\n")
    return path


def write_layout_view_html(svg: str, legend_html: str, base_dir: str, grid_label: Optional[str] = None) -> str:
    """Write the rendered SVG/legend preview to the configured HTML file."""

    path = _resolve_output_path(base_dir, CFG.LAYOUT_HTML, "layout_view.html")
    os.makedirs(os.path.dirname(path), exist_ok=True)

    heading = "Layout View"
    if grid_label:
        heading = f"Layout View: {escape(grid_label)}"

    with open(path, "w", encoding="utf-8") as vf:
        vf.write(
            f"""<!doctype html>
<html><head><meta charset='utf-8'><title>Layout View</title>
<style>.swatch{{display:inline-block;width:12px;height:12px;margin-right:6px}}</style></head>
<body>
<h1>{heading}</h1>
<section>{svg}</section>
<section><h3>Legend</h3><ul>{legend_html}</ul></section>
</body></html>"""
        )
    return path


__all__ = ["write_coords", "write_layout_view_html"]
