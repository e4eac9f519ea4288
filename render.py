import random
from html import escape
from typing import Dict, List, Sequence, Tuple

from models import Attempt, Piece

CELL_PX = 40

def _color(name: str) -> str:
    rng = random.Random(name)
    r = rng.randint(40, 200)
    g = rng.randint(40, 200)
    b = rng.randint(40, 200)
    return f"rgb({r},{g},{b})"

def render_attempt(attempt: Attempt, pieces: Sequence[Piece], Wc: int, Hc: int) -> Tuple[str, str]:
    by_id: Dict[str, Piece] = {p.id: p for p in pieces}
    palette: Dict[str, str] = {}
    for placed in attempt.placed_pieces:
        palette.setdefault(placed.piece_id, _color(placed.piece_id))

    svg_w = Wc * CELL_PX + 2
    svg_h = Hc * CELL_PX + 2

    lines: List[str] = []
    for x in range(1, Wc):
        lines.append(f'<line x1="{x*CELL_PX+1}" y1="1" x2="{x*CELL_PX+1}" y2="{svg_h-1}" stroke="#ddd"/>')
    for y in range(1, Hc):
        lines.append(f'<line x1="1" y1="{y*CELL_PX+1}" x2="{svg_w-1}" y2="{y*CELL_PX+1}" stroke="#ddd"/>')

    cells: List[str] = []
    for placed in attempt.placed_pieces:
        piece = by_id.get(placed.piece_id)
        if piece is None:
            continue
        ax, ay = placed.position
        label = escape(placed.piece_id)
        for dx, dy in piece.cells_at(placed.rotation):
            x = (ax + dx) * CELL_PX + 1
            y = (ay + dy) * CELL_PX + 1
            cells.append(
                f'<rect x="{x}" y="{y}" width="{CELL_PX}" height="{CELL_PX}" '
                f'fill="{palette[placed.piece_id]}" stroke="black" stroke-width="1">'
                f'<title>{label}</title></rect>'
            )
        cells.append(
            f'<text x="{ax*CELL_PX+5}" y="{ay*CELL_PX+15}" font-size="11" fill="black">{label}</text>'
        )

    frame = f'<rect x="1" y="1" width="{svg_w-2}" height="{svg_h-2}" fill="none" stroke="black" stroke-width="2"/>'
    svg = (
        f'<svg class="board-svg" xmlns="http://www.w3.org/2000/svg" '
        f'width="{svg_w}" height="{svg_h}" '
        f'viewBox="0 0 {svg_w} {svg_h}" preserveAspectRatio="xMinYMin meet">'
        f'{"".join(lines)}{"".join(cells)}{frame}</svg>'
    )

    legend = "".join(
        f"<li><span class='swatch' style='background:{c}'></span>{escape(n)}</li>"
        for n, c in palette.items()
    )
    return svg, legend
