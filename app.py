# app.py: control surface for the placement solver; progress no-cache
from __future__ import annotations
import os
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, request, render_template, send_from_directory, jsonify, url_for

from board import Board
from catalog import catalog_json, parse_pieces
from config import CFG
from io_files import write_coords, write_layout_view_html
from models import Attempt, Piece, PuzzleValidationError
from render import render_attempt
from solver.cp_check import check_feasible
from solver.runner import SolverRunner

from progress import (
    as_json as progress_json,
    set_result_url, set_message, log_attempt_detail,
)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _resolve_output_paths(configured: str, fallback: str) -> Tuple[str, str, str]:
    name = (configured or "").strip() or fallback
    if os.path.isabs(name):
        full_path = name
    else:
        full_path = os.path.abspath(os.path.join(BASE_DIR, name))
    directory = os.path.dirname(full_path) or BASE_DIR
    filename = os.path.basename(full_path) or fallback
    return full_path, directory, filename


_COORDS_FULL_PATH, COORDS_DIR, COORDS_FILENAME = _resolve_output_paths(
    CFG.COORDS_OUT, "coords.txt"
)
_LAYOUT_FULL_PATH, LAYOUT_DIR, LAYOUT_FILENAME = _resolve_output_paths(
    CFG.LAYOUT_HTML, "layout_view.html"
)

RUNNER = SolverRunner()

app = Flask(__name__, template_folder="templates")


@app.after_request
def _no_cache_progress(resp):
    if request.path in ("/progress", "/attempts"):
        resp.headers["Cache-Control"] = "no-store, max-age=0"
        resp.headers["Pragma"] = "no-cache"
        resp.headers["Expires"] = "0"
    return resp


def _merge_like_mapping() -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        merged.update(payload)

    form_dict = request.form.to_dict(flat=False)
    for k, v in form_dict.items():
        merged.setdefault(k, v if isinstance(v, list) else [v])

    args_dict = request.args.to_dict(flat=False)
    for k, v in args_dict.items():
        merged.setdefault(k, v if isinstance(v, list) else [v])

    return merged


def _first(val: Any) -> Any:
    if isinstance(val, (list, tuple)):
        return val[0] if val else None
    return val


def _board_from_payload(p: Dict[str, Any]) -> Tuple[Optional[Board], Optional[str]]:
    """Build the board from ``width``/``height`` (or ``board: [w, h]``)."""
    w = _first(p.get("width"))
    h = _first(p.get("height"))
    dims = p.get("board")
    if (w is None or h is None) and isinstance(dims, (list, tuple)) and len(dims) == 2:
        w, h = dims
    if w is None:
        w = CFG.DEFAULT_BOARD_W
    if h is None:
        h = CFG.DEFAULT_BOARD_H
    # Form and query values arrive as text; anything else goes to Board as-is.
    try:
        if isinstance(w, str):
            w = int(w.strip())
        if isinstance(h, str):
            h = int(h.strip())
    except ValueError:
        return None, f"board size must be integers (got {w!r} × {h!r})"
    # Checked before Board allocates its grid.
    numeric = all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (w, h))
    area = w * h if numeric else 0
    if numeric and w > 0 and h > 0 and area > CFG.MAX_BOARD_CELLS:
        return None, f"board has {area} cells; the limit is {CFG.MAX_BOARD_CELLS}"
    try:
        board = Board(w, h)
    except PuzzleValidationError as exc:
        return None, str(exc)
    return board, None


def _progress_payload() -> Dict[str, Any]:
    snap = dict(progress_json())
    snap["running"] = RUNNER.is_running()
    snap["speed"] = RUNNER.speed
    snap["speed_label"] = RUNNER.speed_label()
    snap["display_delay_ms"] = int(round(RUNNER.display_delay() * 1000))
    live = RUNNER.progress()
    if live is not None:
        snap["live"] = live.to_dict()
    return snap


def _result_context(attempt: Optional[Attempt], pieces: List[Piece], board: Optional[Board]) -> Dict[str, Any]:
    W = board.width if board is not None else 0
    H = board.height if board is not None else 0
    ctx: Dict[str, Any] = {
        "ok": False,
        "outcome": RUNNER.outcome or "",
        "W": W,
        "H": H,
        "placed_count": attempt.pieces_placed if attempt is not None else 0,
        "piece_count": len(pieces),
        "svg": "",
        "legend": "",
        "attempt": attempt.to_dict() if attempt is not None else None,
        "coords_filename": COORDS_FILENAME,
        "layout_filename": LAYOUT_FILENAME,
    }
    if attempt is None or board is None:
        return ctx
    ctx["ok"] = bool(pieces) and attempt.pieces_placed == len(pieces)
    svg, legend = render_attempt(attempt, pieces, W, H)
    ctx["svg"] = svg
    ctx["legend"] = legend
    try:
        write_coords(attempt, pieces, W, H, BASE_DIR)
        write_layout_view_html(svg, legend, BASE_DIR, grid_label=f"{W} × {H}")
    except OSError as exc:
        log_attempt_detail("Output write failed", error=f"{type(exc).__name__}: {exc}")
    return ctx


@app.route("/")
def index():
    return render_template(
        "index.html",
        templates=catalog_json(),
        width=CFG.DEFAULT_BOARD_W,
        height=CFG.DEFAULT_BOARD_H,
        speed=RUNNER.speed,
    )


@app.route("/templates")
def templates_list():
    return jsonify(catalog_json())


@app.route("/solve", methods=["POST"])
def solve():
    like = _merge_like_mapping()

    board, board_err = _board_from_payload(like)
    pieces, decoded, pieces_err = parse_pieces(like)
    err = board_err or pieces_err
    if err:
        seen_keys = ", ".join(list(like.keys())[:8]) or "none"
        reason = f"Bad request: {err} (saw keys: {seen_keys})"
        return jsonify({"ok": False, "reason": reason}), 400

    speed = _first(like.get("speed"))
    if speed is not None:
        RUNNER.set_speed(speed)

    try:
        started = RUNNER.start(board, pieces)
    except PuzzleValidationError as exc:
        return jsonify({"ok": False, "reason": f"Bad request: {exc}"}), 400
    if not started:
        return jsonify({"ok": False, "reason": "A search is already running"}), 409

    set_result_url(url_for("result_latest"))
    snap = progress_json()
    return jsonify({
        "ok": True,
        "run_id": snap.get("run_id"),
        "board": [board.width, board.height],
        "pieces": [p.to_dict() for p in pieces],
        "decoded": decoded,
    }), 202


@app.route("/check", methods=["POST"])
def check():
    """Exact feasibility of a request via CP-SAT; does not touch the runner."""
    like = _merge_like_mapping()

    board, board_err = _board_from_payload(like)
    pieces, decoded, pieces_err = parse_pieces(like)
    err = board_err or pieces_err
    if err:
        return jsonify({"ok": False, "reason": f"Bad request: {err}"}), 400

    seconds = _first(like.get("max_seconds"))
    try:
        seconds = None if seconds is None else max(0.1, min(float(seconds), CFG.CP_CHECK_SECONDS))
    except (TypeError, ValueError):
        seconds = None

    try:
        ok, attempt, reason = check_feasible(board, pieces, max_seconds=seconds)
    except PuzzleValidationError as exc:
        return jsonify({"ok": False, "reason": f"Bad request: {exc}"}), 400
    log_attempt_detail(
        "Feasibility check",
        board=f"{board.width} × {board.height}",
        pieces=len(pieces),
        ok=ok,
        reason=reason,
    )
    return jsonify({
        "ok": ok,
        "attempt": attempt.to_dict() if attempt is not None else None,
        "reason": reason,
        "board": [board.width, board.height],
        "decoded": decoded,
    })


@app.route("/stop", methods=["POST"])
def stop():
    was_running = RUNNER.is_running()
    RUNNER.stop()
    if was_running:
        set_message("Stop requested")
    return jsonify({"ok": True, "was_running": was_running})


@app.route("/reset", methods=["POST"])
def reset():
    RUNNER.reset()
    return jsonify({"ok": True})


@app.route("/speed", methods=["POST"])
def speed():
    like = _merge_like_mapping()
    value = _first(like.get("speed"))
    if value is None:
        return jsonify({"ok": False, "reason": "Bad request: speed is required"}), 400
    RUNNER.set_speed(value)
    return jsonify({
        "ok": True,
        "speed": RUNNER.speed,
        "speed_label": RUNNER.speed_label(),
        "display_delay_ms": int(round(RUNNER.display_delay() * 1000)),
    })


@app.route("/progress")
def progress():
    return jsonify(_progress_payload())


@app.route("/attempts")
def attempts():
    try:
        after = int(request.args.get("after", 0))
    except ValueError:
        after = 0
    try:
        limit = int(request.args.get("limit", 100))
    except ValueError:
        limit = 100
    items = RUNNER.attempts_since(after, limit)
    return jsonify({
        "attempts": [a.to_dict() for a in items],
        "latest": RUNNER.latest_attempt_id,
        "running": RUNNER.is_running(),
    })


@app.route("/result/latest")
def result_latest():
    ctx = _result_context(RUNNER.best_attempt(), RUNNER.pieces, RUNNER.board)
    if request.args.get("format") == "json":
        return jsonify(ctx)
    return render_template("result.html", **ctx)


@app.route("/download/coords")
def download_coords():
    return send_from_directory(COORDS_DIR, COORDS_FILENAME, as_attachment=True)


@app.route("/download/html")
def download_html():
    return send_from_directory(LAYOUT_DIR, LAYOUT_FILENAME, as_attachment=True)


if __name__ == "__main__":
    app.run(debug=False)
