from __future__ import annotations

import json
import logging
import os
import time
import threading
from pathlib import Path
from typing import Any, Dict, Optional

# ------------------------------
# Thread-safe global progress state
# ------------------------------

PROGRESS_LOCK = threading.Lock()


def _state_file_path() -> Path:
    configured = os.environ.get("PROGRESS_STATE_FILE")
    if configured:
        return Path(configured)
    return Path(__file__).resolve().parent / "logs" / "progress_state.json"


STATE_FILE = _state_file_path()
STATE_FILE_TMP = STATE_FILE.with_name(STATE_FILE.name + ".tmp")
_LAST_STATE_MTIME: float = 0.0


def _init_logger() -> logging.Logger:
    logger = logging.getLogger("solver.attempt_log")
    if logger.handlers:
        return logger

    log_path = Path(__file__).resolve().parent / "logs" / "solver_attempts.log"
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    except OSError:
        # Progress tracking keeps working without a log file.
        logger.handlers.clear()
    return logger


ATTEMPT_LOGGER = _init_logger()


def _log_enabled() -> bool:
    return bool(ATTEMPT_LOGGER.handlers)


def _fmt_seconds(seconds: Optional[float]) -> Optional[str]:
    if seconds is None:
        return None
    try:
        return f"{float(seconds):.2f}s"
    except (TypeError, ValueError):
        return None


def _emit_log(event: str, **fields: Any) -> None:
    if not _log_enabled():
        return
    extras = [
        f"{key}={value}"
        for key, value in fields.items()
        if value is not None and value != ""
    ]
    if extras:
        ATTEMPT_LOGGER.info("%s | %s", event, " ".join(extras))
    else:
        ATTEMPT_LOGGER.info("%s", event)


def log_attempt_detail(event: str, **fields: Any) -> None:
    """Write a free-form line to the attempt log."""
    _emit_log(event, **fields)


LOG_STATE: Dict[str, Any] = {
    "run_start": None,
    "best_placed": 0,
}


def _persist_locked() -> None:
    global _LAST_STATE_MTIME
    try:
        STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
        with STATE_FILE_TMP.open("w", encoding="utf-8") as fh:
            json.dump(PROGRESS, fh, ensure_ascii=False, separators=(",", ":"))
        STATE_FILE_TMP.replace(STATE_FILE)
        try:
            _LAST_STATE_MTIME = STATE_FILE.stat().st_mtime
        except OSError:
            _LAST_STATE_MTIME = time.time()
    except (OSError, TypeError, ValueError):
        # Persistence is advisory; a failed write leaves the in-memory state.
        pass


def _load_persisted_locked(force: bool = False) -> None:
    global _LAST_STATE_MTIME
    try:
        stat = STATE_FILE.stat()
    except OSError:
        return
    if not force and stat.st_mtime <= _LAST_STATE_MTIME:
        return
    try:
        with STATE_FILE.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError):
        return
    if not isinstance(data, dict):
        return
    for key in PROGRESS.keys():
        if key in data:
            PROGRESS[key] = data[key]
    _LAST_STATE_MTIME = stat.st_mtime


# Single source of truth for the viewer
PROGRESS: Dict[str, Any] = {
    "status": "Idle",          # Idle | Solving | Solved | Exhausted | Cancelled | Error
    "board": "",               # e.g. "8 × 8"
    "piece_count": 0,          # pieces in the current run
    "current_depth": 0,        # best pieces placed so far
    "backtracks": 0,
    "remaining_pieces": 0,
    "attempt_id": 0,           # latest attempt id seen by the host
    "elapsed_start": None,     # t0 (float) when solving started
    "elapsed": 0.0,            # seconds snapshot
    "speed": 0.5,              # viewer pacing hint 0..1
    "message": "",             # optional note
    "outcome": "",             # solved | exhausted | cancelled
    "done": False,             # run completed
    "ok": None,                # full solution found, if known
    "result_url": "",          # optional navigation target
    "run_id": 0,               # monotonically increasing identifier
}

# ------------------------------
# Helpers
# ------------------------------

def _now() -> float:
    return time.time()

def _fmt_elapsed(seconds: float) -> str:
    seconds = max(0.0, float(seconds))
    if seconds < 60:
        return f"{seconds:.1f}s"
    m, s = divmod(int(seconds), 60)
    if m < 60:
        return f"{m}m {s}s"
    h, m = divmod(m, 60)
    return f"{h}h {m}m"

def _to_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0

def reset() -> None:
    with PROGRESS_LOCK:
        try:
            current_run_id = int(PROGRESS.get("run_id", 0))
        except (TypeError, ValueError):
            current_run_id = 0
        PROGRESS.update({
            "status": "Idle",
            "board": "",
            "piece_count": 0,
            "current_depth": 0,
            "backtracks": 0,
            "remaining_pieces": 0,
            "attempt_id": 0,
            "elapsed_start": None,
            "elapsed": 0.0,
            "message": "",
            "outcome": "",
            "done": False,
            "ok": None,
            "result_url": "",
            "run_id": current_run_id + 1,
        })
        LOG_STATE.update({"run_start": None, "best_placed": 0})
        _emit_log("Progress reset")
        _persist_locked()

def start_timer() -> None:
    with PROGRESS_LOCK:
        now = _now()
        PROGRESS["elapsed_start"] = now
        PROGRESS["elapsed"] = 0.0
        LOG_STATE["run_start"] = now
        _emit_log(
            "Run started",
            run_id=PROGRESS.get("run_id"),
            board=PROGRESS.get("board"),
            pieces=PROGRESS.get("piece_count"),
        )
        _persist_locked()

def _touch_elapsed_locked() -> None:
    t0 = PROGRESS.get("elapsed_start")
    if t0 is not None and not PROGRESS.get("done"):
        PROGRESS["elapsed"] = _now() - float(t0)

# ------------------------------
# Setters (tolerant)
# ------------------------------

def set_status(v: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["status"] = str(v)
        _persist_locked()

def set_board(width: Any, height: Any) -> None:
    try:
        s = f"{int(width)} × {int(height)}"
    except (TypeError, ValueError):
        s = ""
    with PROGRESS_LOCK:
        PROGRESS["board"] = s
        _persist_locked()

def set_piece_count(n: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["piece_count"] = _to_int(n)
        _persist_locked()

def set_speed(speed: Any) -> None:
    try:
        f = float(speed)
    except (TypeError, ValueError):
        f = 0.5
    with PROGRESS_LOCK:
        PROGRESS["speed"] = max(0.0, min(1.0, f))
        _persist_locked()

def set_message(msg: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["message"] = "" if msg is None else str(msg)
        _persist_locked()

def set_result_url(url: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["result_url"] = "" if url is None else str(url)
        _persist_locked()

def set_search_progress(
    *,
    current_depth: Any,
    backtracks: Any,
    remaining_pieces: Any,
    elapsed: Any = None,
    attempt_id: Any = None,
) -> None:
    """Record one progress sample; logs when the best depth improves."""
    depth = _to_int(current_depth)
    with PROGRESS_LOCK:
        PROGRESS["current_depth"] = depth
        PROGRESS["backtracks"] = _to_int(backtracks)
        PROGRESS["remaining_pieces"] = _to_int(remaining_pieces)
        if attempt_id is not None:
            PROGRESS["attempt_id"] = _to_int(attempt_id)
        if elapsed is not None:
            try:
                PROGRESS["elapsed"] = max(0.0, float(elapsed))
            except (TypeError, ValueError):
                _touch_elapsed_locked()
        else:
            _touch_elapsed_locked()
        if depth > int(LOG_STATE.get("best_placed") or 0):
            LOG_STATE["best_placed"] = depth
            _emit_log(
                "Best progress",
                pieces_placed=depth,
                backtracks=PROGRESS["backtracks"],
                elapsed=_fmt_seconds(PROGRESS["elapsed"]),
            )
        _persist_locked()

def set_done(ok: Any = None, *, outcome: Any = None, message: Any = None) -> None:
    """Mark the run complete.

    ``ok`` is True when every piece was placed. ``outcome`` is the solver's
    terminal reason (solved / exhausted / cancelled) and picks the final
    status; without it the status follows ``ok``.
    """

    ok_flag: Optional[bool] = None if ok is None else bool(ok)
    outcome_str = "" if outcome is None else str(outcome)

    if outcome_str == "solved":
        final_status = "Solved"
    elif outcome_str == "exhausted":
        final_status = "Exhausted"
    elif outcome_str == "cancelled":
        final_status = "Cancelled"
    elif ok_flag is None:
        final_status = None
    else:
        final_status = "Solved" if ok_flag else "Error"

    with PROGRESS_LOCK:
        _touch_elapsed_locked()
        now = _now()
        if final_status is not None:
            PROGRESS["status"] = final_status
        elif PROGRESS.get("status") in ("", "Idle", "Solving", None):
            PROGRESS["status"] = "Solved"
            ok_flag = True if ok_flag is None else ok_flag
        if message is not None:
            PROGRESS["message"] = str(message)
        PROGRESS["outcome"] = outcome_str
        PROGRESS["done"] = True
        if ok_flag is not None:
            PROGRESS["ok"] = ok_flag
        run_start = LOG_STATE.get("run_start")
        if isinstance(run_start, (int, float)):
            total = max(0.0, now - float(run_start))
        else:
            total = None
        LOG_STATE["run_start"] = None
        _emit_log(
            "Run finished",
            status=PROGRESS.get("status"),
            ok=PROGRESS.get("ok"),
            outcome=outcome_str,
            duration=_fmt_seconds(total),
            pieces_placed=PROGRESS.get("current_depth"),
            backtracks=PROGRESS.get("backtracks"),
            message=PROGRESS.get("message"),
        )
        _persist_locked()

# ------------------------------
# Snapshots for the viewer
# ------------------------------

def snapshot() -> Dict[str, Any]:
    with PROGRESS_LOCK:
        _load_persisted_locked()
        _touch_elapsed_locked()
        return {
            "status": PROGRESS["status"],
            "board": PROGRESS["board"],
            "piece_count": PROGRESS["piece_count"],
            "current_depth": PROGRESS["current_depth"],
            "backtracks": PROGRESS["backtracks"],
            "remaining_pieces": PROGRESS["remaining_pieces"],
            "attempt_id": PROGRESS["attempt_id"],
            "elapsed": PROGRESS["elapsed"],
            "elapsed_str": _fmt_elapsed(PROGRESS["elapsed"]),
            "speed": PROGRESS["speed"],
            "message": PROGRESS["message"],
            "outcome": PROGRESS["outcome"],
            "done": PROGRESS["done"],
            "ok": PROGRESS["ok"],
            "result_url": PROGRESS["result_url"],
            "run_id": PROGRESS["run_id"],
        }

def as_json() -> Dict[str, Any]:
    return snapshot()


with PROGRESS_LOCK:
    _load_persisted_locked(force=True)
