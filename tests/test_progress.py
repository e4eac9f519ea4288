import importlib
import json
import os
import time

from progress import (
    reset, set_board, set_status, set_done, set_result_url, set_search_progress,
    set_speed, snapshot, start_timer,
)


def test_set_done_no_args_defaults_to_solved():
    reset()
    set_done()
    snap = snapshot()
    assert snap["status"] == "Solved"
    assert snap["done"] is True
    assert snap["ok"] is True
    assert snap["result_url"] == ""


def test_set_done_maps_outcome_to_status():
    for outcome, status in (("solved", "Solved"), ("exhausted", "Exhausted"), ("cancelled", "Cancelled")):
        reset()
        set_status("Solving")
        set_done(outcome == "solved", outcome=outcome, message="2 of 3 pieces placed")
        snap = snapshot()
        assert snap["status"] == status
        assert snap["outcome"] == outcome
        assert snap["ok"] is (outcome == "solved")
        assert snap["message"] == "2 of 3 pieces placed"


def test_set_done_false_without_outcome_is_error():
    reset()
    set_status("Solving")
    set_done(False, message="boom")
    snap = snapshot()
    assert snap["status"] == "Error"
    assert snap["message"] == "boom"
    assert snap["done"] is True
    assert snap["ok"] is False


def test_search_progress_counters_are_recorded():
    reset()
    set_board(6, 4)
    start_timer()
    set_search_progress(current_depth=3, backtracks=120, remaining_pieces=2, elapsed=1.25, attempt_id=41)
    snap = snapshot()
    assert snap["board"] == "6 × 4"
    assert snap["current_depth"] == 3
    assert snap["backtracks"] == 120
    assert snap["remaining_pieces"] == 2
    assert snap["attempt_id"] == 41
    assert snap["elapsed"] >= 1.25


def test_elapsed_freezes_once_done():
    reset()
    start_timer()
    set_done(True, outcome="solved")
    first = snapshot()["elapsed"]
    time.sleep(0.02)
    assert snapshot()["elapsed"] == first


def test_speed_is_clamped():
    reset()
    set_speed(3)
    assert snapshot()["speed"] == 1.0
    set_speed("junk")
    assert snapshot()["speed"] == 0.5


def test_set_result_url_tracks_navigation_target():
    reset()
    set_result_url("/foo")
    snap = snapshot()
    assert snap["result_url"] == "/foo"
    assert snap["done"] is False


def test_reset_increments_run_identifier():
    reset()
    first = snapshot()["run_id"]
    reset()
    second = snapshot()["run_id"]
    assert isinstance(first, int)
    assert isinstance(second, int)
    assert second == first + 1


def test_snapshot_reads_state_written_by_other_process(tmp_path, monkeypatch):
    import progress as progress_module

    state_path = tmp_path / "state.json"
    monkeypatch.setenv("PROGRESS_STATE_FILE", str(state_path))
    progress = importlib.reload(progress_module)

    progress.reset()
    progress.set_status("Solving")
    first = progress.snapshot()
    assert first["status"] == "Solving"

    data = dict(first)
    data["status"] = "Exhausted"
    data["backtracks"] = 9
    state_path.write_text(json.dumps(data))
    os.utime(state_path, None)

    with progress.PROGRESS_LOCK:
        progress.PROGRESS["status"] = ""
        progress.PROGRESS["backtracks"] = 0
        progress._LAST_STATE_MTIME = 0.0

    time.sleep(0.01)
    updated = progress.snapshot()
    assert updated["status"] == "Exhausted"
    assert updated["backtracks"] == 9

    monkeypatch.delenv("PROGRESS_STATE_FILE", raising=False)
    importlib.reload(progress_module)
