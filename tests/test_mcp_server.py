import json

import pytest

from steptrack import mcp_server


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("STEPTRACK_DB", str(tmp_path / "db.json"))


def test_step_tools_report_progress():
    assert mcp_server.add_task("Unit A", default_steps=False) == "Added 'Unit A' as T-1"
    mcp_server.add_step("T-1", "Assembly")
    mcp_server.add_step("T-1", "Test")
    assert "Task progress 0%" in mcp_server.add_step("T-1", "Screws", parent_step_id="S-1")

    assert mcp_server.toggle_step("S-1").startswith("Error:")
    msg = mcp_server.toggle_step("S-3")
    assert "Step S-1 complete" in msg
    assert msg.endswith("Task progress 50%.")

    task = json.loads(mcp_server.get_task("T-1"))
    assert task["percent"] == 50
    assert [s["id"] for s in task["steps"]] == ["S-1", "S-2"]
    assert [i["name"] for i in task["steps"][0]["items"]] == ["Screws"]
    assert "warning" not in task


def test_range_tools():
    mcp_server.add_task("Unit B", default_steps=False)
    assert mcp_server.draw_range("T-1", "2026-03-05", "2026-03-02") == "T-1: 2026-03-02 → 2026-03-05"
    assert mcp_server.draw_range("T-1", "2026-03-05", "2026-03-06").startswith("Error:")
    assert mcp_server.drag_range("T-1", -1) == "T-1: 2026-03-01 → 2026-03-04"
    assert mcp_server.drag_range("T-1", 0, edge="left") == "T-1 unchanged."
    assert mcp_server.drag_range("T-1", 2, edge="sideways").startswith("Error:")

    timeline = json.loads(mcp_server.get_timeline(today="2026-03-01"))
    assert timeline["start"] == "2026-02-26"
    assert timeline["rows"][0]["width"] == 4 * timeline["day_width"]
    assert [t["id"] for t in json.loads(mcp_server.tasks_on_day("2026-03-03"))] == ["T-1"]


def test_missing_records_are_reported():
    assert mcp_server.get_task("T-404").startswith("Error:")
    assert mcp_server.reorder_step("S-1", "up").startswith("Error:")


def test_update_task_sets_phase_and_dates():
    mcp_server.add_task("Unit C", default_steps=False)
    assert mcp_server.update_task("T-1", phase="DVT", start_date="2026-03-02", due_date="2026-03-06") == "Updated T-1."
    task = json.loads(mcp_server.get_task("T-1"))
    assert (task["phase"], task["start_date"], task["due_date"]) == ("DVT", "2026-03-02", "2026-03-06")
    assert mcp_server.update_task("T-1", due_date="2026-03-01").startswith("Error:")
    assert mcp_server.update_task("T-1", phase="Prototype").startswith("Error:")
