import json

import pytest

from steptrack.errors import RecordNotFound
from steptrack.models import TrackerConfig, Write
from steptrack.persistence import Store, apply_writes


@pytest.fixture
def store(tmp_path):
    return Store(tmp_path / "db.json")


def test_create_assigns_sequential_ids(store):
    first = store.create("tasks", {"name": "Build"})
    second = store.create("tasks", {"name": "Ship"})
    step = store.create("steps", {"task_id": first["id"], "name": "Kitting"})
    assert (first["id"], second["id"], step["id"]) == ("T-1", "T-2", "S-1")
    assert "created_at" in first


def test_list_filters_and_orders_numerically(store):
    rows = [{"task_id": "T-1" if i % 2 else "T-2", "name": f"s{i}"} for i in range(1, 12)]
    store.create_many("steps", rows)
    ids = [r["id"] for r in store.list("steps")]
    assert ids[:3] == ["S-1", "S-2", "S-3"]
    assert ids[-2:] == ["S-10", "S-11"]
    assert all(r["task_id"] == "T-2" for r in store.list("steps", task_id="T-2"))
    assert [r["id"] for r in store.list("steps", id="S-4")] == ["S-4"]


def test_update_merges_partial_fields(store):
    store.create("tasks", {"name": "Build", "progress": 0.0})
    updated = store.update("tasks", "T-1", {"progress": 0.5, "id": "T-99"})
    assert updated["progress"] == 0.5
    assert updated["id"] == "T-1"
    assert updated["name"] == "Build"


def test_missing_records_raise(store):
    with pytest.raises(RecordNotFound) as exc:
        store.update("tasks", "T-7", {"name": "x"})
    assert str(exc.value) == "No tasks record with id T-7"
    with pytest.raises(RecordNotFound):
        store.delete("steps", "S-1")


def test_unknown_collection(store):
    with pytest.raises(ValueError):
        store.list("widgets")


def test_delete(store):
    store.create("tasks", {"name": "Build"})
    store.delete("tasks", "T-1")
    assert store.list("tasks") == []
    # numbering continues from the highest remaining id
    assert store.create("tasks", {"name": "Again"})["id"] == "T-1"


def test_config_round_trip(store):
    assert store.load_config() is None
    store.save_config(TrackerConfig(day_width=24, seed_default_steps=False))
    loaded = store.load_config()
    assert loaded.day_width == 24
    assert loaded.seed_default_steps is False
    assert json.loads(store.db_path.read_text())["config"]["pad_after_days"] == 7


def test_db_path_from_environment(tmp_path, monkeypatch):
    target = tmp_path / "elsewhere.json"
    monkeypatch.setenv("STEPTRACK_DB", str(target))
    Store().create("tasks", {"name": "Build"})
    assert target.exists()


def test_apply_writes_in_order(store):
    store.create("steps", {"task_id": "T-1", "name": "a", "complete": False})
    results = apply_writes(store, [
        Write("steps", "S-1", {"complete": True}),
        Write("steps", "S-1", {"weight": 1.0}),
    ])
    assert results[-1]["complete"] is True
    assert store.list("steps")[0]["weight"] == 1.0
