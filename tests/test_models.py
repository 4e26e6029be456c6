from steptrack.models import (
    Step,
    StepStatus,
    Task,
    TaskPhase,
    TaskPriority,
    TaskStatus,
    TrackerConfig,
)


def test_task_serialization():
    t = Task(
        id="T-1",
        name="Build EVT unit",
        progress=0.25,
        status=TaskStatus.BLOCKED,
        phase=TaskPhase.EVT,
        priority=TaskPriority.HIGH,
        start_date="2026-03-02",
        due_date="2026-03-06",
        blocked_reason="Waiting on housings",
    )
    d = t.to_dict()
    assert d["status"] == "Blocked"
    assert d["phase"] == "EVT"
    assert d["priority"] == "High"

    t2 = Task.from_dict(d)
    assert t2 == t


def test_task_defaults_from_sparse_record():
    t = Task.from_dict({"id": "T-4", "name": "Sparse"})
    assert t.status == TaskStatus.NOT_STARTED
    assert t.priority == TaskPriority.MEDIUM
    assert t.phase is None
    assert t.progress == 0.0


def test_step_serialization():
    s = Step(
        id="S-2",
        task_id="T-1",
        name="Leak Test",
        parent_step_id="S-1",
        complete=True,
        sort_order=3,
        status=StepStatus.IN_PROGRESS,
        assigned_to="dana",
    )
    d = s.to_dict()
    assert d["status"] == "In Progress"
    assert d["parent_step_id"] == "S-1"

    s2 = Step.from_dict(d)
    assert s2 == s
    assert not s2.is_parent


def test_tracker_config_serialization():
    config = TrackerConfig(day_width=24, seed_default_steps=False)
    c2 = TrackerConfig.from_dict(config.to_dict())
    assert c2.day_width == 24
    assert c2.seed_default_steps is False
    assert c2.empty_lookahead_days == 21
