from dataclasses import replace

import pytest

from steptrack.models import Step, Write
from steptrack.progress import (
    compute_progress,
    effective_complete,
    new_step_record,
    plan_child_added,
    plan_delete_step,
    plan_parent_added,
    progress_percent,
    progress_report,
    rebalance,
    toggle_child,
    toggle_parent,
    weights_drift,
)
from steptrack.steptree import build_step_tree


def _step(sid, parent=None, weight=0.0, complete=False, order=0):
    return Step(
        id=sid, task_id="T-1", name=sid, parent_step_id=parent,
        weight=weight, complete=complete, sort_order=order,
    )


@pytest.mark.parametrize("n", range(1, 13))
def test_rebalance_weights_sum_to_one(n):
    parents = [_step(f"S-{i}", order=i) for i in range(n)]
    writes = rebalance(parents)
    assert len(writes) == n
    total = sum(w.fields["weight"] for w in writes)
    assert abs(total - 1.0) <= 1e-6 + 1e-12


def test_rebalance_three_parents():
    writes = rebalance([_step("S-1"), _step("S-2"), _step("S-3")])
    assert [w.fields["weight"] for w in writes] == [0.333333, 0.333333, 0.333334]
    assert all(w.collection == "steps" for w in writes)


def test_rebalance_no_parents():
    assert rebalance([]) == []


def test_empty_parent_progress_is_zero():
    assert compute_progress([], {}) == 0


def test_effective_complete_uses_children_when_present():
    parent = _step("S-1", complete=True)
    assert effective_complete(parent, []) is True
    assert effective_complete(parent, [_step("S-2", "S-1", complete=False)]) is False
    assert effective_complete(_step("S-1"), [_step("S-2", "S-1", complete=True)]) is True


def test_compute_progress_ignores_stale_parent_flag():
    parent = _step("S-1", weight=0.5, complete=True)
    other = _step("S-2", weight=0.5, complete=True)
    children = {"S-1": [_step("S-3", "S-1", complete=False)]}
    assert compute_progress([parent, other], children) == 0.5


def test_toggle_parent_with_children_is_noop():
    parent = _step("S-1", weight=1.0)
    assert toggle_parent(parent, [_step("S-2", "S-1")]) is None
    assert parent.complete is False


def test_toggle_parent_without_children():
    result = toggle_parent(_step("S-1", complete=False), [])
    assert result.complete is True
    assert result.write == Write("steps", "S-1", {"complete": True})


def test_parent_auto_completes_from_children():
    p = _step("S-1", weight=0.5)
    q = _step("S-2", weight=0.5, order=1)
    c1 = _step("S-3", "S-1")
    c2 = _step("S-4", "S-1", order=1)
    tree = build_step_tree([p, q, c1, c2])

    first = toggle_child(c1, tree.children_of("S-1"), p, tree)
    assert first.child_complete is True
    assert first.parent_complete is False
    assert first.parent_changed is False
    assert first.task_progress == 0

    c1 = replace(c1, complete=True)
    tree = build_step_tree([p, q, c1, c2])
    second = toggle_child(c2, tree.children_of("S-1"), p, tree)
    assert second.parent_complete is True
    assert second.parent_changed is True
    assert second.task_progress == pytest.approx(0.5)
    assert Write("steps", "S-1", {"complete": True}) in second.writes
    assert second.writes[-1] == Write("tasks", "T-1", {"progress": second.task_progress})

    p = replace(p, complete=True)
    c2 = replace(c2, complete=True)
    tree = build_step_tree([p, q, c1, c2])
    back = toggle_child(c1, tree.children_of("S-1"), p, tree)
    assert back.parent_complete is False
    assert back.parent_changed is True
    assert back.task_progress == 0


def test_toggle_child_without_parent_change_writes_child_and_progress():
    p = _step("S-1", weight=1.0)
    c1 = _step("S-2", "S-1")
    c2 = _step("S-3", "S-1", order=1)
    tree = build_step_tree([p, c1, c2])
    result = toggle_child(c1, tree.children_of("S-1"), p, tree)
    assert [w.id for w in result.writes] == ["S-2", "T-1"]


def _leaf_flips(steps):
    """Yield (before, after, became_complete) progress for each toggleable step."""
    tree = build_step_tree(steps)
    for s in steps:
        if s.is_parent and tree.children_of(s.id):
            continue
        flipped = [replace(x, complete=not x.complete) if x.id == s.id else x for x in steps]
        after_tree = build_step_tree(flipped)
        yield (
            compute_progress(tree.parents, tree.children),
            compute_progress(after_tree.parents, after_tree.children),
            not s.complete,
        )


def test_progress_monotonic_under_single_toggles():
    w = 0.333333
    steps = [
        _step("S-1", weight=w, order=0),
        _step("S-2", weight=w, order=1),
        _step("S-3", weight=w, complete=True, order=2),
        _step("S-4", "S-2", complete=True),
        _step("S-5", "S-2", complete=False, order=1),
    ]
    for before, after, became_complete in _leaf_flips(steps):
        if became_complete:
            assert after >= before
        else:
            assert after <= before


def test_new_step_record_appends_after_siblings():
    tree = build_step_tree([_step("S-1"), _step("S-2", order=1), _step("S-3", "S-1")])
    assert new_step_record("T-1", "Packing", tree)["sort_order"] == 2
    child = new_step_record("T-1", "Label", tree, parent_id="S-1")
    assert child["sort_order"] == 1
    assert child["weight"] == 0.0
    assert child["parent_step_id"] == "S-1"


def test_plan_parent_added_rebalances_and_recomputes():
    a = _step("S-1", weight=0.5, complete=True)
    b = _step("S-2", weight=0.5, order=1)
    created = _step("S-3", order=2)
    tree = build_step_tree([a, b, created])
    writes = plan_parent_added("T-1", tree, created)
    assert writes[:3] == [
        Write("steps", "S-1", {"weight": 0.333333}),
        Write("steps", "S-2", {"weight": 0.333333}),
        Write("steps", "S-3", {"weight": 0.333334}),
    ]
    assert writes[3] == Write("tasks", "T-1", {"progress": 0.333333})


def test_plan_delete_parent_rebalances_remaining():
    a = _step("S-1", weight=0.333333, complete=True)
    b = _step("S-2", weight=0.333333, order=1)
    c = _step("S-3", weight=0.333333, order=2)
    tree = build_step_tree([a, b, c])
    writes = plan_delete_step("T-1", b, tree)
    assert writes == [
        Write("steps", "S-1", {"weight": 0.5}),
        Write("steps", "S-3", {"weight": 0.5}),
        Write("tasks", "T-1", {"progress": 0.5}),
    ]


def test_plan_delete_last_parent_zeroes_progress():
    only = _step("S-1", weight=1.0, complete=True)
    assert plan_delete_step("T-1", only, build_step_tree([only])) == [
        Write("tasks", "T-1", {"progress": 0.0}),
    ]


def test_plan_delete_child_reconciles_parent():
    p = _step("S-1", weight=1.0, complete=False)
    done = _step("S-2", "S-1", complete=True)
    open_ = _step("S-3", "S-1", order=1)
    tree = build_step_tree([p, done, open_])
    writes = plan_delete_step("T-1", open_, tree)
    assert writes == [
        Write("steps", "S-1", {"complete": True}),
        Write("tasks", "T-1", {"progress": 1.0}),
    ]


def test_plan_child_added_reopens_parent():
    p = _step("S-1", weight=1.0, complete=True)
    done = _step("S-2", "S-1", complete=True)
    created = _step("S-3", "S-1", order=1)
    tree = build_step_tree([p, done, created])
    writes = plan_child_added("T-1", tree, created)
    assert writes == [
        Write("steps", "S-1", {"complete": False}),
        Write("tasks", "T-1", {"progress": 0.0}),
    ]


def test_weights_drift():
    assert not weights_drift([_step(f"S-{i}", weight=0.333333) for i in range(3)])
    assert weights_drift([_step("S-1", weight=0.5), _step("S-2", weight=0.2)])
    assert not weights_drift([])


def test_progress_percent_rounds_half_up():
    assert progress_percent(0.333333) == 33
    assert progress_percent(0.125) == 13
    assert progress_percent(0.999999) == 100
    assert progress_percent(0) == 0


def test_progress_report_flags_stale_parents():
    p = _step("S-1", weight=0.5, complete=True)
    q = _step("S-2", weight=0.5, complete=True, order=1)
    tree = build_step_tree([p, q, _step("S-3", "S-1")])
    report = progress_report(tree)
    assert report.stale_parents == ["S-1"]
    assert report.completed_parents == 1
    assert report.percent == 50
    assert report.weights_drifted is False


def test_progress_never_exceeds_one():
    parents = [_step(f"S-{i}", weight=0.05, complete=True, order=i) for i in range(20)]
    assert compute_progress(parents, {}) == 1.0
