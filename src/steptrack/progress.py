"""Weighted task progress derived from the step tree.

Parent steps carry a weight; a task's progress is the sum of the weights of
its effectively complete parents. A parent with children is complete exactly
when all of its children are, whatever its stored flag says, so every
function here evaluates completion through ``effective_complete``.

Nothing in this module touches a store. Functions that change state return
``Write`` records describing the partial updates a caller must persist.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Mapping, Sequence

from steptrack.models import Step, Write
from steptrack.steptree import StepTree

logger = logging.getLogger(__name__)

WEIGHT_PRECISION = 6


def effective_complete(parent: Step, children: Sequence[Step]) -> bool:
    if children:
        return all(c.complete for c in children)
    return parent.complete


def compute_progress(
    parents: Sequence[Step],
    children_by_parent: Mapping[str, Sequence[Step]],
    overrides: Mapping[str, bool] | None = None,
) -> float:
    """Sum of parent weights whose effective completion is true.

    *overrides* maps a parent id to a completion value that replaces the
    derived one, for computing progress right after a toggle.
    """
    overrides = overrides or {}
    total = 0.0
    for p in parents:
        if p.id in overrides:
            done = overrides[p.id]
        else:
            done = effective_complete(p, children_by_parent.get(p.id, []))
        if done:
            total += p.weight
    # Float summation of N rounded weights can overshoot 1 by an ulp.
    return min(total, 1.0)


def balanced_weights(count: int) -> list[float]:
    """N weights of round(1/N, 6); the last absorbs the rounding remainder so they sum to 1."""
    if count <= 0:
        return []
    weight = round(1 / count, WEIGHT_PRECISION)
    last = round(1 - weight * (count - 1), WEIGHT_PRECISION)
    return [weight] * (count - 1) + [last]


def rebalance(parents: Sequence[Step]) -> list[Write]:
    """Split the task's weight evenly across *parents*, in order."""
    return [
        Write("steps", p.id, {"weight": w})
        for p, w in zip(parents, balanced_weights(len(parents)))
    ]


def weights_drift(parents: Sequence[Step], tolerance: float | None = None) -> bool:
    """True when stored parent weights no longer sum to 1.

    The default tolerance absorbs the rounding of N weights to 6 decimals.
    """
    if not parents:
        return False
    if tolerance is None:
        tolerance = len(parents) * 0.5 * 10 ** -WEIGHT_PRECISION + 1e-9
    return abs(sum(p.weight for p in parents) - 1.0) > tolerance


def progress_percent(progress: float) -> int:
    """Whole-number percentage for display (half rounds up)."""
    return int(math.floor(progress * 100 + 0.5))


def progress_write(task_id: str, progress: float) -> Write:
    return Write("tasks", task_id, {"progress": progress})


# ---------------------------------------------------------------------------
# Toggles
# ---------------------------------------------------------------------------


@dataclass
class ParentToggle:
    step_id: str
    complete: bool

    @property
    def write(self) -> Write:
        return Write("steps", self.step_id, {"complete": self.complete})


@dataclass
class ChildToggle:
    """Outcome of flipping a child item."""

    task_id: str
    child_id: str
    parent_id: str
    child_complete: bool
    parent_complete: bool
    parent_changed: bool
    task_progress: float

    @property
    def writes(self) -> list[Write]:
        out = [Write("steps", self.child_id, {"complete": self.child_complete})]
        if self.parent_changed:
            out.append(Write("steps", self.parent_id, {"complete": self.parent_complete}))
        out.append(progress_write(self.task_id, self.task_progress))
        return out


def toggle_parent(parent: Step, children: Sequence[Step]) -> ParentToggle | None:
    """Flip a childless parent step. Returns None if the parent owns children."""
    if children:
        logger.debug("Refusing to toggle %s: completion is derived from %d children",
                     parent.id, len(children))
        return None
    return ParentToggle(step_id=parent.id, complete=not parent.complete)


def toggle_child(
    child: Step,
    siblings: Sequence[Step],
    parent: Step,
    tree: StepTree,
) -> ChildToggle:
    """Flip *child*, re-derive its parent, and recompute the task's progress."""
    new_value = not child.complete
    siblings = list(siblings)
    if not any(s.id == child.id for s in siblings):
        siblings.append(child)

    parent_complete = all(new_value if s.id == child.id else s.complete for s in siblings)
    progress = compute_progress(tree.parents, tree.children, {parent.id: parent_complete})

    return ChildToggle(
        task_id=parent.task_id,
        child_id=child.id,
        parent_id=parent.id,
        child_complete=new_value,
        parent_complete=parent_complete,
        parent_changed=parent_complete != parent.complete,
        task_progress=progress,
    )


# ---------------------------------------------------------------------------
# Structural changes
# ---------------------------------------------------------------------------


def new_step_record(task_id: str, name: str, tree: StepTree, parent_id: str | None = None) -> dict:
    """Row to create for a new step: zero weight, appended after its siblings."""
    siblings = tree.parents if parent_id is None else tree.children_of(parent_id)
    return {
        "task_id": task_id,
        "name": name,
        "parent_step_id": parent_id,
        "weight": 0.0,
        "complete": False,
        "sort_order": len(siblings),
    }


def plan_rebalance(
    task_id: str,
    parents: Sequence[Step],
    children_by_parent: Mapping[str, Sequence[Step]],
) -> list[Write]:
    """Weight writes for *parents* followed by the task progress they imply."""
    if not parents:
        return [progress_write(task_id, 0.0)]
    writes = rebalance(parents)
    reweighted = [replace(p, weight=w.fields["weight"]) for p, w in zip(parents, writes)]
    writes.append(progress_write(task_id, compute_progress(reweighted, children_by_parent)))
    return writes


def plan_parent_added(task_id: str, tree: StepTree, created: Step) -> list[Write]:
    parents = [p for p in tree.parents if p.id != created.id] + [created]
    return plan_rebalance(task_id, parents, tree.children)


def plan_child_added(task_id: str, tree: StepTree, created: Step) -> list[Write]:
    """Reconcile the parent after a new (incomplete) child joins it."""
    parent = tree.parent_of(created)
    if parent is None:
        return []
    children = [c for c in tree.children_of(parent.id) if c.id != created.id] + [created]
    return _reconcile_parent(task_id, tree, parent, children)


def plan_delete_step(task_id: str, step: Step, tree: StepTree) -> list[Write]:
    """Follow-up writes once *step* has been deleted from the store."""
    if step.is_parent:
        remaining = [p for p in tree.parents if p.id != step.id]
        children = {pid: kids for pid, kids in tree.children.items() if pid != step.id}
        return plan_rebalance(task_id, remaining, children)

    parent = tree.parent_of(step)
    if parent is None:
        return []
    remaining = [c for c in tree.children_of(parent.id) if c.id != step.id]
    return _reconcile_parent(task_id, tree, parent, remaining)


def _reconcile_parent(
    task_id: str,
    tree: StepTree,
    parent: Step,
    children: Sequence[Step],
) -> list[Write]:
    writes: list[Write] = []
    # With no children left the stored flag becomes authoritative again.
    done = effective_complete(parent, children)
    if done != parent.complete:
        writes.append(Write("steps", parent.id, {"complete": done}))
    children_map = dict(tree.children)
    children_map[parent.id] = list(children)
    writes.append(progress_write(task_id, compute_progress(tree.parents, children_map, {parent.id: done})))
    return writes


@dataclass
class ProgressReport:
    """Snapshot of a task's derived progress, for display and diagnostics."""

    progress: float
    completed_parents: int
    total_parents: int
    stale_parents: list[str] = field(default_factory=list)  # stored flag disagrees with children
    weights_drifted: bool = False

    @property
    def percent(self) -> int:
        return progress_percent(self.progress)


def progress_report(tree: StepTree) -> ProgressReport:
    completed = 0
    stale: list[str] = []
    for p in tree.parents:
        children = tree.children_of(p.id)
        done = effective_complete(p, children)
        if done:
            completed += 1
        if children and done != p.complete:
            stale.append(p.id)
    return ProgressReport(
        progress=compute_progress(tree.parents, tree.children),
        completed_parents=completed,
        total_parents=len(tree.parents),
        stale_parents=stale,
        weights_drifted=weights_drift(tree.parents),
    )
