"""Task board: applies engine results to a record store.

Each operation loads the canonical rows, asks the engine what should change,
persists exactly those partial records, and returns freshly read rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from steptrack.dates import TimelineWindow, default_window, optional_day
from steptrack.errors import InvariantViolation, RecordNotFound
from steptrack.models import DEFAULT_STEPS, Step, Task, TaskStatus, TrackerConfig, Write
from steptrack.persistence import RecordStore, apply_writes
from steptrack.progress import (
    ChildToggle,
    ParentToggle,
    balanced_weights,
    compute_progress,
    new_step_record,
    plan_child_added,
    plan_delete_step,
    plan_parent_added,
    progress_write,
    toggle_child,
    toggle_parent,
)
from steptrack.reorder import Direction, reorder
from steptrack.steptree import StepTree, build_step_tree
from steptrack.timeline import Commit

logger = logging.getLogger(__name__)

TASK_FIELDS = {
    "name", "version_id", "status", "start_date", "due_date", "phase",
    "priority", "assigned_to", "blocked_reason", "notes",
}
STEP_FIELDS = {"name", "start_date", "due_date", "status", "assigned_to"}


@dataclass
class TaskView:
    task: Task
    tree: StepTree


class TaskBoard:
    def __init__(self, store: RecordStore, config: TrackerConfig | None = None):
        self.store = store
        self.config = config or TrackerConfig()

    # -- reads --------------------------------------------------------------

    def task(self, task_id: str) -> Task:
        return Task.from_dict(self._get("tasks", task_id))

    def tasks(self, **filters) -> list[Task]:
        return [Task.from_dict(r) for r in self.store.list("tasks", **filters)]

    def step(self, step_id: str) -> Step:
        return Step.from_dict(self._get("steps", step_id))

    def tree(self, task_id: str) -> StepTree:
        return build_step_tree(Step.from_dict(r) for r in self.store.list("steps", task_id=task_id))

    def view(self, task_id: str) -> TaskView:
        return TaskView(task=self.task(task_id), tree=self.tree(task_id))

    def window(self, today, task_ids: list[str] | None = None) -> TimelineWindow:
        items = self.tasks()
        if task_ids is not None:
            items = [t for t in items if t.id in task_ids]
        cfg = self.config
        return default_window(
            items,
            today,
            day_width=cfg.day_width,
            empty_lookback_days=cfg.empty_lookback_days,
            empty_lookahead_days=cfg.empty_lookahead_days,
            pad_before_days=cfg.pad_before_days,
            pad_after_days=cfg.pad_after_days,
        )

    # -- tasks --------------------------------------------------------------

    def _get(self, collection: str, record_id: str) -> dict:
        rows = self.store.list(collection, id=record_id)
        if not rows:
            raise RecordNotFound(collection, record_id)
        return rows[0]

    def create_task(self, name: str, with_default_steps: bool | None = None, **fields) -> Task:
        unknown = set(fields) - TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task field(s): {', '.join(sorted(unknown))}")
        # Round-trip through the model to validate enum values.
        record = Task.from_dict({"id": "", "name": name, **_serialize(fields)}).to_dict()
        del record["id"]
        _check_range(record.get("start_date"), record.get("due_date"))
        created = self.store.create("tasks", record)

        if with_default_steps is None:
            with_default_steps = self.config.seed_default_steps
        if with_default_steps:
            weights = balanced_weights(len(DEFAULT_STEPS))
            rows = [
                {
                    "task_id": created["id"], "name": name_, "parent_step_id": None,
                    "weight": weights[i], "complete": False, "sort_order": i,
                }
                for i, name_ in enumerate(DEFAULT_STEPS)
            ]
            self._create_many(rows)
        logger.info("Created task %s (%s)", created["id"], name)
        return self.task(created["id"])

    def update_task(self, task_id: str, **fields) -> Task:
        unknown = set(fields) - TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task field(s): {', '.join(sorted(unknown))}")
        fields = _serialize(fields)
        merged = Task.from_dict({**self.task(task_id).to_dict(), **fields})
        if merged.status != TaskStatus.BLOCKED:
            fields["blocked_reason"] = None
        _check_range(merged.start_date, merged.due_date)
        self.store.update("tasks", task_id, fields)
        return self.task(task_id)

    def delete_task(self, task_id: str) -> None:
        for row in self.store.list("steps", task_id=task_id):
            self.store.delete("steps", row["id"])
        self.store.delete("tasks", task_id)

    def recalculate(self, task_id: str) -> float:
        """Re-derive progress and parent flags from the stored rows."""
        tree = self.tree(task_id)
        writes: list[Write] = []
        for parent in tree.parents:
            children = tree.children_of(parent.id)
            if children:
                done = all(c.complete for c in children)
                if done != parent.complete:
                    writes.append(Write("steps", parent.id, {"complete": done}))
        progress = compute_progress(tree.parents, tree.children)
        writes.append(progress_write(task_id, progress))
        apply_writes(self.store, writes)
        return progress

    # -- steps --------------------------------------------------------------

    def add_step(self, task_id: str, name: str, parent_id: str | None = None) -> Step:
        self.task(task_id)
        tree = self.tree(task_id)
        if parent_id is not None:
            parent = tree.find(parent_id)
            if parent is None or not parent.is_parent:
                raise InvariantViolation(f"{parent_id} is not a parent step of {task_id}")

        created = Step.from_dict(self.store.create("steps", new_step_record(task_id, name, tree, parent_id)))
        tree = self.tree(task_id)
        if parent_id is None:
            writes = plan_parent_added(task_id, tree, created)
        else:
            writes = plan_child_added(task_id, tree, created)
        apply_writes(self.store, writes)
        return self.step(created.id)

    def delete_step(self, step_id: str) -> None:
        step = self.step(step_id)
        tree = self.tree(step.task_id)
        for child in tree.children_of(step.id):
            self.store.delete("steps", child.id)
        self.store.delete("steps", step.id)
        apply_writes(self.store, plan_delete_step(step.task_id, step, tree))

    def toggle_step(self, step_id: str) -> ParentToggle | ChildToggle:
        step = self.step(step_id)
        tree = self.tree(step.task_id)

        if step.is_parent:
            children = tree.children_of(step.id)
            result = toggle_parent(step, children)
            if result is None:
                raise InvariantViolation(
                    f"{step.id} has {len(children)} item(s); it completes when they do"
                )
            progress = compute_progress(tree.parents, tree.children, {step.id: result.complete})
            apply_writes(self.store, [result.write, progress_write(step.task_id, progress)])
            return result

        parent = tree.parent_of(step)
        if parent is None:
            raise InvariantViolation(f"{step.id} belongs to missing parent {step.parent_step_id}")
        result = toggle_child(step, tree.children_of(parent.id), parent, tree)
        apply_writes(self.store, result.writes)
        return result

    def reorder_step(self, step_id: str, direction: Direction | str) -> bool:
        """Swap with the neighbour in *direction*; False when already at the boundary."""
        step = self.step(step_id)
        tree = self.tree(step.task_id)
        writes = reorder(step, direction, tree.siblings_of(step))
        apply_writes(self.store, writes)
        return bool(writes)

    def update_step(self, step_id: str, **fields) -> Step:
        unknown = set(fields) - STEP_FIELDS
        if unknown:
            raise ValueError(f"Unknown step field(s): {', '.join(sorted(unknown))}")
        fields = _serialize(fields)
        merged = Step.from_dict({**self.step(step_id).to_dict(), **fields})
        _check_range(merged.start_date, merged.due_date)
        self.store.update("steps", step_id, fields)
        return self.step(step_id)

    # -- timeline -----------------------------------------------------------

    def set_dates(self, collection: str, record_id: str, start, due) -> dict:
        start_d, due_d = optional_day(start), optional_day(due)
        _check_range(start_d, due_d)
        return self.store.update(collection, record_id, {
            "start_date": start_d.isoformat() if start_d else None,
            "due_date": due_d.isoformat() if due_d else None,
        })

    def commit(self, collection: str, commit: Commit) -> dict:
        return self.store.update(collection, commit.entity_id, commit.as_fields())

    def _create_many(self, rows: list[dict]) -> None:
        bulk = getattr(self.store, "create_many", None)
        if bulk is not None:
            bulk("steps", rows)
            return
        for row in rows:
            self.store.create("steps", row)


def _serialize(fields: dict) -> dict:
    out = {}
    for key, value in fields.items():
        if hasattr(value, "value"):
            value = value.value
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        out[key] = value
    return out


def _check_range(start, due) -> None:
    s, e = optional_day(start), optional_day(due)
    if s and e and e < s:
        raise ValueError(f"Due date {e} is before start date {s}")
