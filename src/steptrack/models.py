"""Task, step and configuration models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class TaskStatus(enum.StrEnum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    COMPLETE = "Complete"


# Steps share the task vocabulary; kept as an alias so step code reads naturally.
StepStatus = TaskStatus


class TaskPhase(enum.StrEnum):
    MP = "MP"
    EVT = "EVT"
    DVT = "DVT"
    PPVT = "PPVT"
    PRODUCTION = "Production"


class TaskPriority(enum.StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


DEFAULT_STEPS = [
    "Kitting", "Serial Number Gen.", "Pallet Transfer",
    "Mech Assembly #1", "Mech Assembly #2", "Mech Assembly #3", "Mech Assembly #4",
    "IPQA #1", "Leak Test",
    "Optical Assembly #1", "Optical Assembly #2", "Optical Assembly #3", "Optical Assembly #4",
    "IPQA #2", "Fill Coolant", "Function Test", "FQA", "Packing", "Ready to Ship", "Shipped",
]


@dataclass
class TrackerConfig:
    """Timeline settings stored alongside tasks."""

    day_width: int = 36
    empty_lookback_days: int = 7
    empty_lookahead_days: int = 21
    pad_before_days: int = 3
    pad_after_days: int = 7
    seed_default_steps: bool = True

    def to_dict(self) -> dict:
        return {
            "day_width": self.day_width,
            "empty_lookback_days": self.empty_lookback_days,
            "empty_lookahead_days": self.empty_lookahead_days,
            "pad_before_days": self.pad_before_days,
            "pad_after_days": self.pad_after_days,
            "seed_default_steps": self.seed_default_steps,
        }

    @classmethod
    def from_dict(cls, d: dict) -> TrackerConfig:
        return cls(
            day_width=d.get("day_width", 36),
            empty_lookback_days=d.get("empty_lookback_days", 7),
            empty_lookahead_days=d.get("empty_lookahead_days", 21),
            pad_before_days=d.get("pad_before_days", 3),
            pad_after_days=d.get("pad_after_days", 7),
            seed_default_steps=d.get("seed_default_steps", True),
        )


@dataclass
class Task:
    """A tracked unit of work whose progress is driven by its steps."""

    id: str
    name: str
    version_id: str = "default"
    progress: float = 0.0
    status: TaskStatus = TaskStatus.NOT_STARTED
    start_date: str | None = None  # ISO YYYY-MM-DD
    due_date: str | None = None
    phase: TaskPhase | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: str | None = None
    blocked_reason: str | None = None  # only kept while BLOCKED
    notes: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "version_id": self.version_id,
            "progress": self.progress,
            "status": self.status.value,
            "start_date": self.start_date,
            "due_date": self.due_date,
            "phase": self.phase.value if self.phase else None,
            "priority": self.priority.value,
            "assigned_to": self.assigned_to,
            "blocked_reason": self.blocked_reason,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Task:
        phase = d.get("phase")
        return cls(
            id=d["id"],
            name=d["name"],
            version_id=d.get("version_id", "default"),
            progress=float(d.get("progress", 0.0)),
            status=TaskStatus(d.get("status", "Not Started")),
            start_date=d.get("start_date"),
            due_date=d.get("due_date"),
            phase=TaskPhase(phase) if phase else None,
            priority=TaskPriority(d.get("priority", "Medium")),
            assigned_to=d.get("assigned_to"),
            blocked_reason=d.get("blocked_reason"),
            notes=d.get("notes"),
        )


@dataclass
class Step:
    """A parent step (parent_step_id is None) or a child item of one."""

    id: str
    task_id: str
    name: str
    parent_step_id: str | None = None
    weight: float = 0.0
    complete: bool = False
    sort_order: int = 0
    start_date: str | None = None
    due_date: str | None = None
    status: StepStatus | None = None
    assigned_to: str | None = None

    @property
    def is_parent(self) -> bool:
        return self.parent_step_id is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "name": self.name,
            "parent_step_id": self.parent_step_id,
            "weight": self.weight,
            "complete": self.complete,
            "sort_order": self.sort_order,
            "start_date": self.start_date,
            "due_date": self.due_date,
            "status": self.status.value if self.status else None,
            "assigned_to": self.assigned_to,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Step:
        status = d.get("status")
        return cls(
            id=d["id"],
            task_id=d["task_id"],
            name=d["name"],
            parent_step_id=d.get("parent_step_id"),
            weight=float(d.get("weight", 0.0)),
            complete=bool(d.get("complete", False)),
            sort_order=int(d.get("sort_order", 0)),
            start_date=d.get("start_date"),
            due_date=d.get("due_date"),
            status=StepStatus(status) if status else None,
            assigned_to=d.get("assigned_to"),
        )


@dataclass(frozen=True)
class Write:
    """A partial record the caller must pass to the store's update()."""

    collection: str
    id: str
    fields: dict = field(default_factory=dict)
