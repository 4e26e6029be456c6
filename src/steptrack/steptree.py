"""Two-level step hierarchy built from flat step rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from steptrack.models import Step

logger = logging.getLogger(__name__)


def _by_sort_order(step: Step) -> int:
    return step.sort_order


@dataclass
class StepTree:
    """Parent steps in display order plus each parent's ordered children."""

    parents: list[Step] = field(default_factory=list)
    children: dict[str, list[Step]] = field(default_factory=dict)
    orphans: list[Step] = field(default_factory=list)  # parent id not in the input

    def children_of(self, parent_id: str) -> list[Step]:
        return self.children.get(parent_id, [])

    def parent_of(self, step: Step) -> Step | None:
        if step.parent_step_id is None:
            return None
        return next((p for p in self.parents if p.id == step.parent_step_id), None)

    def siblings_of(self, step: Step) -> list[Step]:
        """The reorder scope for *step*: parents among parents, children within their parent."""
        if step.parent_step_id is None:
            return self.parents
        return self.children_of(step.parent_step_id)

    def find(self, step_id: str) -> Step | None:
        for parent in self.parents:
            if parent.id == step_id:
                return parent
            for child in self.children_of(parent.id):
                if child.id == step_id:
                    return child
        return None

    def __iter__(self):
        """Walk parents in order, each followed by its children."""
        for parent in self.parents:
            yield parent
            yield from self.children_of(parent.id)


def build_step_tree(steps: Iterable[Step]) -> StepTree:
    """Partition *steps* into ordered parents and per-parent ordered children.

    Children whose declared parent is missing are collected in ``orphans``
    instead of raising.
    """
    steps = list(steps)
    parents = sorted((s for s in steps if s.parent_step_id is None), key=_by_sort_order)
    parent_ids = {p.id for p in parents}

    children: dict[str, list[Step]] = {}
    orphans: list[Step] = []
    for s in steps:
        if s.parent_step_id is None:
            continue
        if s.parent_step_id not in parent_ids:
            orphans.append(s)
            continue
        children.setdefault(s.parent_step_id, []).append(s)

    for items in children.values():
        items.sort(key=_by_sort_order)

    if orphans:
        logger.debug("Ignoring %d orphaned step(s): %s", len(orphans), [s.id for s in orphans])

    return StepTree(parents=parents, children=children, orphans=orphans)
