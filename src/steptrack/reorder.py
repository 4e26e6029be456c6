"""Swap-based reordering of sibling steps."""

from __future__ import annotations

import enum
from dataclasses import replace
from typing import Sequence

from steptrack.models import Step, Write


class Direction(enum.StrEnum):
    UP = "up"
    DOWN = "down"


def reorder(step: Step, direction: Direction | str, siblings: Sequence[Step]) -> list[Write]:
    """Swap *step*'s sort_order with its neighbour in *direction*.

    *siblings* must be the step's own scope in display order (parents among
    parents, or children of one parent). Moving the first sibling up, the
    last one down, or a step not in *siblings* yields no writes. When the
    scope holds duplicate sort_order values, the whole scope is renumbered
    densely so the move still takes effect.
    """
    direction = Direction(direction)
    idx = next((i for i, s in enumerate(siblings) if s.id == step.id), None)
    if idx is None:
        return []
    target_idx = idx - 1 if direction == Direction.UP else idx + 1
    if target_idx < 0 or target_idx >= len(siblings):
        return []
    current = siblings[idx]
    target = siblings[target_idx]
    if len({s.sort_order for s in siblings}) < len(siblings):
        return _renumbered(siblings, idx, target_idx)
    return [
        Write("steps", current.id, {"sort_order": target.sort_order}),
        Write("steps", target.id, {"sort_order": current.sort_order}),
    ]


def _renumbered(siblings: Sequence[Step], idx: int, target_idx: int) -> list[Write]:
    # Duplicate keys make a swap a no-op; renumber 0..N-1 in the new display order.
    order = list(siblings)
    order[idx], order[target_idx] = order[target_idx], order[idx]
    return [
        Write("steps", s.id, {"sort_order": i})
        for i, s in enumerate(order)
        if s.sort_order != i
    ]


def apply_reorder(siblings: Sequence[Step], writes: Sequence[Write]) -> list[Step]:
    """Siblings with *writes* applied, re-sorted by sort_order."""
    new_order = {w.id: w.fields["sort_order"] for w in writes if "sort_order" in w.fields}
    updated = [replace(s, sort_order=new_order.get(s.id, s.sort_order)) for s in siblings]
    return sorted(updated, key=lambda s: s.sort_order)
