"""Pointer interaction state machine for the timeline view.

A timeline row either has no dates, in which case the whole row is a draw
surface, or shows a bar with three hit zones: a left handle, a right handle,
and the body. Only one gesture is ever in flight:

    Idle --press empty row--> Drawing --release--> Idle (+ Commit)
    Idle --press bar--------> Dragging --release--> Idle (+ Commit | Click)

Transitions are pure functions over an explicit state value so they can be
driven without real pointer events. ``TimelineController`` owns that value for
one view.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass, replace
from datetime import date, timedelta

from steptrack.dates import BarGeometry, TimelineWindow, to_day

logger = logging.getLogger(__name__)

HANDLE_WIDTH = 8


class Edge(enum.StrEnum):
    LEFT = "left"
    RIGHT = "right"
    MOVE = "move"


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Drawing:
    entity_id: str
    anchor_column: int
    live_column: int


@dataclass(frozen=True)
class Dragging:
    entity_id: str
    edge: Edge
    anchor_x: float
    original_start: date
    original_end: date
    live_start: date | None = None
    live_end: date | None = None
    moved: bool = False

    @property
    def current_start(self) -> date:
        return self.live_start or self.original_start

    @property
    def current_end(self) -> date:
        return self.live_end or self.original_end


InteractionState = Idle | Drawing | Dragging

IDLE = Idle()


@dataclass(frozen=True)
class Commit:
    """A date range to persist for *entity_id*."""

    entity_id: str
    start: date
    end: date

    def as_fields(self) -> dict:
        return {"start_date": self.start.isoformat(), "due_date": self.end.isoformat()}


@dataclass(frozen=True)
class Click:
    """A press and release without movement on an existing bar."""

    entity_id: str


def days_delta(dx: float, day_width: int) -> int:
    """Snap a pixel offset to whole days; halves round toward +inf."""
    return math.floor(dx / day_width + 0.5)


def hit_zone(bar: BarGeometry, x: float, handle_width: float = HANDLE_WIDTH) -> Edge | None:
    """Which part of *bar* the pixel offset *x* lands on, if any."""
    if not bar.visible or x < bar.left or x > bar.left + bar.width:
        return None
    if x <= bar.left + handle_width:
        return Edge.LEFT
    if x >= bar.left + bar.width - handle_width:
        return Edge.RIGHT
    return Edge.MOVE


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def _preempt(state: InteractionState) -> None:
    if not isinstance(state, Idle):
        logger.debug("Dropping in-flight %s for %s without committing",
                     type(state).__name__, state.entity_id)


def begin_draw(state: InteractionState, window: TimelineWindow, entity_id: str, x: float) -> Drawing:
    """Start painting a new range at the column under *x*."""
    _preempt(state)
    col = window.column_at(x)
    return Drawing(entity_id=entity_id, anchor_column=col, live_column=col)


def begin_drag(
    state: InteractionState,
    entity_id: str,
    edge: Edge | str,
    x: float,
    start: date | str | None,
    end: date | str | None,
) -> InteractionState:
    """Grab an existing bar. Entities missing either date cannot be dragged.

    Any press ends the in-flight gesture, so a refused drag still returns Idle.
    """
    _preempt(state)
    if not start or not end:
        logger.debug("Ignoring drag on %s: range is incomplete", entity_id)
        return IDLE
    return Dragging(
        entity_id=entity_id,
        edge=Edge(edge),
        anchor_x=x,
        original_start=to_day(start),
        original_end=to_day(end),
    )


def pointer_move(state: InteractionState, window: TimelineWindow, x: float) -> InteractionState:
    if isinstance(state, Drawing):
        return replace(state, live_column=window.column_at(x))
    if isinstance(state, Dragging):
        delta = days_delta(x - state.anchor_x, window.day_width)
        start, end = _shift(state.edge, state.original_start, state.original_end, delta)
        return replace(state, live_start=start, live_end=end, moved=state.moved or delta != 0)
    return state


def _shift(edge: Edge, start: date, end: date, delta: int) -> tuple[date, date]:
    step = timedelta(days=delta)
    if edge == Edge.LEFT:
        return min(start + step, end), end
    if edge == Edge.RIGHT:
        return start, max(end + step, start)
    return start + step, end + step


def pointer_up(
    state: InteractionState,
    window: TimelineWindow,
) -> tuple[Idle, Commit | Click | None]:
    """Finish the gesture; returns the idle state and what, if anything, to do."""
    if isinstance(state, Drawing):
        days = window.days
        if not days:
            return IDLE, None
        lo = min(state.anchor_column, state.live_column)
        hi = max(state.anchor_column, state.live_column)
        return IDLE, Commit(state.entity_id, days[lo], days[hi])

    if isinstance(state, Dragging):
        if not state.moved:
            return IDLE, Click(state.entity_id)
        if (state.current_start, state.current_end) != (state.original_start, state.original_end):
            return IDLE, Commit(state.entity_id, state.current_start, state.current_end)
        return IDLE, None

    return IDLE, None


def preview(state: InteractionState, window: TimelineWindow) -> BarGeometry:
    """Geometry of the ghost bar (drawing) or the live bar (dragging)."""
    if isinstance(state, Drawing):
        lo = min(state.anchor_column, state.live_column)
        span = abs(state.live_column - state.anchor_column) + 1
        return BarGeometry(left=lo * window.day_width, width=span * window.day_width)
    if isinstance(state, Dragging):
        return window.bar_geometry(state.current_start, state.current_end)
    return BarGeometry(left=0, width=0, visible=False)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class TimelineController:
    """Holds the single in-flight interaction for one timeline view."""

    def __init__(self, window: TimelineWindow):
        self.window = window
        self.state: InteractionState = IDLE

    @property
    def active(self) -> bool:
        return not isinstance(self.state, Idle)

    def press_row(self, entity_id: str, x: float) -> None:
        self.state = begin_draw(self.state, self.window, entity_id, x)

    def press_bar(
        self,
        entity_id: str,
        x: float,
        start: date | str | None,
        end: date | str | None,
        edge: Edge | str | None = None,
    ) -> None:
        """Press on a bar; the edge is hit-tested from *x* when not given."""
        if edge is None:
            edge = hit_zone(self.window.bar_geometry(start, end), x) or Edge.MOVE
        self.state = begin_drag(self.state, entity_id, edge, x, start, end)

    def move(self, x: float) -> None:
        self.state = pointer_move(self.state, self.window, x)

    def release(self) -> Commit | Click | None:
        self.state, result = pointer_up(self.state, self.window)
        if isinstance(result, Commit):
            logger.info("%s: %s -> %s", result.entity_id, result.start, result.end)
        return result

    def preview(self) -> BarGeometry:
        return preview(self.state, self.window)
