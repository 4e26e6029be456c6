"""MCP server for steptrack — exposes task/step tools to AI assistants."""

from __future__ import annotations

import json
from datetime import date

from mcp.server.fastmcp import FastMCP

from steptrack.board import TaskBoard
from steptrack.dates import TimelineWindow, tasks_on_date, to_day
from steptrack.errors import InvariantViolation, RecordNotFound
from steptrack.models import Step, Task
from steptrack.persistence import Store
from steptrack.progress import ChildToggle, progress_percent, progress_report
from steptrack.timeline import Commit, Edge, TimelineController

mcp = FastMCP(
    "steptrack",
    instructions="""\
steptrack tracks manufacturing tasks. Each task has an ordered list of steps; \
a step may hold checklist items. Task progress is the sum of the weights of its \
complete steps, and weights are always split evenly (1/N) across steps.

Key rules:
- A step with items cannot be toggled directly; it completes when all of its \
items do. Toggle the items instead.
- Adding or removing a step re-splits the weights and recomputes progress.
- Steps are reordered one position at a time (up/down) among their siblings.

Dates are calendar days (YYYY-MM-DD). Use draw_range to give an undated task \
or step a range, and drag_range to resize (edge=left/right) or shift \
(edge=move) an existing one by whole days. get_timeline returns the pixel \
geometry a Gantt view would render.\
""",
)


def _get_board() -> TaskBoard:
    store = Store()
    return TaskBoard(store, store.load_config())


def _task_to_dict(t: Task) -> dict:
    d = t.to_dict()
    d["percent"] = progress_percent(t.progress)
    return {k: v for k, v in d.items() if v is not None}


def _step_to_dict(s: Step) -> dict:
    return {k: v for k, v in s.to_dict().items() if v is not None}


# ---------------------------------------------------------------------------
# Read tools
# ---------------------------------------------------------------------------


@mcp.tool()
def list_tasks(status: str | None = None) -> str:
    """List tasks, optionally filtered by status (Not Started, In Progress, Blocked, Complete)."""
    board = _get_board()
    tasks = board.tasks()
    if status:
        tasks = [t for t in tasks if t.status.value == status]
    return json.dumps([_task_to_dict(t) for t in tasks], indent=2)


@mcp.tool()
def get_task(task_id: str) -> str:
    """Get one task with its steps and items in display order.

    Args:
        task_id: Task ID (e.g. "T-3")
    """
    board = _get_board()
    try:
        view = board.view(task_id)
    except RecordNotFound as e:
        return f"Error: {e}"
    report = progress_report(view.tree)
    d = _task_to_dict(view.task)
    d["steps"] = [
        {**_step_to_dict(p), "items": [_step_to_dict(c) for c in view.tree.children_of(p.id)]}
        for p in view.tree.parents
    ]
    d["derived_progress"] = report.progress
    if report.weights_drifted:
        d["warning"] = "step weights no longer sum to 1"
    return json.dumps(d, indent=2)


@mcp.tool()
def get_timeline(today: str | None = None) -> str:
    """Gantt geometry for every task: window, month headers and bar pixels.

    Args:
        today: Override today's date (YYYY-MM-DD)
    """
    board = _get_board()
    now = to_day(today) if today else date.today()
    window = board.window(now)
    rows = []
    for t in board.tasks():
        bar = window.bar_geometry(t.start_date, t.due_date)
        rows.append({"id": t.id, "name": t.name, "left": bar.left, "width": bar.width, "visible": bar.visible})
    return json.dumps({
        "start": window.start.isoformat(),
        "end": window.end.isoformat(),
        "day_width": window.day_width,
        "today_x": window.today_marker_x(now),
        "months": [{"label": g.label, "span_days": g.span_days} for g in window.month_groups()],
        "rows": rows,
    }, indent=2)


@mcp.tool()
def tasks_on_day(day: str) -> str:
    """Tasks whose date range covers a given day (YYYY-MM-DD)."""
    board = _get_board()
    try:
        hits = tasks_on_date(board.tasks(), day)
    except ValueError:
        return "Error: day must be in YYYY-MM-DD format."
    return json.dumps([_task_to_dict(t) for t in hits], indent=2)


# ---------------------------------------------------------------------------
# Write tools
# ---------------------------------------------------------------------------


@mcp.tool()
def add_task(
    name: str,
    start_date: str | None = None,
    due_date: str | None = None,
    phase: str | None = None,
    priority: str = "Medium",
    assigned_to: str | None = None,
    notes: str | None = None,
    default_steps: bool | None = None,
) -> str:
    """Add a new task.

    Args:
        name: Task name
        start_date: Start date (YYYY-MM-DD)
        due_date: Due date (YYYY-MM-DD)
        phase: One of MP, EVT, DVT, PPVT, Production
        priority: One of Low, Medium, High, Critical
        assigned_to: Free-text assignee
        notes: Free-text notes
        default_steps: Seed the standard manufacturing checklist (defaults to config)
    """
    board = _get_board()
    try:
        task = board.create_task(
            name,
            with_default_steps=default_steps,
            start_date=start_date,
            due_date=due_date,
            phase=phase,
            priority=priority,
            assigned_to=assigned_to,
            notes=notes,
        )
    except ValueError as e:
        return f"Error: {e}"
    return f"Added '{name}' as {task.id}"


@mcp.tool()
def update_task(
    task_id: str,
    name: str | None = None,
    status: str | None = None,
    blocked_reason: str | None = None,
    phase: str | None = None,
    priority: str | None = None,
    assigned_to: str | None = None,
    start_date: str | None = None,
    due_date: str | None = None,
    notes: str | None = None,
) -> str:
    """Update fields of a task. Only provided fields are changed.

    Args:
        task_id: Task ID (e.g. "T-3")
        status: One of Not Started, In Progress, Blocked, Complete
        blocked_reason: Kept only while the status is Blocked
        phase: One of MP, EVT, DVT, PPVT, Production
        priority: One of Low, Medium, High, Critical
        start_date: Start date (YYYY-MM-DD)
        due_date: Due date (YYYY-MM-DD)
    """
    fields = {
        k: v for k, v in {
            "name": name, "status": status, "blocked_reason": blocked_reason,
            "phase": phase, "priority": priority, "assigned_to": assigned_to,
            "start_date": start_date, "due_date": due_date, "notes": notes,
        }.items() if v is not None
    }
    if not fields:
        return "Nothing to update."
    try:
        _get_board().update_task(task_id, **fields)
    except (RecordNotFound, ValueError) as e:
        return f"Error: {e}"
    return f"Updated {task_id}."


@mcp.tool()
def add_step(task_id: str, name: str, parent_step_id: str | None = None) -> str:
    """Add a step to a task, or a checklist item under a step.

    Args:
        task_id: Task ID (e.g. "T-3")
        name: Step or item name
        parent_step_id: If given, add an item under this step
    """
    board = _get_board()
    try:
        step = board.add_step(task_id, name, parent_step_id)
    except (RecordNotFound, InvariantViolation) as e:
        return f"Error: {e}"
    progress = board.task(task_id).progress
    return f"Added {step.id}. Task progress {progress_percent(progress)}%."


@mcp.tool()
def delete_step(step_id: str) -> str:
    """Delete a step (with its items) or a single item."""
    board = _get_board()
    try:
        task_id = board.step(step_id).task_id
        board.delete_step(step_id)
    except RecordNotFound as e:
        return f"Error: {e}"
    return f"Deleted {step_id}. Task progress {progress_percent(board.task(task_id).progress)}%."


@mcp.tool()
def toggle_step(step_id: str) -> str:
    """Toggle completion of a step without items, or of an item."""
    board = _get_board()
    try:
        result = board.toggle_step(step_id)
    except (RecordNotFound, InvariantViolation) as e:
        return f"Error: {e}"
    if isinstance(result, ChildToggle):
        msg = f"{step_id} {'complete' if result.child_complete else 'reopened'}."
        if result.parent_changed:
            msg += f" Step {result.parent_id} {'complete' if result.parent_complete else 'reopened'}."
        return msg + f" Task progress {progress_percent(result.task_progress)}%."
    return f"{step_id} {'complete' if result.complete else 'reopened'}."


@mcp.tool()
def reorder_step(step_id: str, direction: str) -> str:
    """Move a step or item one position "up" or "down" among its siblings."""
    try:
        moved = _get_board().reorder_step(step_id, direction)
    except (RecordNotFound, ValueError) as e:
        return f"Error: {e}"
    return f"Moved {step_id} {direction}." if moved else f"{step_id} is already at the boundary."


def _entity(board: TaskBoard, entity_id: str, is_step: bool):
    if is_step:
        return "steps", board.step(entity_id)
    return "tasks", board.task(entity_id)


@mcp.tool()
def draw_range(entity_id: str, start_date: str, end_date: str, is_step: bool = False) -> str:
    """Give an undated task (or step) a date range, in either drag direction.

    Args:
        entity_id: Task ID, or step ID when is_step is true
        start_date: Day the pointer went down (YYYY-MM-DD)
        end_date: Day the pointer was released (YYYY-MM-DD)
        is_step: Target a step instead of a task
    """
    board = _get_board()
    try:
        collection, entity = _entity(board, entity_id, is_step)
        press, release = to_day(start_date), to_day(end_date)
    except RecordNotFound as e:
        return f"Error: {e}"
    except ValueError:
        return "Error: dates must be in YYYY-MM-DD format."
    if entity.start_date and entity.due_date:
        return f"Error: {entity_id} already has a range; use drag_range."

    window = TimelineWindow(min(press, release), max(press, release), board.config.day_width)
    ctl = TimelineController(window)
    ctl.press_row(entity_id, window.pixel_left_of(press))
    ctl.move(window.pixel_left_of(release))
    result = ctl.release()
    board.commit(collection, result)
    return f"{entity_id}: {result.start.isoformat()} → {result.end.isoformat()}"


@mcp.tool()
def drag_range(entity_id: str, days: int, edge: str = "move", is_step: bool = False) -> str:
    """Resize or shift an existing range by whole days.

    Args:
        entity_id: Task ID, or step ID when is_step is true
        days: Days to shift; negative moves earlier
        edge: "left" or "right" to resize that end, "move" to shift both
        is_step: Target a step instead of a task
    """
    board = _get_board()
    try:
        collection, entity = _entity(board, entity_id, is_step)
        edge = Edge(edge)
    except RecordNotFound as e:
        return f"Error: {e}"
    except ValueError:
        return "Error: edge must be left, right or move."
    if not (entity.start_date and entity.due_date):
        return f"Error: {entity_id} has no complete range; use draw_range."

    window = TimelineWindow(to_day(entity.start_date), to_day(entity.due_date), board.config.day_width)
    ctl = TimelineController(window)
    ctl.press_bar(entity_id, 0, entity.start_date, entity.due_date, edge)
    ctl.move(days * window.day_width)
    result = ctl.release()
    if not isinstance(result, Commit):
        return f"{entity_id} unchanged."
    board.commit(collection, result)
    return f"{entity_id}: {result.start.isoformat()} → {result.end.isoformat()}"


def main():
    """Entry point for the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
