"""Typer CLI for steptrack."""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from steptrack.board import TaskBoard
from steptrack.dates import (
    TimelineWindow,
    calendar_marks,
    duration_days,
    is_today,
    is_weekend,
    tasks_on_date,
    to_day,
)
from steptrack.errors import InvariantViolation, RecordNotFound
from steptrack.models import Step, Task, TaskPhase, TaskPriority, TaskStatus, TrackerConfig
from steptrack.persistence import Store
from steptrack.progress import ChildToggle, progress_percent, progress_report
from steptrack.reorder import Direction
from steptrack.timeline import Click, Commit, Edge, TimelineController

app = typer.Typer(
    name="steptrack",
    help="Step-weighted task progress and timeline scheduling.",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES = {
    TaskStatus.COMPLETE: "green",
    TaskStatus.IN_PROGRESS: "blue",
    TaskStatus.BLOCKED: "red",
    TaskStatus.NOT_STARTED: "dim",
}


def _get_store() -> Store:
    return Store()


def _get_board() -> TaskBoard:
    store = _get_store()
    return TaskBoard(store, store.load_config())


def _complete_task_id(incomplete: str) -> list[str]:
    """Shell completion for task IDs. Matches against both ID and name."""
    try:
        rows = Store().list("tasks")
    except (OSError, ValueError):
        return []
    q = incomplete.lower()
    return [r["id"] for r in rows if q in r["id"].lower() or q in r["name"].lower()]


def _parse_date(value: str | None, label: str = "date") -> date | None:
    if value is None:
        return None
    try:
        return to_day(value)
    except ValueError:
        console.print(f"[red]Invalid {label} '{value}'. Use YYYY-MM-DD.[/red]")
        raise typer.Exit(1)


def _today(value: str | None) -> date:
    return _parse_date(value, "today") or date.today()


def _progress_bar(progress: float, width: int = 20) -> str:
    filled = int(width * progress + 1e-9)
    return f"[green]{'█' * filled}[/green][dim]{'░' * (width - filled)}[/dim] {progress_percent(progress)}%"


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@app.command()
def init(
    day_width: int = 36,
    default_steps: Annotated[bool, typer.Option(help="Seed new tasks with the standard checklist")] = True,
) -> None:
    """Initialize (or reinitialize) timeline configuration."""
    store = _get_store()
    store.save_config(TrackerConfig(day_width=day_width, seed_default_steps=default_steps))
    console.print(f"[green]Initialized {store.db_path}[/green]")


@app.command()
def add(
    name: str,
    start: Annotated[Optional[str], typer.Option(help="Start date (YYYY-MM-DD)")] = None,
    due: Annotated[Optional[str], typer.Option(help="Due date (YYYY-MM-DD)")] = None,
    phase: Annotated[Optional[TaskPhase], typer.Option(help="Build phase")] = None,
    priority: Annotated[TaskPriority, typer.Option(help="Priority")] = TaskPriority.MEDIUM,
    assignee: Annotated[Optional[str], typer.Option("--assignee", "-a", help="Assigned to")] = None,
    version: Annotated[str, typer.Option(help="Project version id")] = "default",
    notes: Annotated[Optional[str], typer.Option(help="Free-text notes")] = None,
    default_steps: Annotated[Optional[bool], typer.Option(help="Seed the standard checklist")] = None,
) -> None:
    """Add a new task."""
    board = _get_board()
    s, d = _parse_date(start, "start"), _parse_date(due, "due")
    try:
        task = board.create_task(
            name,
            with_default_steps=default_steps,
            start_date=s.isoformat() if s else None,
            due_date=d.isoformat() if d else None,
            phase=phase,
            priority=priority,
            assigned_to=assignee,
            version_id=version,
            notes=notes,
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    steps = len(board.tree(task.id).parents)
    console.print(f"[green]Added '{name}' as {task.id} ({steps} steps)[/green]")


@app.command("list")
def list_tasks(
    status_filter: Annotated[Optional[TaskStatus], typer.Option("--status", "-s", help="Filter by status")] = None,
    phase: Annotated[Optional[TaskPhase], typer.Option("--phase", help="Filter by phase")] = None,
    search: Annotated[Optional[str], typer.Option("--search", "-q", help="Filter by name")] = None,
) -> None:
    """List all tasks with their progress."""
    board = _get_board()
    tasks = board.tasks()
    if status_filter:
        tasks = [t for t in tasks if t.status == status_filter]
    if phase:
        tasks = [t for t in tasks if t.phase == phase]
    if search:
        q = search.lower()
        tasks = [t for t in tasks if q in t.name.lower() or q in t.id.lower()]
    if not tasks:
        console.print("No tasks found.")
        return

    table = Table(title="Tasks")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Phase")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Start")
    table.add_column("Due")
    table.add_column("Days")
    table.add_column("Progress")
    for t in tasks:
        days = duration_days(t.start_date, t.due_date)
        table.add_row(
            t.id,
            t.name,
            t.phase.value if t.phase else "-",
            Text(t.status.value, style=STATUS_STYLES[t.status]),
            t.priority.value,
            t.start_date or "-",
            t.due_date or "-",
            str(days) if days else "-",
            _progress_bar(t.progress, 10),
        )
    console.print(table)


def _step_label(step: Step, children: list[Step]) -> str:
    if children:
        done = all(c.complete for c in children)
        box = "[green]✔[/green]" if done else f"[dim]{sum(c.complete for c in children)}/{len(children)}[/dim]"
    else:
        box = "[green]✔[/green]" if step.complete else "[dim]☐[/dim]"
    label = f"{box} [bold]{step.id}[/bold] {step.name}"
    if step.is_parent:
        label += f" [dim]w={step.weight:g}[/dim]"
    if step.start_date or step.due_date:
        label += f" [cyan]{step.start_date or '?'} → {step.due_date or '?'}[/cyan]"
    if step.assigned_to:
        label += f" [magenta]@{step.assigned_to}[/magenta]"
    return label


@app.command()
def show(task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)]) -> None:
    """Show a task and its step tree."""
    board = _get_board()
    try:
        view = board.view(task_id)
    except RecordNotFound as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    t, tree = view.task, view.tree

    console.print(f"\n[bold]{t.id}[/bold]  {t.name}")
    console.print(f"  Status:   [{STATUS_STYLES[t.status]}]{t.status.value}[/]")
    if t.status == TaskStatus.BLOCKED and t.blocked_reason:
        console.print(f"  Blocked:  {t.blocked_reason}")
    console.print(f"  Phase:    {t.phase.value if t.phase else '-'}   Priority: {t.priority.value}")
    console.print(f"  Assigned: {t.assigned_to or '-'}")
    console.print(f"  Dates:    {t.start_date or '-'} → {t.due_date or '-'}")
    console.print(f"  Progress: {_progress_bar(t.progress)}")
    if t.notes:
        console.print(f"  Notes:    {t.notes}")

    report = progress_report(tree)
    if abs(report.progress - t.progress) > 1e-9 or report.stale_parents:
        console.print(f"  [yellow]Stored progress is stale; run 'steptrack recalc {t.id}'[/yellow]")
    if report.weights_drifted:
        console.print("  [yellow]Step weights no longer sum to 1[/yellow]")

    root = Tree(f"Steps ({report.completed_parents}/{report.total_parents} complete)")
    for parent in tree.parents:
        children = tree.children_of(parent.id)
        branch = root.add(_step_label(parent, children))
        for child in children:
            branch.add(_step_label(child, []))
    console.print(root)
    for orphan in tree.orphans:
        console.print(f"  [yellow]Orphaned item {orphan.id} ({orphan.name})[/yellow]")
    console.print()


@app.command()
def update(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    name: Annotated[Optional[str], typer.Option(help="New name")] = None,
    status: Annotated[Optional[TaskStatus], typer.Option(help="New status")] = None,
    blocked_reason: Annotated[Optional[str], typer.Option(help="Why the task is blocked")] = None,
    phase: Annotated[Optional[TaskPhase], typer.Option(help="Build phase")] = None,
    priority: Annotated[Optional[TaskPriority], typer.Option(help="Priority")] = None,
    assignee: Annotated[Optional[str], typer.Option("--assignee", "-a", help="Assigned to")] = None,
    start: Annotated[Optional[str], typer.Option(help="Start date (YYYY-MM-DD)")] = None,
    due: Annotated[Optional[str], typer.Option(help="Due date (YYYY-MM-DD)")] = None,
    notes: Annotated[Optional[str], typer.Option(help="Free-text notes")] = None,
) -> None:
    """Update task fields. Only provided fields are changed."""
    board = _get_board()
    fields: dict = {}
    if name is not None:
        fields["name"] = name
    if status is not None:
        fields["status"] = status
    if blocked_reason is not None:
        fields["blocked_reason"] = blocked_reason
    if phase is not None:
        fields["phase"] = phase
    if priority is not None:
        fields["priority"] = priority
    if assignee is not None:
        fields["assigned_to"] = assignee or None
    if start is not None:
        fields["start_date"] = _parse_date(start, "start")
    if due is not None:
        fields["due_date"] = _parse_date(due, "due")
    if notes is not None:
        fields["notes"] = notes or None
    if not fields:
        console.print("Nothing to update.")
        return
    try:
        board.update_task(task_id, **fields)
    except (RecordNotFound, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Updated {task_id}[/green]")


@app.command()
def delete(task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)]) -> None:
    """Delete a task and its steps."""
    board = _get_board()
    try:
        board.delete_task(task_id)
    except RecordNotFound as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted {task_id}[/green]")


@app.command()
def recalc(task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)]) -> None:
    """Re-derive a task's progress from its stored steps."""
    board = _get_board()
    try:
        progress = board.recalculate(task_id)
    except RecordNotFound as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"{task_id}: {_progress_bar(progress)}")


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


@app.command("step-add")
def step_add(
    task_id: Annotated[str, typer.Argument(autocompletion=_complete_task_id)],
    name: str,
    parent: Annotated[Optional[str], typer.Option("--parent", "-p", help="Add as an item under this step")] = None,
) -> None:
    """Add a step to a task, or an item under a step."""
    board = _get_board()
    try:
        step = board.add_step(task_id, name, parent)
    except (RecordNotFound, InvariantViolation) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    kind = "item" if parent else "step"
    console.print(f"[green]Added {kind} '{name}' as {step.id}[/green]")
    console.print(f"  Progress: {_progress_bar(board.task(task_id).progress)}")


@app.command("step-rm")
def step_rm(step_id: str) -> None:
    """Remove a step (and its items) or a single item."""
    board = _get_board()
    try:
        step = board.step(step_id)
        board.delete_step(step_id)
    except RecordNotFound as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Removed {step_id}[/green]")
    console.print(f"  Progress: {_progress_bar(board.task(step.task_id).progress)}")


@app.command()
def toggle(step_id: str) -> None:
    """Mark a step or item complete / incomplete."""
    board = _get_board()
    try:
        result = board.toggle_step(step_id)
    except RecordNotFound as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except InvariantViolation as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(1)

    if isinstance(result, ChildToggle):
        state = "done" if result.child_complete else "open"
        console.print(f"[green]{step_id} is {state}[/green]")
        if result.parent_changed:
            word = "complete" if result.parent_complete else "reopened"
            console.print(f"  Step {result.parent_id} {word}")
    else:
        state = "done" if result.complete else "open"
        console.print(f"[green]{step_id} is {state}[/green]")
    step = board.step(step_id)
    console.print(f"  Progress: {_progress_bar(board.task(step.task_id).progress)}")


@app.command()
def move(step_id: str, direction: Direction) -> None:
    """Move a step up or down among its siblings."""
    board = _get_board()
    try:
        moved = board.reorder_step(step_id, direction)
    except RecordNotFound as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if moved:
        console.print(f"[green]Moved {step_id} {direction.value}[/green]")
    else:
        console.print(f"{step_id} is already at the {'top' if direction == Direction.UP else 'bottom'}.")


@app.command("step-edit")
def step_edit(
    step_id: str,
    name: Annotated[Optional[str], typer.Option(help="New name")] = None,
    status: Annotated[Optional[TaskStatus], typer.Option(help="Step status")] = None,
    assignee: Annotated[Optional[str], typer.Option("--assignee", "-a", help="Assigned to")] = None,
    start: Annotated[Optional[str], typer.Option(help="Start date (YYYY-MM-DD)")] = None,
    due: Annotated[Optional[str], typer.Option(help="Due date (YYYY-MM-DD)")] = None,
) -> None:
    """Edit a step's name, status, assignee or dates."""
    board = _get_board()
    fields: dict = {}
    if name is not None:
        fields["name"] = name
    if status is not None:
        fields["status"] = status
    if assignee is not None:
        fields["assigned_to"] = assignee or None
    if start is not None:
        fields["start_date"] = _parse_date(start, "start")
    if due is not None:
        fields["due_date"] = _parse_date(due, "due")
    if not fields:
        console.print("Nothing to update.")
        return
    try:
        board.update_step(step_id, **fields)
    except (RecordNotFound, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Updated {step_id}[/green]")


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------


def _render_row(label: str, window: TimelineWindow, today: date, start, due, style: str) -> Text:
    row = Text(f"{label[:24]:<24} ")
    bar = window.bar_geometry(start, due)
    first = int(bar.left // window.day_width) if bar.visible else 0
    span = int(bar.width // window.day_width) if bar.visible else 0
    for col, day in enumerate(window.days):
        if bar.visible and first <= col < first + span:
            row.append("█", style=style)
        elif is_today(day, today):
            row.append("│", style="bold yellow")
        elif is_weekend(day):
            row.append("·", style="dim")
        else:
            row.append(" ")
    return row


@app.command()
def gantt(
    today: Annotated[Optional[str], typer.Option(help="Override today (YYYY-MM-DD)")] = None,
    steps: Annotated[bool, typer.Option("--steps", help="Include parent step rows")] = False,
) -> None:
    """Print a day-per-column Gantt chart of all tasks."""
    board = _get_board()
    tasks = board.tasks()
    if not tasks:
        console.print("No tasks found.")
        return
    now = _today(today)
    window = board.window(now)

    header = Text(" " * 25)
    for group in window.month_groups():
        header.append(f"{group.label:<{group.span_days}}"[: group.span_days], style="bold")
    console.print(header)
    days = Text(" " * 25)
    for day in window.days:
        days.append(str(day.day % 10), style="dim" if is_weekend(day) else "")
    console.print(days)

    for t in tasks:
        label = f"{t.id} {t.name}"
        console.print(_render_row(label, window, now, t.start_date, t.due_date, STATUS_STYLES[t.status]))
        if steps:
            tree = board.tree(t.id)
            for parent in tree.parents:
                if parent.start_date or parent.due_date:
                    style = "green" if parent.complete else "cyan"
                    console.print(_render_row(f"  {parent.name}", window, now,
                                              parent.start_date, parent.due_date, style))

    undated = [t.id for t in tasks if not (t.start_date or t.due_date)]
    if undated:
        console.print(f"\n[dim]No dates yet: {', '.join(undated)} (use 'steptrack draw')[/dim]")


def _target(board: TaskBoard, entity_id: str, step: bool) -> tuple[str, Task | Step]:
    try:
        if step:
            return "steps", board.step(entity_id)
        return "tasks", board.task(entity_id)
    except RecordNotFound as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _covering_window(board: TaskBoard, now: date, *days: date) -> TimelineWindow:
    window = board.window(now)
    return TimelineWindow(
        start=min([window.start, *days]),
        end=max([window.end, *days]),
        day_width=window.day_width,
    )


@app.command()
def draw(
    entity_id: str,
    start: Annotated[str, typer.Argument(help="Day the pointer goes down (YYYY-MM-DD)")],
    end: Annotated[Optional[str], typer.Argument(help="Day the pointer is released")] = None,
    step: Annotated[bool, typer.Option("--step", help="Target a step instead of a task")] = False,
    today: Annotated[Optional[str], typer.Option(help="Override today (YYYY-MM-DD)")] = None,
) -> None:
    """Paint a new date range onto an undated task or step."""
    board = _get_board()
    collection, entity = _target(board, entity_id, step)
    if entity.start_date and entity.due_date:
        console.print(f"[red]{entity_id} already has a range; use 'steptrack drag'.[/red]")
        raise typer.Exit(1)

    press = _parse_date(start, "start")
    release = _parse_date(end, "end") or press
    window = _covering_window(board, _today(today), press, release)

    ctl = TimelineController(window)
    ctl.press_row(entity_id, window.pixel_left_of(press))
    ctl.move(window.pixel_left_of(release))
    result = ctl.release()
    if isinstance(result, Commit):
        board.commit(collection, result)
        console.print(f"[green]{entity.name}: {result.start:%b %d} → {result.end:%b %d}[/green]")


@app.command()
def drag(
    entity_id: str,
    days: Annotated[int, typer.Argument(help="Whole days to shift (negative moves earlier)")],
    edge: Annotated[Edge, typer.Option(help="left / right resize, or move the whole bar")] = Edge.MOVE,
    step: Annotated[bool, typer.Option("--step", help="Target a step instead of a task")] = False,
    today: Annotated[Optional[str], typer.Option(help="Override today (YYYY-MM-DD)")] = None,
) -> None:
    """Resize or move an existing date range by whole days."""
    board = _get_board()
    collection, entity = _target(board, entity_id, step)
    if not (entity.start_date and entity.due_date):
        console.print(f"[red]{entity_id} has no complete range; use 'steptrack draw'.[/red]")
        raise typer.Exit(1)

    window = _covering_window(board, _today(today), to_day(entity.start_date), to_day(entity.due_date))
    bar = window.bar_geometry(entity.start_date, entity.due_date)
    grab = {Edge.LEFT: bar.left, Edge.RIGHT: bar.left + bar.width}.get(edge, bar.left + bar.width / 2)

    ctl = TimelineController(window)
    ctl.press_bar(entity_id, grab, entity.start_date, entity.due_date, edge)
    ctl.move(grab + days * window.day_width)
    result = ctl.release()
    if isinstance(result, Commit):
        board.commit(collection, result)
        console.print(f"[green]{entity.name}: {result.start:%b %d} → {result.end:%b %d}[/green]")
    elif isinstance(result, Click):
        console.print("No change.")
    else:
        console.print(f"{entity_id} range unchanged (clamped).")


@app.command("calendar")
def calendar_view(
    day: Annotated[Optional[str], typer.Argument(help="Day to inspect (YYYY-MM-DD)")] = None,
) -> None:
    """Month calendar with task ranges highlighted, plus the tasks on a day."""
    board = _get_board()
    tasks = board.tasks()
    selected = _parse_date(day, "day") or date.today()
    endpoints, inside = calendar_marks(tasks)

    console.print(f"\n[bold]{selected:%B %Y}[/bold]")
    console.print("Mo Tu We Th Fr Sa Su", style="dim")
    for week in calendar.Calendar().monthdatescalendar(selected.year, selected.month):
        line = Text()
        for d in week:
            style = ""
            if d.month != selected.month:
                style = "dim"
            elif d in endpoints:
                style = "bold reverse"
            elif d in inside:
                style = "underline"
            if d == selected:
                style += " yellow"
            line.append(f"{d.day:>2} ", style=style.strip())
        console.print(line)

    hits = tasks_on_date(tasks, selected)
    console.print(f"\n[bold]{selected:%a %b %d}[/bold]: {len(hits)} task(s)")
    for t in hits:
        console.print(f"  [bold]{t.id}[/bold]  {t.name}  [dim]{t.start_date or '?'} → {t.due_date or '?'}[/dim]")
    console.print()


if __name__ == "__main__":
    app()
