"""Day-granularity date geometry for the timeline view.

Every computation here works on calendar days (``datetime.date``); datetimes
and ISO strings are truncated to midnight first, so a value carrying a time
of day can never shift a column.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import cached_property
from typing import Iterable, Protocol

DAY_WIDTH = 36


class Dated(Protocol):
    start_date: str | None
    due_date: str | None


def to_day(value: date | datetime | str) -> date:
    """Normalize a date, datetime or ISO string to a calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value.strip()).date()


def optional_day(value: date | datetime | str | None) -> date | None:
    if value is None or value == "":
        return None
    return to_day(value)


def days_between(start: date | datetime | str, end: date | datetime | str) -> int:
    """Whole days from *start* to *end* (negative if *end* is earlier)."""
    return (to_day(end) - to_day(start)).days


def duration_days(start: date | str | None, due: date | str | None) -> int | None:
    """Inclusive day count of a range, or None unless both ends are set."""
    if not start or not due:
        return None
    return days_between(start, due) + 1


def is_weekend(day: date | datetime | str) -> bool:
    return to_day(day).weekday() >= 5


def is_today(day: date | datetime | str, today: date | datetime | str) -> bool:
    return to_day(day) == to_day(today)


@dataclass(frozen=True)
class BarGeometry:
    left: float
    width: float
    visible: bool = True


@dataclass(frozen=True)
class MonthGroup:
    label: str
    span_days: int


@dataclass(frozen=True)
class TimelineWindow:
    """The inclusive range of days rendered by one timeline view."""

    start: date
    end: date
    day_width: int = DAY_WIDTH

    @cached_property
    def days(self) -> list[date]:
        count = (self.end - self.start).days + 1
        return [self.start + timedelta(days=i) for i in range(max(count, 0))]

    def __len__(self) -> int:
        return len(self.days)

    def column_of(self, day: date | datetime | str) -> int:
        """0-based column of *day*; not clamped, may fall outside the window."""
        return days_between(self.start, day)

    def pixel_left_of(self, day: date | datetime | str) -> float:
        return self.column_of(day) * self.day_width

    def column_at(self, x: float) -> int:
        """Column under pixel offset *x*, clamped into the window."""
        col = math.floor(x / self.day_width)
        return max(0, min(len(self.days) - 1, col))

    def contains(self, day: date | datetime | str) -> bool:
        return 0 <= self.column_of(day) < len(self.days)

    def bar_geometry(
        self,
        start: date | str | None = None,
        due: date | str | None = None,
    ) -> BarGeometry:
        """Pixel placement of a range; a lone date renders as a one-day marker."""
        s = optional_day(start)
        e = optional_day(due)
        if s and e:
            return BarGeometry(
                left=self.pixel_left_of(s),
                width=(days_between(s, e) + 1) * self.day_width,
            )
        if s or e:
            return BarGeometry(left=self.pixel_left_of(s or e), width=self.day_width)
        return BarGeometry(left=0, width=0, visible=False)

    def today_offset(self, today: date | datetime | str) -> int:
        return self.column_of(today)

    def today_marker_x(self, today: date | datetime | str) -> float:
        """Centre of the today column, where the dashed marker is drawn."""
        return self.today_offset(today) * self.day_width + self.day_width / 2

    def month_groups(self) -> list[MonthGroup]:
        return month_groups(self.days)


def default_window(
    items: Iterable[Dated],
    today: date | datetime | str,
    *,
    day_width: int = DAY_WIDTH,
    empty_lookback_days: int = 7,
    empty_lookahead_days: int = 21,
    pad_before_days: int = 3,
    pad_after_days: int = 7,
) -> TimelineWindow:
    """Window around where the dated work sits, or around *today* if none is dated."""
    dates: list[date] = []
    for item in items:
        for value in (item.start_date, item.due_date):
            d = optional_day(value)
            if d is not None:
                dates.append(d)

    if not dates:
        anchor = to_day(today)
        return TimelineWindow(
            start=anchor - timedelta(days=empty_lookback_days),
            end=anchor + timedelta(days=empty_lookahead_days),
            day_width=day_width,
        )

    return TimelineWindow(
        start=min(dates) - timedelta(days=pad_before_days),
        end=max(dates) + timedelta(days=pad_after_days),
        day_width=day_width,
    )


def month_groups(days: Iterable[date]) -> list[MonthGroup]:
    """Run-length encode consecutive days by their "Mon YYYY" header label."""
    groups: list[MonthGroup] = []
    current = ""
    count = 0
    for day in days:
        label = day.strftime("%b %Y")
        if label == current:
            count += 1
            continue
        if current:
            groups.append(MonthGroup(current, count))
        current = label
        count = 1
    if current:
        groups.append(MonthGroup(current, count))
    return groups


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def tasks_on_date(items: Iterable[Dated], day: date | datetime | str) -> list:
    """Items whose range covers *day*; a single-dated item matches its one date."""
    sel = to_day(day)
    matched = []
    for item in items:
        s = optional_day(item.start_date)
        e = optional_day(item.due_date)
        if s and e:
            hit = s <= sel <= e
        else:
            hit = sel in (s, e)
        if hit:
            matched.append(item)
    return matched


def calendar_marks(items: Iterable[Dated]) -> tuple[set[date], set[date]]:
    """Return (range endpoints, days strictly inside a range) for highlighting."""
    endpoints: set[date] = set()
    inside: set[date] = set()
    for item in items:
        s = optional_day(item.start_date)
        e = optional_day(item.due_date)
        if s:
            endpoints.add(s)
        if e:
            endpoints.add(e)
        if s and e and (e - s).days > 1:
            cur = s + timedelta(days=1)
            while cur < e:
                inside.add(cur)
                cur += timedelta(days=1)
    return endpoints, inside
