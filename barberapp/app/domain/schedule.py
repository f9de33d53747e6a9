"""Working schedule value objects.

A barber works a set of weekdays, each with open/close wall-clock hours, and
takes one optional daily break that applies identically to every open day.
Times are ``HH:MM`` strings in the barber's own timezone; no timezone
conversion happens here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date as _date, datetime, time as _time
from typing import Any, Mapping

from barberapp.app.domain.errors import ScheduleError

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

# Strict time regex: hours 00-23, minutes 00-59
_STRICT_HM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_hm(value: str | _time) -> int:
    """Parse ``HH:MM`` (or a ``datetime.time``) into minutes since midnight.

    Raises ScheduleError on anything that is not a valid wall-clock time.
    """
    if isinstance(value, _time):
        return value.hour * 60 + value.minute
    token = str(value or "").strip()
    m = _STRICT_HM_RE.match(token)
    if not m:
        raise ScheduleError(f"invalid time {value!r}, expected HH:MM")
    return int(m.group(1)) * 60 + int(m.group(2))


def format_hm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_hm(value: str | _time) -> str:
    """Return the zero-padded ``HH:MM`` form (``9:05`` -> ``09:05``)."""
    return format_hm(parse_hm(value))


def weekday_index(day: int | str | _date | datetime) -> int:
    """Resolve a weekday given as index (0=Monday), English name or date."""
    if isinstance(day, (_date, datetime)):
        return day.weekday()
    if isinstance(day, int):
        if 0 <= day <= 6:
            return day
        raise ScheduleError(f"weekday index out of range: {day}")
    name = str(day).strip().lower()
    try:
        return WEEKDAYS.index(name)
    except ValueError:
        raise ScheduleError(f"unknown weekday {day!r}") from None


@dataclass(frozen=True)
class DayHours:
    is_open: bool = False
    start: str = "09:00"
    end: str = "18:00"

    @property
    def start_minutes(self) -> int:
        return parse_hm(self.start)

    @property
    def end_minutes(self) -> int:
        return parse_hm(self.end)

    def validate(self, day_name: str) -> None:
        # Closed days keep whatever hours were last configured; only open days must be coherent
        if not self.is_open:
            return
        if self.start_minutes >= self.end_minutes:
            raise ScheduleError(f"{day_name}: start {self.start} must be before end {self.end}")


@dataclass(frozen=True)
class BreakWindow:
    enabled: bool = False
    start: str = "13:30"
    end: str = "16:30"

    def validate(self) -> None:
        if not self.enabled:
            return
        if parse_hm(self.start) >= parse_hm(self.end):
            raise ScheduleError(f"break start {self.start} must be before break end {self.end}")

    def contains(self, minutes: int) -> bool:
        if not self.enabled:
            return False
        return parse_hm(self.start) <= minutes < parse_hm(self.end)


def _closed_week() -> tuple[DayHours, ...]:
    return tuple(DayHours() for _ in WEEKDAYS)


@dataclass(frozen=True)
class WorkingSchedule:
    """Seven weekday entries (Monday first) plus the global break window."""

    days: tuple[DayHours, ...] = field(default_factory=_closed_week)
    break_window: BreakWindow = field(default_factory=BreakWindow)

    def __post_init__(self) -> None:
        if len(self.days) != len(WEEKDAYS):
            raise ScheduleError(f"schedule needs {len(WEEKDAYS)} weekday entries, got {len(self.days)}")
        for name, day in zip(WEEKDAYS, self.days):
            day.validate(name)
        self.break_window.validate()

    def is_open_on(self, weekday: int | str | _date | datetime) -> bool:
        return self.days[weekday_index(weekday)].is_open

    def hours_for(self, weekday: int | str | _date | datetime) -> tuple[str, str]:
        idx = weekday_index(weekday)
        day = self.days[idx]
        if not day.is_open:
            raise ScheduleError(f"closed on {WEEKDAYS[idx]}")
        return normalize_hm(day.start), normalize_hm(day.end)

    def is_break_active_at(self, time: str | _time) -> bool:
        return self.break_window.contains(parse_hm(time))

    def with_day(self, weekday: int | str, hours: DayHours) -> "WorkingSchedule":
        idx = weekday_index(weekday)
        days = list(self.days)
        days[idx] = hours
        return WorkingSchedule(days=tuple(days), break_window=self.break_window)

    @classmethod
    def default(
        cls,
        *,
        start: str = "10:00",
        end: str = "20:30",
        break_start: str = "13:30",
        break_end: str = "16:30",
    ) -> "WorkingSchedule":
        """Registration default: every day but Sunday open, afternoon break on."""
        days = tuple(DayHours(is_open=name != "sunday", start=start, end=end) for name in WEEKDAYS)
        return cls(days=days, break_window=BreakWindow(enabled=True, start=break_start, end=break_end))

    @classmethod
    def from_mapping(
        cls,
        working_hours: Mapping[str, Any] | None,
        *,
        has_break: bool | None = False,
        break_start: str | None = None,
        break_end: str | None = None,
    ) -> "WorkingSchedule":
        """Build a schedule from its stored JSON shape.

        Accepts both ``is_open`` and the legacy ``isOpen`` key. Weekdays missing
        from the mapping are closed.
        """
        if working_hours is not None and not isinstance(working_hours, Mapping):
            raise ScheduleError("working hours must be a mapping of weekday -> hours")
        days: list[DayHours] = []
        for name in WEEKDAYS:
            raw = (working_hours or {}).get(name)
            if raw is None:
                days.append(DayHours())
                continue
            if not isinstance(raw, Mapping):
                raise ScheduleError(f"{name}: hours must be a mapping")
            is_open = raw.get("is_open", raw.get("isOpen", False))
            start = raw.get("start") or "09:00"
            end = raw.get("end") or "18:00"
            days.append(DayHours(is_open=bool(is_open), start=normalize_hm(start), end=normalize_hm(end)))
        brk = BreakWindow(
            enabled=bool(has_break),
            start=normalize_hm(break_start) if break_start else "13:30",
            end=normalize_hm(break_end) if break_end else "16:30",
        )
        return cls(days=tuple(days), break_window=brk)

    def to_mapping(self) -> dict[str, dict[str, Any]]:
        return {
            name: {"is_open": day.is_open, "start": day.start, "end": day.end}
            for name, day in zip(WEEKDAYS, self.days)
        }


__all__ = [
    "WEEKDAYS",
    "DayHours",
    "BreakWindow",
    "WorkingSchedule",
    "parse_hm",
    "format_hm",
    "normalize_hm",
    "weekday_index",
]
