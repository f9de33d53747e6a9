"""Slot grid generation.

A slot is a fixed-width candidate start time inside the open hours of a day.
Every grid point strictly before close is offered, so a 09:00-10:15 day gives
09:00, 09:30 and 10:00.
"""

from __future__ import annotations

from datetime import date

from barberapp.app.core.constants import SLOT_GRANULARITY_MINUTES
from barberapp.app.domain.errors import ScheduleError
from barberapp.app.domain.schedule import WorkingSchedule, format_hm, parse_hm
from barberapp.app.services.shared_services import parse_date


def generate_slots(
    schedule: WorkingSchedule,
    target_date: date | str,
    granularity: int | None = None,
) -> list[str]:
    """Return the ordered ``HH:MM`` slot starts for ``target_date``.

    Closed days yield an empty list. Pure and deterministic.
    """
    step = SLOT_GRANULARITY_MINUTES if granularity is None else int(granularity)
    if step <= 0:
        raise ScheduleError(f"slot granularity must be positive, got {step}")
    day = parse_date(target_date)
    if not schedule.is_open_on(day):
        return []
    start, end = schedule.hours_for(day)
    current = parse_hm(start)
    close = parse_hm(end)
    slots: list[str] = []
    while current < close:
        slots.append(format_hm(current))
        current += step
    return slots


def is_on_grid(schedule: WorkingSchedule, target_date: date | str, time: str, granularity: int | None = None) -> bool:
    return time in generate_slots(schedule, target_date, granularity)


__all__ = ["generate_slots", "is_on_grid"]
