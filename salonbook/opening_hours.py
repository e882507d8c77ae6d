# salonbook/opening_hours.py

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Optional

from .core import parse_clock
from .data import WEEKDAYS
from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayWindow:
    """Bookable window of one calendar day. `open`/`close` are None when closed."""

    open: Optional[time] = None
    close: Optional[time] = None
    lunch_start: Optional[time] = None
    lunch_end: Optional[time] = None

    @property
    def closed(self) -> bool:
        return self.open is None or self.close is None

    @property
    def has_lunch_break(self) -> bool:
        return self.lunch_start is not None and self.lunch_end is not None


CLOSED = DayWindow()


def weekday_name(on_date: date) -> str:
    return WEEKDAYS[on_date.weekday()]


def resolve_day(opening_hours: Optional[dict], on_date: date) -> DayWindow:
    """
    Resolve the salon's weekly schedule for a date.

    Malformed configuration never yields bookable time: a missing day, missing
    or unparsable open/close, or open not before close all resolve to closed.
    A lunch break outside the open window is ignored.
    """
    day = weekday_name(on_date)
    schedule = (opening_hours or {}).get(day)
    if not isinstance(schedule, dict) or schedule.get("closed") is True:
        return CLOSED

    open_at = parse_clock(schedule.get("open"))
    close_at = parse_clock(schedule.get("close"))
    if open_at is None or close_at is None:
        return CLOSED
    if open_at >= close_at:
        logger.warning(f"Opening time {open_at} is not before closing time {close_at} on {day}; treating as closed")
        return CLOSED

    lunch = schedule.get("lunchBreak")
    if not isinstance(lunch, dict) or not lunch.get("enabled"):
        return DayWindow(open=open_at, close=close_at)

    lunch_start = parse_clock(lunch.get("start"))
    lunch_end = parse_clock(lunch.get("end"))
    if lunch_start is None or lunch_end is None or not (open_at <= lunch_start < lunch_end <= close_at):
        logger.warning(f"Ignoring lunch break {lunch!r} on {day}: not inside {open_at}-{close_at}")
        return DayWindow(open=open_at, close=close_at)

    return DayWindow(open=open_at, close=close_at, lunch_start=lunch_start, lunch_end=lunch_end)


def validate_opening_hours(opening_hours: dict) -> dict:
    """Strict check used when staff save a schedule. Returns a normalized copy."""
    normalized = {}
    for day, schedule in opening_hours.items():
        if day not in WEEKDAYS:
            raise ValidationError(day, "Unknown weekday")
        if not isinstance(schedule, dict):
            raise ValidationError(day, "Schedule must be an object")

        if schedule.get("closed") is True:
            normalized[day] = {"closed": True}
            continue

        open_at = parse_clock(schedule.get("open"))
        close_at = parse_clock(schedule.get("close"))
        if open_at is None or close_at is None:
            raise ValidationError(day, "open and close must be HH:MM")
        if open_at >= close_at:
            raise ValidationError(day, "open must be before close")

        entry = {"closed": False, "open": open_at.strftime("%H:%M"), "close": close_at.strftime("%H:%M")}

        lunch = schedule.get("lunchBreak")
        if isinstance(lunch, dict) and lunch.get("enabled"):
            lunch_start = parse_clock(lunch.get("start"))
            lunch_end = parse_clock(lunch.get("end"))
            if lunch_start is None or lunch_end is None:
                raise ValidationError(day, "lunch break start and end must be HH:MM")
            if not (open_at <= lunch_start < lunch_end <= close_at):
                raise ValidationError(day, "lunch break must lie within opening hours")
            entry["lunchBreak"] = {
                "enabled": True,
                "start": lunch_start.strftime("%H:%M"),
                "end": lunch_end.strftime("%H:%M"),
            }
        normalized[day] = entry

    return normalized
