# salonbook/core.py

import re
from datetime import time
from typing import Optional

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


def overlaps(start_a, end_a, start_b, end_b) -> bool:
    return start_a < end_b and start_b < end_a


def parse_clock(value) -> Optional[time]:
    """Parse "HH:MM" or "HH:MM:SS" into a time. Returns None when malformed."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None
    match = _CLOCK_RE.match(value)
    if match is None:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        return None
    return time(hour, minute, second)


def to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def format_clock(t: time) -> str:
    return t.strftime("%H:%M")
