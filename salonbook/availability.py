# salonbook/availability.py

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlmodel import Session, select

from .config import DEFAULT_TIMEZONE
from .core import overlaps, to_minutes, from_minutes
from .data import ACTIVE_STATUSES, shop_settings
from .errors import ValidationError
from .finance import appointment_duration
from .models import Appointment, Salon, Service
from .opening_hours import DayWindow, resolve_day

logger = logging.getLogger(__name__)

# (start time, total duration in minutes) of a slot-holding appointment
BookedInterval = Tuple[time, int]


def salon_now(salon: Salon) -> datetime:
    """Current wall-clock time in the salon's timezone, as a naive datetime."""
    try:
        tz = ZoneInfo(salon.timezone or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {salon.timezone!r} for salon {salon.id}; using {DEFAULT_TIMEZONE}")
        tz = ZoneInfo(DEFAULT_TIMEZONE)
    return datetime.now(tz).replace(tzinfo=None)


def available_slots(
    window: DayWindow,
    service_duration: int,
    booked: Iterable[BookedInterval],
    on_date: date,
    now: Optional[datetime] = None,
    granularity: Optional[int] = None,
    look_ahead_margin: Optional[int] = None,
) -> List[time]:
    """
    Ordered start times at which a service of `service_duration` minutes can be booked.

    A candidate must finish by closing time, must not run into the lunch break and
    must not overlap any booked interval. On `now`'s date, candidates at or before
    now + look-ahead margin are dropped.
    """
    if window.closed or service_duration <= 0:
        return []

    granularity = granularity or shop_settings["slot_minutes"]
    if look_ahead_margin is None:
        look_ahead_margin = shop_settings["look_ahead_margin_minutes"]

    open_min = to_minutes(window.open)
    close_min = to_minutes(window.close)

    booked_ranges = [(to_minutes(start), to_minutes(start) + duration) for start, duration in booked]

    cutoff = None
    if now is not None and now.date() == on_date:
        cutoff = now + timedelta(minutes=look_ahead_margin)

    slots = []
    candidate = open_min
    while candidate + service_duration <= close_min:
        end = candidate + service_duration

        if window.has_lunch_break and overlaps(
            candidate, end, to_minutes(window.lunch_start), to_minutes(window.lunch_end)
        ):
            candidate += granularity
            continue

        if any(overlaps(candidate, end, b_start, b_end) for b_start, b_end in booked_ranges):
            candidate += granularity
            continue

        start = from_minutes(candidate)
        if cutoff is not None and datetime.combine(on_date, start) <= cutoff:
            candidate += granularity
            continue

        slots.append(start)
        candidate += granularity

    return slots


def booked_intervals(session: Session, salon_id: int, on_date: date) -> List[BookedInterval]:
    appts = session.exec(
        select(Appointment)
        .where(Appointment.salon_id == salon_id)
        .where(Appointment.appointment_date == on_date)
        .where(Appointment.status.in_(ACTIVE_STATUSES))
        .order_by(Appointment.appointment_time)
    ).all()
    return [(a.appointment_time, appointment_duration(a)) for a in appts]


def slots_for(
    session: Session,
    salon: Salon,
    service: Service,
    on_date: date,
    now: Optional[datetime] = None,
    extra_minutes: int = 0,
) -> List[time]:
    """Available starts for `service` (plus `extra_minutes` of add-ons) at `salon` on `on_date`."""
    if service.salon_id != salon.id:
        raise ValidationError("service_id", "Service does not belong to this salon")
    if not service.active:
        raise ValidationError("service_id", "Service is not available for booking")

    window = resolve_day(salon.opening_hours, on_date)
    if window.closed:
        logger.info(f"Salon {salon.id} closed on {on_date}")
        return []

    if now is None:
        now = salon_now(salon)
    if on_date < now.date():
        return []

    booked = booked_intervals(session, salon.id, on_date)
    slots = available_slots(window, service.duration_minutes + extra_minutes, booked, on_date, now=now)
    logger.debug(f"Salon {salon.id} on {on_date}: {len(slots)} slots available, {len(booked)} booked")
    return slots
