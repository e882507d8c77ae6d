# salonbook/booking.py

import logging
import re
from datetime import date, datetime, time
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .availability import available_slots, salon_now, slots_for
from .core import parse_clock
from .finance import ServiceComponent, format_additional_services
from .models import Appointment, AppointmentAddon, Client, Salon, Service
from .opening_hours import resolve_day
from .errors import SlotTakenError, ValidationError
from .realtime import AppointmentChange, ChangeFeed, appointment_snapshot

logger = logging.getLogger(__name__)


def normalize_phone(phone: Optional[str]) -> str:
    """Digits of a Brazilian phone number: 10 (landline) or 11 (mobile) after stripping formatting."""
    digits = re.sub(r"\D", "", phone or "")
    if not 10 <= len(digits) <= 11:
        raise ValidationError("client_phone", "Phone must have 10 or 11 digits, e.g. (11) 91234-5678")
    return digits


def validate_client(name: Optional[str], phone: Optional[str]):
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("client_name", "Name is required")
    return clean_name, normalize_phone(phone)


def resolve_client(session: Session, name: str, phone: str, user_id: Optional[int] = None) -> Client:
    """Find the client profile for this identity, creating it if needed. Does not commit."""
    if user_id is not None:
        client = session.exec(select(Client).where(Client.user_id == user_id)).first()
    else:
        client = session.exec(
            select(Client).where(Client.phone == phone).where(Client.user_id.is_(None))
        ).first()

    if client is None:
        client = Client(user_id=user_id, name=name, phone=phone)
    else:
        client.name = name
        client.phone = phone
    session.add(client)
    session.flush()
    return client


def _load_addons(session: Session, salon: Salon, service_ids: Iterable[int]):
    components = []
    for service_id in service_ids:
        extra = session.get(Service, service_id)
        if extra is None or extra.salon_id != salon.id or not extra.active:
            raise ValidationError("additional_service_ids", f"Service {service_id} is not available at this salon")
        components.append(ServiceComponent(name=extra.name, duration_minutes=extra.duration_minutes, price=extra.price))
    return components


def reserve_appointment(
    session: Session,
    salon_id: int,
    service_id: int,
    on_date: date,
    at_time,
    client_name: Optional[str],
    client_phone: Optional[str],
    client_user_id: Optional[int] = None,
    notes: Optional[str] = None,
    additional_service_ids: Iterable[int] = (),
    now: Optional[datetime] = None,
    feed: Optional[ChangeFeed] = None,
) -> Appointment:
    """
    Atomically book a slot: the only code path that inserts appointments.

    Within one transaction the salon row is locked, the client profile is
    resolved, the slot is re-checked against current bookings and the
    appointment is inserted as pending. A booking that lost the race raises
    SlotTakenError; the partial unique index on (salon, date, time) catches any
    race the re-check cannot see.
    """
    name, phone = validate_client(client_name, client_phone)

    start = parse_clock(at_time)
    if start is None:
        raise ValidationError("appointment_time", "Time must be HH:MM")
    start = time(start.hour, start.minute)

    try:
        salon = session.get(Salon, salon_id, with_for_update=True)
        if salon is None:
            raise LookupError(f"Salon {salon_id} not found")
        if not salon.is_open:
            raise ValidationError("salon_id", "This salon is not accepting new bookings at the moment")

        service = session.get(Service, service_id)
        if service is None or service.salon_id != salon.id:
            raise ValidationError("service_id", "Service not available at this salon")

        addons = _load_addons(session, salon, additional_service_ids)
        extra_minutes = sum(a.duration_minutes for a in addons)

        if now is None:
            now = salon_now(salon)
        if start not in slots_for(session, salon, service, on_date, now=now, extra_minutes=extra_minutes):
            offered_when_empty = available_slots(
                resolve_day(salon.opening_hours, on_date),
                service.duration_minutes + extra_minutes,
                [],
                on_date,
                now=now,
            )
            if on_date >= now.date() and start in offered_when_empty:
                raise SlotTakenError()
            raise ValidationError("appointment_time", "This time is not available for booking")

        client = resolve_client(session, name, phone, client_user_id)

        full_notes = (notes or "").strip()
        if addons:
            block = format_additional_services(addons)
            full_notes = f"{full_notes}\n\n{block}" if full_notes else block

        appointment = Appointment(
            salon_id=salon.id,
            service_id=service.id,
            client_id=client.id,
            appointment_date=on_date,
            appointment_time=start,
            service_name=service.name,
            service_duration_minutes=service.duration_minutes,
            service_price=service.price,
            status="pending",
            notes=full_notes or None,
        )
        try:
            session.add(appointment)
            session.flush()
        except IntegrityError:
            logger.info(f"Slot {on_date} {start:%H:%M} at salon {salon_id} taken concurrently")
            raise SlotTakenError()

        for position, addon in enumerate(addons):
            session.add(
                AppointmentAddon(
                    appointment_id=appointment.id,
                    position=position,
                    name=addon.name,
                    duration_minutes=addon.duration_minutes,
                    price=addon.price,
                )
            )

        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(appointment)
    logger.info(f"Appointment {appointment.id} booked at salon {salon_id} for {on_date} {start:%H:%M}")

    if feed is not None:
        feed.publish(AppointmentChange(op="insert", salon_id=appointment.salon_id, new=appointment_snapshot(appointment)))
    return appointment
