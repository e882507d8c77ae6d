# salonbook/routers/salons_routes.py

from datetime import date
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from salonbook.db import get_session
from salonbook.models import Salon, Service, User
from salonbook.schemas import (
    SalonCreate,
    SalonPublic,
    OpeningHoursUpdate,
    SalonStatusUpdate,
    ServiceCreate,
    ServiceUpdate,
    ServicePublic,
    AvailabilityResponse,
)
from salonbook.auth import get_current_user
from salonbook.deps import require_role, require_salon_staff
from salonbook.availability import slots_for
from salonbook.config import DEFAULT_TIMEZONE
from salonbook.core import format_clock
from salonbook.errors import ValidationError
from salonbook.opening_hours import validate_opening_hours

router = APIRouter(
    prefix="/salons",
    tags=["salons"],
)


def get_salon_or_404(session: Session, salon_id: int) -> Salon:
    salon = session.get(Salon, salon_id)
    if salon is None:
        raise HTTPException(status_code=404, detail="Salon not found")
    return salon


def _validated_hours(opening_hours: dict) -> dict:
    try:
        return validate_opening_hours(opening_hours)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"field": e.field, "message": e.message})


@router.post("", response_model=SalonPublic, status_code=201)
def create_salon(
    payload: SalonCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")
    if current_user["salon_id"] is not None:
        raise HTTPException(status_code=409, detail="This account already manages a salon")

    tz_name = payload.timezone or DEFAULT_TIMEZONE
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=422, detail="Unknown timezone")

    salon = Salon(name=payload.name, timezone=tz_name, opening_hours=_validated_hours(payload.opening_hours))
    session.add(salon)
    session.flush()

    # the creating admin staffs the new salon
    admin = session.get(User, current_user["id"])
    admin.salon_id = salon.id
    session.add(admin)

    session.commit()
    session.refresh(salon)
    return salon


@router.get("/{salon_id}", response_model=SalonPublic)
def get_salon(salon_id: int, session: Session = Depends(get_session)):
    return get_salon_or_404(session, salon_id)


@router.put("/{salon_id}/opening-hours", response_model=SalonPublic)
def update_opening_hours(
    salon_id: int,
    payload: OpeningHoursUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_staff(current_user, salon_id)
    salon = get_salon_or_404(session, salon_id)

    salon.opening_hours = _validated_hours(payload.opening_hours)
    session.add(salon)
    session.commit()
    session.refresh(salon)
    return salon


@router.put("/{salon_id}/status", response_model=SalonPublic)
def update_salon_status(
    salon_id: int,
    payload: SalonStatusUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_staff(current_user, salon_id)
    salon = get_salon_or_404(session, salon_id)

    salon.is_open = payload.is_open
    session.add(salon)
    session.commit()
    session.refresh(salon)
    return salon


@router.post("/{salon_id}/services", response_model=ServicePublic, status_code=201)
def create_service(
    salon_id: int,
    payload: ServiceCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_staff(current_user, salon_id)
    get_salon_or_404(session, salon_id)

    service = Service(
        salon_id=salon_id,
        name=payload.name,
        price=payload.price,
        duration_minutes=payload.duration_minutes,
        active=payload.active,
    )
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@router.patch("/{salon_id}/services/{service_id}", response_model=ServicePublic)
def update_service(
    salon_id: int,
    service_id: int,
    payload: ServiceUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_staff(current_user, salon_id)

    service = session.get(Service, service_id)
    if service is None or service.salon_id != salon_id:
        raise HTTPException(status_code=404, detail="Service not found")

    # existing appointments keep the name, price and duration they were booked with
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None:
            raise HTTPException(status_code=422, detail=f"{key} cannot be null")
        setattr(service, key, value)

    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@router.get("/{salon_id}/services", response_model=List[ServicePublic])
def list_services(salon_id: int, session: Session = Depends(get_session)):
    get_salon_or_404(session, salon_id)
    return session.exec(
        select(Service)
        .where(Service.salon_id == salon_id)
        .where(Service.active == True)  # noqa: E712
        .order_by(Service.name)
    ).all()


@router.get("/{salon_id}/availability", response_model=AvailabilityResponse)
def salon_availability(
    salon_id: int,
    service_id: int,
    date: date,
    session: Session = Depends(get_session),
):
    salon = get_salon_or_404(session, salon_id)

    service = session.get(Service, service_id)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found")

    try:
        slots = slots_for(session, salon, service, date)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"field": e.field, "message": e.message})

    return {
        "salon_id": salon_id,
        "service_id": service_id,
        "date": date,
        "available_starts": [format_clock(s) for s in slots],
    }
