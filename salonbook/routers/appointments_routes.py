# salonbook/routers/appointments_routes.py

import asyncio
from datetime import date
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status as http_status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from salonbook.db import get_session
from salonbook.data import APPOINTMENT_STATUSES
from salonbook.models import Appointment, Client
from salonbook.schemas import (
    AppointmentCreate,
    AppointmentPublic,
    StatusUpdate,
    StatusUpdateResponse,
)
from salonbook.auth import get_current_user, user_from_token
from salonbook.booking import reserve_appointment
from salonbook.deps import require_role, require_salon_staff
from salonbook.errors import IllegalTransitionError, SlotTakenError, ValidationError
from salonbook.finance import breakdown
from salonbook.lifecycle import transition
from salonbook.realtime import ChangeFeed, get_feed

router = APIRouter(
    tags=["appointments"],
)

optional_oauth2 = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2),
    session: Session = Depends(get_session),
) -> Optional[dict]:
    if token is None:
        return None
    return user_from_token(token, session)


def check_status_filter(status: str):
    if status != "all" and status not in APPOINTMENT_STATUSES:
        raise HTTPException(
            status_code=422,
            detail="status must be 'pending', 'confirmed', 'completed', 'cancelled', or 'all'",
        )


def appointment_public(appt: Appointment) -> dict:
    parts = breakdown(appt)
    return {
        "id": appt.id,
        "salon_id": appt.salon_id,
        "service_id": appt.service_id,
        "client_id": appt.client_id,
        "client_name": appt.client.name if appt.client else None,
        "appointment_date": appt.appointment_date,
        "appointment_time": appt.appointment_time.strftime("%H:%M"),
        "status": appt.status,
        "notes": appt.notes,
        "client_notes": parts.client_notes,
        "services": [
            {"name": c.name, "duration_minutes": c.duration_minutes, "price": c.price, "type": c.kind}
            for c in parts.components
        ],
        "total_price": parts.total_price,
        "total_duration": parts.total_duration,
        "created_at": appt.created_at,
        "updated_at": appt.updated_at,
    }


@router.post("/salons/{salon_id}/appointments", response_model=AppointmentPublic, status_code=201)
def book_appointment(
    salon_id: int,
    appt: AppointmentCreate,
    session: Session = Depends(get_session),
    current_user: Optional[dict] = Depends(get_optional_user),
    feed: ChangeFeed = Depends(get_feed),
):
    # a logged-in client books as themselves; anyone else books by name/phone
    client_user_id = None
    if current_user is not None and current_user["role"] == "client":
        client_user_id = current_user["id"]

    try:
        db_appt = reserve_appointment(
            session,
            salon_id=salon_id,
            service_id=appt.service_id,
            on_date=appt.appointment_date,
            at_time=appt.appointment_time,
            client_name=appt.client_name,
            client_phone=appt.client_phone,
            client_user_id=client_user_id,
            notes=appt.notes,
            additional_service_ids=appt.additional_service_ids,
            feed=feed,
        )
    except LookupError:
        raise HTTPException(status_code=404, detail="Salon not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"field": e.field, "message": e.message})
    except SlotTakenError as e:
        raise HTTPException(status_code=409, detail=e.message)

    return appointment_public(db_appt)


@router.get("/salons/{salon_id}/appointments", response_model=List[AppointmentPublic])
def list_salon_appointments(
    salon_id: int,
    on_date: Optional[date] = None,
    status: Optional[str] = "all",
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_staff(current_user, salon_id)
    check_status_filter(status)

    stmt = select(Appointment).where(Appointment.salon_id == salon_id)

    if on_date is not None:
        stmt = stmt.where(Appointment.appointment_date == on_date)

    if status != "all":
        stmt = stmt.where(Appointment.status == status)

    stmt = stmt.order_by(Appointment.appointment_date, Appointment.appointment_time)

    appts = session.exec(stmt).all()
    return [appointment_public(a) for a in appts]


@router.get("/clients/me/appointments", response_model=List[AppointmentPublic])
def list_my_appointments(
    status: Optional[str] = "all",
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "client")
    check_status_filter(status)

    client = session.exec(select(Client).where(Client.user_id == current_user["id"])).first()
    if client is None:
        return []

    stmt = select(Appointment).where(Appointment.client_id == client.id)

    if status != "all":
        stmt = stmt.where(Appointment.status == status)

    stmt = stmt.order_by(Appointment.appointment_date, Appointment.appointment_time)

    appts = session.exec(stmt).all()
    return [appointment_public(a) for a in appts]


@router.patch("/appointments/{appt_id}/status", response_model=StatusUpdateResponse)
def update_appointment_status(
    appt_id: int,
    payload: StatusUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    feed: ChangeFeed = Depends(get_feed),
):
    # 1) Find the appointment in DB
    target = session.get(Appointment, appt_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Appointment not found")

    # 2) Only staff of the appointment's salon
    require_salon_staff(current_user, target.salon_id)

    # 3) Transition and run its side effects
    try:
        result = transition(session, appt_id, payload.status.value, reason=payload.reason, feed=feed)
    except IllegalTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "appointment": appointment_public(result.appointment),
        "previous_status": result.previous_status,
        "transactions_created": result.transactions_created,
        "warnings": result.warnings,
    }


@router.websocket("/salons/{salon_id}/appointments/events")
async def appointment_events(
    websocket: WebSocket,
    salon_id: int,
    token: str,
    session: Session = Depends(get_session),
    feed: ChangeFeed = Depends(get_feed),
):
    try:
        user = user_from_token(token, session)
        require_salon_staff(user, salon_id)
    except HTTPException:
        await websocket.close(code=http_status.WS_1008_POLICY_VIOLATION)
        return
    finally:
        # the connection can stay open for hours; don't hold a DB session with it
        session.close()

    # writers publish from worker threads; hand changes to this connection's loop
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = feed.subscribe(salon_id, lambda change: loop.call_soon_threadsafe(queue.put_nowait, change))

    async def forward():
        while True:
            change = await queue.get()
            await websocket.send_json(change.as_dict())

    await websocket.accept()
    sender = asyncio.ensure_future(forward())
    try:
        # inbound messages are ignored; receiving is how a disconnect is noticed
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        unsubscribe()
