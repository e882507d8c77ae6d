# salonbook/routers/finance_routes.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from salonbook.db import get_session
from salonbook.models import Appointment, Salon
from salonbook.schemas import SyncResponse, TransactionPublic, LedgerSummary
from salonbook.auth import get_current_user
from salonbook.deps import require_salon_staff
from salonbook.errors import ReconciliationError
from salonbook.finance import FinancialReconciler, ledger_summary, list_transactions

router = APIRouter(
    tags=["finance"],
)


@router.post("/salons/{salon_id}/finance/sync", response_model=SyncResponse)
def sync_missing_transactions(
    salon_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_staff(current_user, salon_id)
    if session.get(Salon, salon_id) is None:
        raise HTTPException(status_code=404, detail="Salon not found")

    created = FinancialReconciler(session).sync_missing(salon_id)
    return {"salon_id": salon_id, "transactions_created": created}


@router.post("/appointments/{appt_id}/reconcile", response_model=SyncResponse)
def reconcile_appointment(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    target = session.get(Appointment, appt_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    require_salon_staff(current_user, target.salon_id)

    try:
        created = FinancialReconciler(session).process(appt_id)
    except ReconciliationError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"salon_id": target.salon_id, "transactions_created": created}


@router.get("/salons/{salon_id}/finance/transactions", response_model=List[TransactionPublic])
def get_transactions(
    salon_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_staff(current_user, salon_id)
    return list_transactions(session, salon_id, start, end)


@router.get("/salons/{salon_id}/finance/summary", response_model=LedgerSummary)
def get_summary(
    salon_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_salon_staff(current_user, salon_id)
    return ledger_summary(session, salon_id, start, end)
