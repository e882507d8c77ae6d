# salonbook/lifecycle.py

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlmodel import Session

from .data import CANCELLATION_REASON_LABEL
from .errors import IllegalTransitionError, ReconciliationError
from .finance import FinancialReconciler
from .models import Appointment, utcnow
from .realtime import AppointmentChange, ChangeFeed, appointment_snapshot

logger = logging.getLogger(__name__)

# pending -> confirmed -> completed, and cancellation from either open state
TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def can_transition(current: str, requested: str) -> bool:
    return requested in TRANSITIONS.get(current, set())


@dataclass
class TransitionResult:
    appointment: Appointment
    previous_status: str
    transactions_created: int = 0
    warnings: List[str] = field(default_factory=list)


def transition(
    session: Session,
    appointment_id: int,
    new_status: str,
    reason: Optional[str] = None,
    feed: Optional[ChangeFeed] = None,
) -> TransitionResult:
    """
    Move an appointment to `new_status`, persisting it before any side effect.

    Completing an appointment records its revenue afterwards. If that fails the
    appointment stays completed and the failure is returned as a warning; a later
    financial sync creates the missing rows.
    """
    appointment = session.get(Appointment, appointment_id)
    if appointment is None:
        raise LookupError(f"Appointment {appointment_id} not found")

    previous = appointment.status
    if not can_transition(previous, new_status):
        raise IllegalTransitionError(previous, new_status)

    old_row = appointment_snapshot(appointment)

    appointment.status = new_status
    appointment.updated_at = utcnow()
    if new_status == "cancelled" and reason and reason.strip():
        line = f"{CANCELLATION_REASON_LABEL} {reason.strip()}"
        appointment.notes = f"{appointment.notes}\n\n{line}" if appointment.notes else line

    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    logger.info(f"Appointment {appointment_id} transitioned: {previous} → {new_status}")

    result = TransitionResult(appointment=appointment, previous_status=previous)

    if new_status == "completed":
        try:
            result.transactions_created = FinancialReconciler(session).process(appointment_id)
        except ReconciliationError as e:
            logger.warning(f"Appointment {appointment_id} completed but revenue was not recorded: {e.reason}")
            result.warnings.append(
                "Appointment completed, but its revenue could not be recorded. Run a financial sync to repair it."
            )
        session.refresh(appointment)

    if feed is not None:
        feed.publish(
            AppointmentChange(
                op="update",
                salon_id=appointment.salon_id,
                old=old_row,
                new=appointment_snapshot(appointment),
            )
        )
    return result
