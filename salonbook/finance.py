# salonbook/finance.py
"""
Revenue reconciliation for completed appointments.

Every completed appointment is priced as a main service component plus zero or
more add-on components. Each component becomes exactly one income row in the
financial ledger, keyed by (appointment_id, component_key), so processing an
appointment again never creates duplicates and a bulk sync can repair
appointments whose completion-time processing failed.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .data import ADDITIONAL_SERVICES_LABEL
from .errors import ReconciliationError
from .models import Appointment, FinancialTransaction

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

_BLOCK_RE = re.compile(re.escape(ADDITIONAL_SERVICES_LABEL) + r"\s*(.+?)(?:\n\s*\n|\Z)", re.DOTALL)
_ITEM_RE = re.compile(r"([^(]+?)\s*\((\d+)\s*min\s*-\s*R\$\s*([\d.,]+)\)")


@dataclass(frozen=True)
class ServiceComponent:
    name: str
    duration_minutes: int
    price: Decimal
    kind: str = "additional"  # main or additional

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "duration": self.duration_minutes,
            "price": str(self.price),
            "type": self.kind,
        }


@dataclass
class ServiceBreakdown:
    components: List[ServiceComponent] = field(default_factory=list)
    client_notes: str = ""

    @property
    def total_price(self) -> Decimal:
        return sum((c.price for c in self.components), Decimal("0.00"))

    @property
    def total_duration(self) -> int:
        return sum(c.duration_minutes for c in self.components)

    def keyed(self):
        """(component_key, component) pairs: "main", then "additional:<n>" in order."""
        extra = 0
        for component in self.components:
            if component.kind == "main":
                yield "main", component
            else:
                yield f"additional:{extra}", component
                extra += 1


def parse_price(raw: str) -> Optional[Decimal]:
    """Parse "25", "25,00", "25.00" or "1.234,56" into a Decimal with two places."""
    value = raw.strip().rstrip(".,")
    if "," in value:
        value = value.replace(".", "").replace(",", ".")
    elif value.count(".") > 1 or re.fullmatch(r"\d{1,3}\.\d{3}", value):
        value = value.replace(".", "")
    try:
        return Decimal(value).quantize(CENTS)
    except InvalidOperation:
        return None


def format_price(price: Decimal) -> str:
    """Brazilian notation: 1234.5 -> "1.234,50"."""
    text = f"{Decimal(price).quantize(CENTS):,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def parse_additional_services(notes: Optional[str]) -> List[ServiceComponent]:
    """Read the add-on block that older bookings embedded in the notes field."""
    if not notes:
        return []
    block = _BLOCK_RE.search(notes)
    if block is None:
        return []

    components = []
    for name, duration, raw_price in _ITEM_RE.findall(block.group(1)):
        price = parse_price(raw_price)
        if price is None:
            logger.warning(f"Skipping add-on {name!r} with unreadable price {raw_price!r}")
            continue
        components.append(
            ServiceComponent(
                name=name.strip().lstrip(",;").strip(),
                duration_minutes=int(duration),
                price=price,
            )
        )
    return components


def format_additional_services(components: List[ServiceComponent]) -> str:
    items = ", ".join(f"{c.name} ({c.duration_minutes}min - R$ {format_price(c.price)})" for c in components)
    return f"{ADDITIONAL_SERVICES_LABEL} {items}"


def client_notes(notes: Optional[str]) -> str:
    """The client's own text: notes without the add-on block, keeping anything written after it."""
    if not notes:
        return ""
    block = _BLOCK_RE.search(notes)
    if block is None:
        return notes.strip()
    parts = [notes[: block.start()].strip(), notes[block.end():].strip()]
    return "\n\n".join(p for p in parts if p)


def _main_component(appointment: Appointment) -> ServiceComponent:
    if appointment.service_price is not None:
        return ServiceComponent(
            name=appointment.service_name,
            duration_minutes=appointment.service_duration_minutes,
            price=Decimal(appointment.service_price).quantize(CENTS),
            kind="main",
        )
    # rows booked before the service was snapshotted
    service = appointment.service
    return ServiceComponent(
        name=service.name if service else "Serviço",
        duration_minutes=service.duration_minutes if service else 0,
        price=Decimal(service.price).quantize(CENTS) if service else Decimal("0.00"),
        kind="main",
    )


def breakdown(appointment: Appointment) -> ServiceBreakdown:
    """Priced components of an appointment: the main service, then its add-ons."""
    main = _main_component(appointment)

    if appointment.addons:
        addons = [
            ServiceComponent(
                name=a.name,
                duration_minutes=a.duration_minutes,
                price=Decimal(a.price).quantize(CENTS),
            )
            for a in appointment.addons
        ]
    else:
        addons = parse_additional_services(appointment.notes)

    return ServiceBreakdown(components=[main] + addons, client_notes=client_notes(appointment.notes))


def appointment_duration(appointment: Appointment) -> int:
    return breakdown(appointment).total_duration


def _existing_keys(session: Session, appointment_id: int) -> set:
    return set(
        session.exec(
            select(FinancialTransaction.component_key).where(FinancialTransaction.appointment_id == appointment_id)
        ).all()
    )


def _ledger_rows(appointment: Appointment, parts: ServiceBreakdown, skip: set) -> List[FinancialTransaction]:
    client_name = appointment.client.name if appointment.client else "Cliente"
    summary = {
        "auto_generated": True,
        "services_breakdown": [c.as_dict() for c in parts.components],
        "total_amount": str(parts.total_price),
        "total_duration": parts.total_duration,
        "service_count": len(parts.components),
        "client_name": client_name,
        "appointment_time": appointment.appointment_time.strftime("%H:%M"),
    }

    rows = []
    for key, component in parts.keyed():
        if key in skip:
            continue
        label = component.name if component.kind == "main" else f"{component.name} (adicional)"
        rows.append(
            FinancialTransaction(
                salon_id=appointment.salon_id,
                appointment_id=appointment.id,
                amount=component.price,
                description=f"{label} - {client_name}",
                transaction_date=appointment.appointment_date,
                component=component.kind,
                component_key=key,
                meta=dict(summary, component=component.as_dict()),
            )
        )
    return rows


class FinancialReconciler:
    """Creates the ledger rows of completed appointments."""

    def __init__(self, session: Session):
        self.session = session

    def process(self, appointment_id: int) -> int:
        """
        Create the missing income rows of one completed appointment.

        Returns the number of rows created; 0 when the appointment is not
        completed or already fully reconciled. Raises LookupError for an unknown
        id and ReconciliationError when the store rejects the write.
        """
        appointment = self.session.get(Appointment, appointment_id)
        if appointment is None:
            raise LookupError(f"Appointment {appointment_id} not found")
        if appointment.status != "completed":
            logger.info(f"Appointment {appointment_id} is {appointment.status}; skipping financial processing")
            return 0

        # A concurrent writer may insert the same component between our read and
        # commit; the unique constraint rejects it and the second pass sees it.
        for _ in range(2):
            try:
                parts = breakdown(appointment)
                rows = _ledger_rows(appointment, parts, _existing_keys(self.session, appointment_id))
                if not rows:
                    logger.debug(f"Appointment {appointment_id} already reconciled")
                    return 0
                self.session.add_all(rows)
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                logger.info(f"Ledger rows for appointment {appointment_id} written concurrently; rechecking")
                continue
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error(f"Failed to write ledger rows for appointment {appointment_id}: {e}")
                raise ReconciliationError(appointment_id, str(e)) from e

            logger.info(
                f"Recorded {len(rows)} income row(s) for appointment {appointment_id}, total {parts.total_price}"
            )
            return len(rows)

        return 0

    def sync_missing(self, salon_id: int) -> int:
        """Reconcile every completed appointment of a salon. Returns rows created."""
        completed_ids = self.session.exec(
            select(Appointment.id)
            .where(Appointment.salon_id == salon_id)
            .where(Appointment.status == "completed")
            .order_by(Appointment.id)
        ).all()

        created = 0
        for appointment_id in completed_ids:
            try:
                created += self.process(appointment_id)
            except ReconciliationError as e:
                logger.warning(f"Sync skipped appointment {appointment_id}: {e.reason}")

        logger.info(f"Financial sync for salon {salon_id}: {created} transaction(s) created")
        return created


def list_transactions(
    session: Session, salon_id: int, start: Optional[date] = None, end: Optional[date] = None
) -> List[FinancialTransaction]:
    stmt = select(FinancialTransaction).where(FinancialTransaction.salon_id == salon_id)
    if start is not None:
        stmt = stmt.where(FinancialTransaction.transaction_date >= start)
    if end is not None:
        stmt = stmt.where(FinancialTransaction.transaction_date <= end)
    stmt = stmt.order_by(FinancialTransaction.transaction_date, FinancialTransaction.id)
    return list(session.exec(stmt).all())


def ledger_summary(session: Session, salon_id: int, start: Optional[date] = None, end: Optional[date] = None) -> dict:
    rows = [t for t in list_transactions(session, salon_id, start, end) if t.transaction_type == "income"]

    stmt = (
        select(func.count())
        .select_from(Appointment)
        .where(Appointment.salon_id == salon_id)
        .where(Appointment.status == "completed")
    )
    if start is not None:
        stmt = stmt.where(Appointment.appointment_date >= start)
    if end is not None:
        stmt = stmt.where(Appointment.appointment_date <= end)

    return {
        "salon_id": salon_id,
        "start": start,
        "end": end,
        "income_total": sum((Decimal(t.amount) for t in rows), Decimal("0.00")),
        "transaction_count": len(rows),
        "completed_appointments": session.exec(stmt).one(),
    }
