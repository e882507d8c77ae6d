from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import select

from salonbook.errors import ReconciliationError
from salonbook.finance import (
    FinancialReconciler,
    breakdown,
    client_notes,
    format_additional_services,
    format_price,
    ledger_summary,
    parse_additional_services,
    parse_price,
    ServiceComponent,
)
from salonbook.lifecycle import transition
from salonbook.models import Appointment, FinancialTransaction

from conftest import MONDAY

SPEC_NOTES = (
    "Cliente quer corte rápido\n\n"
    "Serviços Adicionais: Barba (20min - R$ 25,00), Sobrancelha (10min - R$ 15,00)"
)


def complete(session, appt):
    transition(session, appt.id, "confirmed")
    return transition(session, appt.id, "completed")


def ledger(session, appointment_id=None):
    stmt = select(FinancialTransaction)
    if appointment_id is not None:
        stmt = stmt.where(FinancialTransaction.appointment_id == appointment_id)
    return session.exec(stmt.order_by(FinancialTransaction.id)).all()


def test_parse_notes_with_additional_services():
    addons = parse_additional_services(SPEC_NOTES)

    assert [(a.name, a.duration_minutes, a.price, a.kind) for a in addons] == [
        ("Barba", 20, Decimal("25.00"), "additional"),
        ("Sobrancelha", 10, Decimal("15.00"), "additional"),
    ]
    assert sum(a.duration_minutes for a in addons) == 30
    assert sum(a.price for a in addons) == Decimal("40.00")
    assert client_notes(SPEC_NOTES) == "Cliente quer corte rápido"


def test_parse_stops_at_blank_line():
    notes = "Serviços Adicionais: Barba (20min - R$ 25)\n\nObs: Hidratação (30min - R$ 60,00)"
    assert [a.name for a in parse_additional_services(notes)] == ["Barba"]


@pytest.mark.parametrize("notes", [None, "", "Sem adicionais", "Serviços Adicionais: nenhum"])
def test_notes_without_addons(notes):
    assert parse_additional_services(notes) == []


def test_client_notes_without_block():
    assert client_notes("  só corte  ") == "só corte"
    assert client_notes(None) == ""


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("25", "25.00"),
        ("25,00", "25.00"),
        ("25.00", "25.00"),
        ("25,5", "25.50"),
        ("1.234,56", "1234.56"),
        ("1.500", "1500.00"),
        ("1.234.567,00", "1234567.00"),
    ],
)
def test_parse_price(raw, expected):
    assert parse_price(raw) == Decimal(expected)


def test_format_price():
    assert format_price(Decimal("25")) == "25,00"
    assert format_price(Decimal("1234.5")) == "1.234,50"


def test_formatted_block_parses_back():
    components = [
        ServiceComponent("Hidratação", 45, Decimal("1250.00")),
        ServiceComponent("Escova", 30, Decimal("40.50")),
    ]
    assert parse_additional_services(format_additional_services(components)) == components


def test_breakdown_of_legacy_notes(session, book):
    appt = book("10:00")
    appt.notes = SPEC_NOTES
    session.add(appt)
    session.commit()

    parts = breakdown(appt)

    assert [c.kind for c in parts.components] == ["main", "additional", "additional"]
    assert parts.total_price == Decimal("90.00")
    assert parts.total_duration == 90
    assert parts.client_notes == "Cliente quer corte rápido"


def test_breakdown_prefers_structured_addons(session, book, beard):
    appt = book("10:00", additional_service_ids=[beard.id])
    # structured rows win over whatever the notes claim
    appt.notes = "Serviços Adicionais: Pacote (200min - R$ 999,00)"
    session.add(appt)
    session.commit()

    parts = breakdown(appt)

    assert [c.name for c in parts.components] == ["Corte", "Barba"]
    assert parts.total_price == Decimal("75.00")


def test_process_creates_one_row_per_component(session, book, beard, eyebrow):
    appt = book("10:00", additional_service_ids=[beard.id, eyebrow.id])
    result = complete(session, appt)

    rows = ledger(session, appt.id)
    assert result.transactions_created == 3
    assert [(r.component_key, r.component, r.amount) for r in rows] == [
        ("main", "main", Decimal("50.00")),
        ("additional:0", "additional", Decimal("25.00")),
        ("additional:1", "additional", Decimal("15.00")),
    ]
    assert all(r.transaction_type == "income" and r.transaction_date == MONDAY for r in rows)
    assert rows[0].description == "Corte - Maria Silva"
    assert rows[1].description == "Barba (adicional) - Maria Silva"
    assert rows[0].meta["total_amount"] == "90.00"
    assert rows[0].meta["total_duration"] == 90

    # persisted total equals the displayed total
    assert sum(r.amount for r in rows) == breakdown(session.get(Appointment, appt.id)).total_price


def test_process_is_idempotent(session, book, beard):
    appt = book("10:00", additional_service_ids=[beard.id])
    complete(session, appt)
    first = [(r.id, r.component_key, r.amount) for r in ledger(session)]

    assert FinancialReconciler(session).process(appt.id) == 0
    assert FinancialReconciler(session).process(appt.id) == 0
    assert [(r.id, r.component_key, r.amount) for r in ledger(session)] == first


def test_process_repairs_partial_ledger(session, book, beard):
    appt = book("10:00", additional_service_ids=[beard.id])
    complete(session, appt)
    addon_row = [r for r in ledger(session) if r.component_key == "additional:0"][0]
    session.delete(addon_row)
    session.commit()

    assert FinancialReconciler(session).process(appt.id) == 1
    assert sorted(r.component_key for r in ledger(session)) == ["additional:0", "main"]


def test_process_skips_unfinished_appointment(session, book):
    appt = book("10:00")
    transition(session, appt.id, "confirmed")

    assert FinancialReconciler(session).process(appt.id) == 0
    assert ledger(session) == []


def test_process_unknown_appointment(session):
    with pytest.raises(LookupError):
        FinancialReconciler(session).process(4242)


def test_store_failure_becomes_reconciliation_error(session, book, monkeypatch):
    appt = book("10:00")
    transition(session, appt.id, "confirmed")
    appt = session.get(Appointment, appt.id)
    appt.status = "completed"
    session.add(appt)
    session.commit()

    def failing_commit():
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", failing_commit)

    with pytest.raises(ReconciliationError):
        FinancialReconciler(session).process(appt.id)


def test_ledger_rejects_duplicate_component(session, book):
    appt = book("10:00")
    complete(session, appt)

    session.add(
        FinancialTransaction(
            salon_id=appt.salon_id,
            appointment_id=appt.id,
            amount=Decimal("50.00"),
            description="dup",
            transaction_date=MONDAY,
            component="main",
            component_key="main",
        )
    )
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_sync_converges(session, salon, book, beard, monkeypatch):
    ok = book("09:00", additional_service_ids=[beard.id])
    missed = book("14:00")
    open_appt = book("16:00")
    complete(session, ok)

    # completion of the second appointment loses its ledger write
    def lost_write(self, appointment_id):
        raise ReconciliationError(appointment_id, "timeout")

    monkeypatch.setattr(FinancialReconciler, "process", lost_write)
    result = complete(session, missed)
    assert result.warnings
    monkeypatch.undo()

    transition(session, open_appt.id, "confirmed")

    reconciler = FinancialReconciler(session)
    assert reconciler.sync_missing(salon.id) == 1
    assert reconciler.sync_missing(salon.id) == 0

    keys = sorted((r.appointment_id, r.component_key) for r in ledger(session))
    assert keys == sorted([(ok.id, "main"), (ok.id, "additional:0"), (missed.id, "main")])


def test_sync_ignores_other_salons(session, salon, book):
    appt = book("10:00")
    complete(session, appt)

    assert FinancialReconciler(session).sync_missing(salon.id + 1) == 0


def test_ledger_summary(session, salon, book, beard):
    first = book("09:00", additional_service_ids=[beard.id])
    second = book("14:00")
    complete(session, first)
    complete(session, second)

    summary = ledger_summary(session, salon.id, MONDAY, MONDAY)

    assert summary["income_total"] == Decimal("125.00")
    assert summary["transaction_count"] == 3
    assert summary["completed_appointments"] == 2

    empty = ledger_summary(session, salon.id, MONDAY.replace(day=8), None)
    assert empty["income_total"] == Decimal("0")
    assert empty["completed_appointments"] == 0


def test_main_component_uses_booked_time_format(session, book):
    appt = book("10:00")
    complete(session, appt)
    assert ledger(session)[0].meta["appointment_time"] == "10:00"


def test_client_notes_keep_text_after_the_block():
    notes = SPEC_NOTES + "\n\nMotivo do cancelamento: Viagem"

    assert client_notes(notes) == "Cliente quer corte rápido\n\nMotivo do cancelamento: Viagem"
    assert [a.name for a in parse_additional_services(notes)] == ["Barba", "Sobrancelha"]


def test_service_edit_does_not_change_booked_totals(session, haircut, book, beard):
    appt = book("10:00", additional_service_ids=[beard.id])
    complete(session, appt)

    haircut.price = Decimal("80.00")
    haircut.duration_minutes = 90
    haircut.name = "Corte Premium"
    session.add(haircut)
    session.commit()

    parts = breakdown(session.get(Appointment, appt.id))
    assert parts.components[0].name == "Corte"
    assert parts.total_price == Decimal("75.00")
    assert parts.total_duration == 80
    assert parts.total_price == sum(r.amount for r in ledger(session, appt.id))


def test_breakdown_falls_back_to_service_for_unsnapshotted_rows(session, haircut, book):
    appt = book("10:00")
    appt.service_name = None
    appt.service_duration_minutes = None
    appt.service_price = None
    session.add(appt)
    session.commit()

    parts = breakdown(appt)
    assert (parts.components[0].name, parts.total_price, parts.total_duration) == ("Corte", Decimal("50.00"), 60)
