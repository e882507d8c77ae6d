# salonbook/models.py

from typing import Optional, List
from datetime import datetime, timezone, date as Date, time
from decimal import Decimal

from sqlalchemy import Index, UniqueConstraint, text
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column, Relationship

from .config import DEFAULT_TIMEZONE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: str  # admin or client
    salon_id: Optional[int] = Field(default=None, foreign_key="salon.id")


class RevokedToken(SQLModel, table=True):
    jti: str = Field(primary_key=True)
    revoked_at: datetime = Field(default_factory=utcnow)


class Salon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    timezone: str = DEFAULT_TIMEZONE
    is_open: bool = True
    # weekday name -> {closed, open, close, lunchBreak: {enabled, start, end}}
    opening_hours: dict = Field(default_factory=dict, sa_column=Column(JSON))


class Service(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    salon_id: int = Field(foreign_key="salon.id", index=True)
    name: str
    price: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    duration_minutes: int
    active: bool = True


class Client(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", unique=True)
    name: str
    phone: str = Field(index=True)  # digits only


class Appointment(SQLModel, table=True):
    # At most one slot-holding appointment per salon/date/time
    __table_args__ = (
        Index(
            "uq_salon_active_slot",
            "salon_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    salon_id: int = Field(foreign_key="salon.id", index=True)
    service_id: int = Field(foreign_key="service.id")
    client_id: int = Field(foreign_key="client.id", index=True)
    appointment_date: Date = Field(index=True)
    appointment_time: time
    # main service as booked; later edits to the Service row do not apply
    service_name: Optional[str] = None
    service_duration_minutes: Optional[int] = None
    service_price: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    status: str = "pending"
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    service: Optional[Service] = Relationship()
    client: Optional[Client] = Relationship()
    addons: List["AppointmentAddon"] = Relationship(
        back_populates="appointment",
        sa_relationship_kwargs={"order_by": "AppointmentAddon.position", "lazy": "selectin"},
    )


class AppointmentAddon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointment.id", index=True)
    position: int
    name: str
    duration_minutes: int
    price: Decimal = Field(max_digits=10, decimal_places=2)

    appointment: Optional[Appointment] = Relationship(back_populates="addons")


class FinancialTransaction(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("appointment_id", "component_key", name="uq_transaction_component"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    salon_id: int = Field(foreign_key="salon.id", index=True)
    appointment_id: Optional[int] = Field(default=None, foreign_key="appointment.id", index=True)
    transaction_type: str = "income"
    amount: Decimal = Field(max_digits=10, decimal_places=2)
    category: str = "service"
    description: str
    payment_method: str = "cash"
    transaction_date: Date
    status: str = "completed"
    component: str  # main or additional
    component_key: str  # "main", "additional:0", ...
    meta: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=utcnow)
