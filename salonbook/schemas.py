# salonbook/schemas.py

from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime, date
from decimal import Decimal
from typing import Dict, List, Optional


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRole(str, Enum):
    admin = "admin"
    client = "client"


class AppointmentStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"


class UserPublic(BaseModel):
    id: int
    email: str
    role: UserRole
    salon_id: Optional[int] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None


class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=72)
    role: UserRole


class SalonCreate(BaseModel):
    name: str = Field(min_length=1)
    timezone: Optional[str] = None
    opening_hours: Dict[str, dict] = {}


class SalonPublic(BaseModel):
    id: int
    name: str
    timezone: str
    is_open: bool
    opening_hours: Dict[str, dict]


class OpeningHoursUpdate(BaseModel):
    opening_hours: Dict[str, dict]


class SalonStatusUpdate(BaseModel):
    is_open: bool


class ServiceCreate(BaseModel):
    name: str = Field(min_length=1)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    duration_minutes: int = Field(gt=0)
    active: bool = True


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    active: Optional[bool] = None


class ServicePublic(BaseModel):
    id: int
    salon_id: int
    name: str
    price: Decimal
    duration_minutes: int
    active: bool


class AvailabilityResponse(BaseModel):
    salon_id: int
    service_id: int
    date: date
    available_starts: List[str]


class AppointmentCreate(BaseModel):
    service_id: int
    appointment_date: date
    appointment_time: str
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    notes: Optional[str] = None
    additional_service_ids: List[int] = []


class ServiceComponentPublic(BaseModel):
    name: str
    duration_minutes: int
    price: Decimal
    type: str


class AppointmentPublic(BaseModel):
    id: int
    salon_id: int
    service_id: int
    client_id: int
    client_name: Optional[str] = None
    appointment_date: date
    appointment_time: str
    status: AppointmentStatus
    notes: Optional[str] = None
    client_notes: str = ""
    services: List[ServiceComponentPublic]
    total_price: Decimal
    total_duration: int
    created_at: datetime
    updated_at: datetime


class StatusUpdate(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = None


class StatusUpdateResponse(BaseModel):
    appointment: AppointmentPublic
    previous_status: AppointmentStatus
    transactions_created: int
    warnings: List[str] = []


class SyncResponse(BaseModel):
    salon_id: int
    transactions_created: int


class TransactionPublic(BaseModel):
    id: int
    salon_id: int
    appointment_id: Optional[int]
    transaction_type: str
    amount: Decimal
    category: str
    description: str
    transaction_date: date
    component: str
    component_key: str


class LedgerSummary(BaseModel):
    salon_id: int
    start: Optional[date] = None
    end: Optional[date] = None
    income_total: Decimal
    transaction_count: int
    completed_appointments: int
