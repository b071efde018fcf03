"""Booking, provider, and session-type data models."""

import secrets
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""

    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that count against slot availability
OCCUPYING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED}
)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Modality(str, Enum):
    ONLINE = "online"
    IN_PERSON = "in_person"
    PHONE = "phone"


class Provider(BaseModel):
    """Practitioner who owns a calendar. Read-only to the engine."""

    id: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class SessionType(BaseModel):
    """Bookable service offered by the practice."""

    id: str
    name: str
    description: str = ""
    duration_minutes: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    modality: Modality = Modality.ONLINE
    is_active: bool = True


class BookingRequest(BaseModel):
    """Validated guest booking request."""

    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = ""
    provider_id: str
    session_type_id: str
    start_time: datetime
    modality: Optional[Modality] = None
    notes: Optional[str] = None


class Booking(BaseModel):
    """A reservation of one slot, carrying payment and lifecycle status."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    access_token: str = Field(default_factory=lambda: secrets.token_urlsafe(24))

    # Guest details; there is no client account behind these
    first_name: str
    last_name: str
    email: str
    phone: str = ""

    provider_id: str
    session_type_id: str
    start_time: datetime
    duration_minutes: int = Field(gt=0)
    modality: Modality

    amount: Decimal
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: BookingStatus = BookingStatus.PENDING_PAYMENT
    gateway_session_id: Optional[str] = None
    payment_reference: Optional[str] = None
    refund_reference: Optional[str] = None

    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    provider_notes: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    @property
    def is_occupying(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def guest_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def has_captured_payment(self) -> bool:
        return (
            self.payment_status == PaymentStatus.COMPLETED
            and self.payment_reference is not None
        )


class CheckoutResult(BaseModel):
    """Returned to the guest after a booking is reserved."""

    booking_id: str
    access_token: str
    session_id: str
    redirect_url: str


class CancellationResult(BaseModel):
    """Outcome of a guest cancellation, including any refund attempt."""

    booking_id: str
    cancelled: bool = True
    refund_eligible: bool = False
    refund_processed: bool = False
    refund_amount: Decimal = Decimal("0")
    refund_error: Optional[str] = None


class ClientSummary(BaseModel):
    """Derived per-email view over a provider's bookings."""

    email: str
    first_name: str
    last_name: str
    phone: str = ""
    total_appointments: int = 0
    completed_appointments: int = 0
    cancelled_appointments: int = 0
    last_appointment: Optional[datetime] = None
    next_appointment: Optional[datetime] = None


class DashboardSummary(BaseModel):
    """Provider landing view: today, the coming week, and status counts."""

    provider_id: str
    day: date
    today: list[Booking] = Field(default_factory=list)
    upcoming: list[Booking] = Field(default_factory=list)
    status_counts: dict[str, int] = Field(default_factory=dict)
