"""Shared test fixtures and helpers."""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

import pytest

from booking_engine.config import AppConfig, BookingPolicyConfig, NotificationConfig, PaymentConfig
from booking_engine.container import BookingEngine, build_engine
from booking_engine.notifications.delivery import LoggingDelivery
from booking_engine.payments.gateway import InMemoryPaymentGateway
from booking_engine.schemas.booking_schema import BookingRequest, Modality, Provider, SessionType
from booking_engine.schemas.calendar_schema import AvailabilityWindowRequest, DayOfWeek

PROVIDER_ID = "prov-1"
OTHER_PROVIDER_ID = "prov-2"
SESSION_TYPE_ID = "standard-60"
WEBHOOK_SECRET = "whsec_test_secret"

# Monday 2 November 2026, 08:00
START_OF_TEST = datetime(2026, 11, 2, 8, 0)
MONDAY = date(2026, 11, 2)
TUESDAY = date(2026, 11, 3)
WEDNESDAY = date(2026, 11, 4)


class FakeClock:
    """Controllable clock returning naive local datetimes."""

    def __init__(self, now: datetime = START_OF_TEST) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def unix(self) -> float:
        return self.now.timestamp()


def make_config(**notification_overrides) -> AppConfig:
    """Default config with a fixed webhook secret and optional notification overrides."""
    base = AppConfig()
    notifications = NotificationConfig(**{
        "email_enabled": True,
        "sms_enabled": False,
        "max_retries": 3,
        "retry_backoff_minutes": 5,
        "sweep_interval_seconds": 60,
        **notification_overrides,
    })
    payments = PaymentConfig(
        currency="AUD", webhook_secret=WEBHOOK_SECRET, webhook_tolerance_seconds=300
    )
    policy = BookingPolicyConfig(cancellation_notice_hours=24, reminder_lead_hours=24)
    return AppConfig(
        practice=base.practice,
        policy=policy,
        notifications=notifications,
        payments=payments,
        log_level="INFO",
        service_name="booking-engine-test",
    )


def seed_calendar(engine: BookingEngine, provider_id: str = PROVIDER_ID) -> None:
    """Weekday 09:00-17:00 windows, a 60 minute session type, one provider."""
    engine.providers.add(Provider(
        id=provider_id, first_name="Sarah", last_name="Mitchell",
        email=f"{provider_id}@example.test", phone="0400 000 001",
    ))
    if engine.session_types.get(SESSION_TYPE_ID) is None:
        engine.session_types.add(SessionType(
            id=SESSION_TYPE_ID, name="Standard Session", duration_minutes=60,
            price=Decimal("180.00"), modality=Modality.ONLINE,
        ))
    for day in (DayOfWeek.MONDAY, DayOfWeek.TUESDAY, DayOfWeek.WEDNESDAY,
                DayOfWeek.THURSDAY, DayOfWeek.FRIDAY):
        engine.calendar.add_window(provider_id, AvailabilityWindowRequest(
            day_of_week=day, start_time=time(9, 0), end_time=time(17, 0),
        ))


def make_request(
    start: datetime,
    email: str = "alex@example.test",
    provider_id: str = PROVIDER_ID,
    phone: str = "0412 345 678",
    first_name: str = "Alex",
    last_name: str = "Nguyen",
    modality: Optional[Modality] = None,
) -> BookingRequest:
    return BookingRequest(
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
        provider_id=provider_id,
        session_type_id=SESSION_TYPE_ID,
        start_time=start,
        modality=modality,
    )


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> InMemoryPaymentGateway:
    return InMemoryPaymentGateway()


@pytest.fixture
def delivery() -> LoggingDelivery:
    return LoggingDelivery()


@pytest.fixture
def config() -> AppConfig:
    return make_config()


@pytest.fixture
def engine(config, gateway, delivery, clock) -> BookingEngine:
    engine = build_engine(
        config, gateway=gateway, delivery=delivery, clock=clock, webhook_clock=clock.unix
    )
    seed_calendar(engine)
    return engine


@pytest.fixture
def confirmed_booking(engine, gateway):
    """A paid, confirmed booking on Wednesday 10:00 (50 hours after test start)."""
    checkout = engine.booking_service.create_booking(make_request(at(WEDNESDAY, 10)))
    reference = gateway.complete_session(checkout.session_id)
    booking = engine.booking_service.confirm_payment(checkout.session_id, reference)
    return booking, checkout
