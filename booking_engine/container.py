"""Explicit wiring of repositories and services."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from booking_engine.booking.clients import ClientDirectory
from booking_engine.booking.lifecycle import BookingService
from booking_engine.booking.policy import CancellationPolicy
from booking_engine.config import AppConfig, settings
from booking_engine.messaging.service import MessageService
from booking_engine.notifications.delivery import Delivery, LoggingDelivery
from booking_engine.notifications.scheduler import NotificationScheduler
from booking_engine.payments.gateway import InMemoryPaymentGateway, PaymentGateway
from booking_engine.payments.webhooks import WebhookIngestion
from booking_engine.repositories.memory import (
    InMemoryAvailabilityRepository,
    InMemoryBookingRepository,
    InMemoryMessageRepository,
    InMemoryNotificationRepository,
    InMemoryProviderRepository,
    InMemorySessionTypeRepository,
    InMemoryTimeOffRepository,
)
from booking_engine.scheduling.availability import AvailabilityEngine
from booking_engine.scheduling.calendar_management import CalendarManagementService

logger = logging.getLogger(__name__)


@dataclass
class BookingEngine:
    """Everything a request handler or the sweep process needs."""
    config: AppConfig
    providers: InMemoryProviderRepository
    session_types: InMemorySessionTypeRepository
    windows: InMemoryAvailabilityRepository
    time_off: InMemoryTimeOffRepository
    bookings: InMemoryBookingRepository
    notifications: InMemoryNotificationRepository
    messages: InMemoryMessageRepository
    gateway: PaymentGateway
    delivery: Delivery
    availability: AvailabilityEngine
    calendar: CalendarManagementService
    scheduler: NotificationScheduler
    booking_service: BookingService
    clients: ClientDirectory
    webhooks: WebhookIngestion
    messaging: MessageService


def build_engine(
    config: AppConfig = settings,
    *,
    gateway: Optional[PaymentGateway] = None,
    delivery: Optional[Delivery] = None,
    clock: Callable[[], datetime] = datetime.now,
    webhook_clock: Optional[Callable[[], float]] = None,
) -> BookingEngine:
    """Construct an engine backed by in-memory repositories."""
    providers = InMemoryProviderRepository()
    session_types = InMemorySessionTypeRepository()
    windows = InMemoryAvailabilityRepository()
    time_off = InMemoryTimeOffRepository()
    bookings = InMemoryBookingRepository()
    notifications = InMemoryNotificationRepository()
    messages = InMemoryMessageRepository()

    gateway = gateway or InMemoryPaymentGateway(currency=config.payments.currency)
    delivery = delivery or LoggingDelivery()

    availability = AvailabilityEngine(windows, time_off, bookings, clock=clock)
    scheduler = NotificationScheduler(notifications, delivery, config.notifications, clock=clock)
    booking_service = BookingService(
        bookings,
        providers,
        session_types,
        availability,
        gateway,
        scheduler,
        policy=CancellationPolicy(config.policy.cancellation_notice_hours),
        practice=config.practice,
        reminder_lead_hours=config.policy.reminder_lead_hours,
        clock=clock,
    )
    webhook_kwargs = {"clock": webhook_clock} if webhook_clock is not None else {}
    webhooks = WebhookIngestion(
        booking_service,
        config.payments.webhook_secret,
        config.payments.webhook_tolerance_seconds,
        **webhook_kwargs,
    )

    logger.debug("Booking engine wired for %s", config.service_name)
    return BookingEngine(
        config=config,
        providers=providers,
        session_types=session_types,
        windows=windows,
        time_off=time_off,
        bookings=bookings,
        notifications=notifications,
        messages=messages,
        gateway=gateway,
        delivery=delivery,
        availability=availability,
        calendar=CalendarManagementService(windows, time_off, clock=clock),
        scheduler=scheduler,
        booking_service=booking_service,
        clients=ClientDirectory(bookings, clock=clock),
        webhooks=webhooks,
        messaging=MessageService(
            messages, providers, scheduler, practice=config.practice, clock=clock
        ),
    )
