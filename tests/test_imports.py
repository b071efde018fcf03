"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""


class TestSchemaImports:
    def test_import_booking_schema(self):
        from booking_engine.schemas.booking_schema import (
            Booking, BookingRequest, BookingStatus, OCCUPYING_STATUSES,
        )
        assert BookingStatus.PENDING_PAYMENT == "pending_payment"
        assert OCCUPYING_STATUSES == {BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED}

    def test_import_calendar_schema(self):
        from booking_engine.schemas.calendar_schema import DayOfWeek, DaySlots, TimeSlot
        assert len(DayOfWeek) == 7

    def test_import_notification_schema(self):
        from booking_engine.schemas.notification_schema import DeliveryMethod, NotificationType
        assert len(DeliveryMethod.BOTH.channels) == 2
        assert NotificationType.MESSAGE_RECEIVED == "message_received"

    def test_import_message_schema(self):
        from booking_engine.schemas.message_schema import Message, MessageRequest, ParticipantType
        assert ParticipantType.GUEST == "guest"


class TestPackageReExports:
    def test_booking_package(self):
        from booking_engine.booking import (
            BookingService, BookingStateMachine, CancellationPolicy, ClientDirectory,
        )
        assert callable(BookingService)

    def test_scheduling_package(self):
        from booking_engine.scheduling import AvailabilityEngine, CalendarManagementService
        assert AvailabilityEngine is not None

    def test_notifications_package(self):
        from booking_engine.notifications import LoggingDelivery, NotificationScheduler
        assert NotificationScheduler is not None

    def test_messaging_package(self):
        from booking_engine.messaging import MessageService, create_thread_id
        assert callable(MessageService)

    def test_payments_package(self):
        from booking_engine.payments import InMemoryPaymentGateway, PaymentGateway
        assert isinstance(InMemoryPaymentGateway(), PaymentGateway)

    def test_repositories_package(self):
        from booking_engine.repositories import BookingRepository, InMemoryBookingRepository
        assert isinstance(InMemoryBookingRepository(), BookingRepository)

    def test_message_repository_satisfies_protocol(self):
        from booking_engine.repositories import InMemoryMessageRepository, MessageRepository
        assert isinstance(InMemoryMessageRepository(), MessageRepository)

    def test_notification_repository_satisfies_protocol(self):
        from booking_engine.repositories import InMemoryNotificationRepository, NotificationRepository
        assert isinstance(InMemoryNotificationRepository(), NotificationRepository)

    def test_delivery_satisfies_protocol(self):
        from booking_engine.notifications import Delivery, LoggingDelivery
        assert isinstance(LoggingDelivery(), Delivery)


class TestConfigImport:
    def test_import_config(self):
        from booking_engine.config import settings
        assert settings.practice.name is not None
        assert settings.notifications.max_retries >= 1
        assert len(settings.payments.currency) == 3


class TestContainer:
    def test_build_engine_defaults(self):
        from booking_engine.container import build_engine
        engine = build_engine()
        assert engine.booking_service is not None
        assert engine.scheduler.config.max_retries >= 1
        assert engine.messaging is not None


class TestConsoleDemo:
    def test_console_session_seeds_calendar(self):
        from console_demo import PROVIDER_ID, ConsoleSession
        session = ConsoleSession()
        assert session.clock.now.weekday() == 0
        assert len(session.engine.calendar.list_windows(PROVIDER_ID)) == 5
