"""
Persistence ports, one per logical collection.

Services depend only on these protocols. The in-memory adapters in
``booking_engine.repositories.memory`` implement them for the demo and
tests; a document-store adapter would implement the same contracts.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional, Protocol, runtime_checkable

from booking_engine.schemas.booking_schema import Booking, BookingStatus, Provider, SessionType
from booking_engine.schemas.calendar_schema import AvailabilityWindow, DayOfWeek, TimeOffPeriod
from booking_engine.schemas.message_schema import Message
from booking_engine.schemas.notification_schema import NotificationIntent, NotificationStatus

BookingMutation = Callable[[Booking], None]


@runtime_checkable
class ProviderRepository(Protocol):
    def get(self, provider_id: str) -> Optional[Provider]: ...


@runtime_checkable
class SessionTypeRepository(Protocol):
    def get(self, session_type_id: str) -> Optional[SessionType]: ...


@runtime_checkable
class AvailabilityRepository(Protocol):
    def get(self, window_id: str) -> Optional[AvailabilityWindow]: ...

    def list_for_provider(self, provider_id: str) -> list[AvailabilityWindow]: ...

    def list_for_day(self, provider_id: str, day_of_week: DayOfWeek) -> list[AvailabilityWindow]: ...

    def save(self, window: AvailabilityWindow) -> AvailabilityWindow: ...

    def delete(self, window_id: str) -> bool: ...


@runtime_checkable
class TimeOffRepository(Protocol):
    def get(self, time_off_id: str) -> Optional[TimeOffPeriod]: ...

    def list_for_provider(self, provider_id: str) -> list[TimeOffPeriod]: ...

    def save(self, period: TimeOffPeriod) -> TimeOffPeriod: ...

    def delete(self, time_off_id: str) -> bool: ...


@runtime_checkable
class BookingRepository(Protocol):
    """Booking collection with an atomic check-and-write for slot occupancy.

    ``add_if_slot_free`` and ``move_if_slot_free`` must check for an
    overlapping occupying booking and write in one atomic step scoped to
    the provider, raising ``SlotUnavailableError`` for the losing writer.
    """

    def get(self, booking_id: str) -> Optional[Booking]: ...

    def get_by_token(self, access_token: str) -> Optional[Booking]: ...

    def get_by_session_id(self, session_id: str) -> Optional[Booking]: ...

    def get_by_payment_reference(self, payment_reference: str) -> Optional[Booking]: ...

    def list_for_provider(
        self,
        provider_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]: ...

    def list_by_email(self, email: str) -> list[Booking]: ...

    def list_occupying(self, provider_id: str, start: datetime, end: datetime) -> list[Booking]: ...

    def add_if_slot_free(self, booking: Booking) -> Booking: ...

    def move_if_slot_free(
        self,
        booking_id: str,
        new_start: datetime,
        expected: Iterable[BookingStatus],
        updated_at: datetime,
    ) -> Optional[Booking]: ...

    def update(self, booking_id: str, mutate: BookingMutation) -> Booking: ...

    def update_if_status(
        self,
        booking_id: str,
        expected: Iterable[BookingStatus],
        mutate: BookingMutation,
    ) -> Optional[Booking]: ...

    def delete(self, booking_id: str) -> bool: ...


@runtime_checkable
class NotificationRepository(Protocol):
    def get(self, intent_id: str) -> Optional[NotificationIntent]: ...

    def save(self, intent: NotificationIntent) -> NotificationIntent: ...

    def save_if_status(
        self,
        intent: NotificationIntent,
        expected: Iterable[NotificationStatus],
    ) -> bool:
        """Store ``intent`` only if the stored copy is in one of ``expected``."""
        ...

    def list_due(self, now: datetime) -> list[NotificationIntent]: ...

    def list_for_booking(self, booking_id: str) -> list[NotificationIntent]: ...

    def list_for_recipient(self, recipient_id: str) -> list[NotificationIntent]: ...

    def list_by_status(self, status: NotificationStatus) -> list[NotificationIntent]: ...


@runtime_checkable
class MessageRepository(Protocol):
    def get(self, message_id: str) -> Optional[Message]: ...

    def save(self, message: Message) -> Message: ...

    def list_for_thread(self, thread_id: str) -> list[Message]: ...

    def list_for_user(self, user_id: str) -> list[Message]: ...

    def list_for_booking(self, booking_id: str) -> list[Message]: ...
