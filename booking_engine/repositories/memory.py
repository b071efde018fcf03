"""
In-memory implementations of the persistence ports.

Records are copied on the way in and out so callers never share mutable
state with the store, the same way a document store hands back fresh
objects. Each booking write for a provider runs under that provider's
lock, which is what makes the slot check-and-insert atomic.
"""

import logging
import threading
from datetime import datetime
from typing import Iterable, Optional

from booking_engine.errors import NotFoundError, SlotUnavailableError
from booking_engine.repositories.base import BookingMutation
from booking_engine.schemas.booking_schema import Booking, BookingStatus, Provider, SessionType
from booking_engine.schemas.calendar_schema import AvailabilityWindow, DayOfWeek, TimeOffPeriod
from booking_engine.schemas.message_schema import Message
from booking_engine.schemas.notification_schema import NotificationIntent, NotificationStatus
from booking_engine.utils import intervals_overlap

logger = logging.getLogger(__name__)


class InMemoryProviderRepository:
    def __init__(self, providers: Optional[Iterable[Provider]] = None) -> None:
        self._providers: dict[str, Provider] = {}
        for provider in providers or []:
            self.add(provider)

    def add(self, provider: Provider) -> Provider:
        self._providers[provider.id] = provider.model_copy(deep=True)
        return provider

    def get(self, provider_id: str) -> Optional[Provider]:
        provider = self._providers.get(provider_id)
        return provider.model_copy(deep=True) if provider else None


class InMemorySessionTypeRepository:
    def __init__(self, session_types: Optional[Iterable[SessionType]] = None) -> None:
        self._session_types: dict[str, SessionType] = {}
        for session_type in session_types or []:
            self.add(session_type)

    def add(self, session_type: SessionType) -> SessionType:
        self._session_types[session_type.id] = session_type.model_copy(deep=True)
        return session_type

    def get(self, session_type_id: str) -> Optional[SessionType]:
        session_type = self._session_types.get(session_type_id)
        return session_type.model_copy(deep=True) if session_type else None


class InMemoryAvailabilityRepository:
    def __init__(self) -> None:
        self._windows: dict[str, AvailabilityWindow] = {}
        self._lock = threading.Lock()

    def get(self, window_id: str) -> Optional[AvailabilityWindow]:
        with self._lock:
            window = self._windows.get(window_id)
        return window.model_copy(deep=True) if window else None

    def list_for_provider(self, provider_id: str) -> list[AvailabilityWindow]:
        with self._lock:
            return [
                w.model_copy(deep=True)
                for w in self._windows.values()
                if w.provider_id == provider_id
            ]

    def list_for_day(self, provider_id: str, day_of_week: DayOfWeek) -> list[AvailabilityWindow]:
        return [w for w in self.list_for_provider(provider_id) if w.day_of_week == day_of_week]

    def save(self, window: AvailabilityWindow) -> AvailabilityWindow:
        with self._lock:
            self._windows[window.id] = window.model_copy(deep=True)
        return window

    def delete(self, window_id: str) -> bool:
        with self._lock:
            return self._windows.pop(window_id, None) is not None


class InMemoryTimeOffRepository:
    def __init__(self) -> None:
        self._periods: dict[str, TimeOffPeriod] = {}
        self._lock = threading.Lock()

    def get(self, time_off_id: str) -> Optional[TimeOffPeriod]:
        with self._lock:
            period = self._periods.get(time_off_id)
        return period.model_copy(deep=True) if period else None

    def list_for_provider(self, provider_id: str) -> list[TimeOffPeriod]:
        with self._lock:
            periods = [
                p.model_copy(deep=True)
                for p in self._periods.values()
                if p.provider_id == provider_id
            ]
        return sorted(periods, key=lambda p: p.start)

    def save(self, period: TimeOffPeriod) -> TimeOffPeriod:
        with self._lock:
            self._periods[period.id] = period.model_copy(deep=True)
        return period

    def delete(self, time_off_id: str) -> bool:
        with self._lock:
            return self._periods.pop(time_off_id, None) is not None


class InMemoryBookingRepository:
    """Booking store with per-provider write locks."""

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._lock = threading.Lock()
        self._provider_locks: dict[str, threading.Lock] = {}

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _provider_lock(self, provider_id: str) -> threading.Lock:
        with self._lock:
            return self._provider_locks.setdefault(provider_id, threading.Lock())

    def _snapshot(self) -> list[Booking]:
        with self._lock:
            return list(self._bookings.values())

    def _find(self, predicate) -> Optional[Booking]:
        for booking in self._snapshot():
            if predicate(booking):
                return booking.model_copy(deep=True)
        return None

    def _conflicts(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> list[Booking]:
        return [
            b
            for b in self._snapshot()
            if b.provider_id == provider_id
            and b.is_occupying
            and b.id != exclude_id
            and intervals_overlap(start, end, b.start_time, b.end_time)
        ]

    def _require(self, booking_id: str) -> Booking:
        with self._lock:
            booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def _store(self, booking: Booking) -> None:
        with self._lock:
            self._bookings[booking.id] = booking

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get(self, booking_id: str) -> Optional[Booking]:
        return self._find(lambda b: b.id == booking_id)

    def get_by_token(self, access_token: str) -> Optional[Booking]:
        return self._find(lambda b: b.access_token == access_token)

    def get_by_session_id(self, session_id: str) -> Optional[Booking]:
        return self._find(lambda b: b.gateway_session_id == session_id)

    def get_by_payment_reference(self, payment_reference: str) -> Optional[Booking]:
        return self._find(lambda b: b.payment_reference == payment_reference)

    def list_for_provider(
        self,
        provider_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        bookings = [
            b.model_copy(deep=True)
            for b in self._snapshot()
            if b.provider_id == provider_id
            and (start is None or b.start_time >= start)
            and (end is None or b.start_time < end)
        ]
        return sorted(bookings, key=lambda b: b.start_time)

    def list_by_email(self, email: str) -> list[Booking]:
        wanted = email.strip().lower()
        bookings = [
            b.model_copy(deep=True)
            for b in self._snapshot()
            if b.email.strip().lower() == wanted
        ]
        return sorted(bookings, key=lambda b: b.start_time)

    def list_occupying(self, provider_id: str, start: datetime, end: datetime) -> list[Booking]:
        return [b.model_copy(deep=True) for b in self._conflicts(provider_id, start, end)]

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def add_if_slot_free(self, booking: Booking) -> Booking:
        """Insert ``booking`` unless an occupying booking overlaps it."""
        with self._provider_lock(booking.provider_id):
            if booking.is_occupying and self._conflicts(
                booking.provider_id, booking.start_time, booking.end_time
            ):
                logger.info(
                    "Rejected overlapping booking for provider %s at %s",
                    booking.provider_id, booking.start_time,
                )
                raise SlotUnavailableError(
                    booking.provider_id, booking.start_time, booking.duration_minutes
                )
            if self.get_by_token(booking.access_token) is not None:
                raise ValueError("Duplicate access token")
            self._store(booking.model_copy(deep=True))
        return booking.model_copy(deep=True)

    def move_if_slot_free(
        self,
        booking_id: str,
        new_start: datetime,
        expected: Iterable[BookingStatus],
        updated_at: datetime,
    ) -> Optional[Booking]:
        """Move a booking to ``new_start`` atomically.

        Returns None when the booking is no longer in an expected status.
        """
        provider_id = self._require(booking_id).provider_id
        allowed = set(expected)
        with self._provider_lock(provider_id):
            current = self._require(booking_id)
            if current.status not in allowed:
                return None
            moved = current.model_copy(deep=True)
            moved.start_time = new_start
            moved.updated_at = updated_at
            if self._conflicts(provider_id, moved.start_time, moved.end_time, exclude_id=booking_id):
                raise SlotUnavailableError(provider_id, new_start, moved.duration_minutes)
            self._store(moved)
        return moved.model_copy(deep=True)

    def update_if_status(
        self,
        booking_id: str,
        expected: Iterable[BookingStatus],
        mutate: BookingMutation,
    ) -> Optional[Booking]:
        """Apply ``mutate`` only if the booking is still in one of ``expected``.

        The mutation runs on a copy; if it raises, the stored booking is
        left untouched.
        """
        provider_id = self._require(booking_id).provider_id
        allowed = set(expected)
        with self._provider_lock(provider_id):
            current = self._require(booking_id)
            if allowed and current.status not in allowed:
                return None
            working = current.model_copy(deep=True)
            mutate(working)
            self._store(working)
        return working.model_copy(deep=True)

    def update(self, booking_id: str, mutate: BookingMutation) -> Booking:
        updated = self.update_if_status(booking_id, (), mutate)
        if updated is None:
            raise NotFoundError("Booking", booking_id)
        return updated

    def delete(self, booking_id: str) -> bool:
        with self._lock:
            return self._bookings.pop(booking_id, None) is not None


class InMemoryNotificationRepository:
    def __init__(self) -> None:
        self._intents: dict[str, NotificationIntent] = {}
        self._lock = threading.Lock()

    def get(self, intent_id: str) -> Optional[NotificationIntent]:
        with self._lock:
            intent = self._intents.get(intent_id)
        return intent.model_copy(deep=True) if intent else None

    def save(self, intent: NotificationIntent) -> NotificationIntent:
        with self._lock:
            self._intents[intent.id] = intent.model_copy(deep=True)
        return intent

    def save_if_status(
        self,
        intent: NotificationIntent,
        expected: Iterable[NotificationStatus],
    ) -> bool:
        allowed = set(expected)
        with self._lock:
            current = self._intents.get(intent.id)
            if current is None or current.status not in allowed:
                return False
            self._intents[intent.id] = intent.model_copy(deep=True)
        return True

    def list_due(self, now: datetime) -> list[NotificationIntent]:
        with self._lock:
            due = [
                i.model_copy(deep=True)
                for i in self._intents.values()
                if i.status == NotificationStatus.PENDING and i.scheduled_for <= now
            ]
        return sorted(due, key=lambda i: i.scheduled_for)

    def list_for_booking(self, booking_id: str) -> list[NotificationIntent]:
        with self._lock:
            intents = [
                i.model_copy(deep=True)
                for i in self._intents.values()
                if i.booking_id == booking_id
            ]
        return sorted(intents, key=lambda i: i.created_at)

    def list_for_recipient(self, recipient_id: str) -> list[NotificationIntent]:
        with self._lock:
            intents = [
                i.model_copy(deep=True)
                for i in self._intents.values()
                if i.recipient_id == recipient_id
            ]
        return sorted(intents, key=lambda i: i.created_at, reverse=True)

    def list_by_status(self, status: NotificationStatus) -> list[NotificationIntent]:
        with self._lock:
            intents = [
                i.model_copy(deep=True)
                for i in self._intents.values()
                if i.status == status
            ]
        return sorted(intents, key=lambda i: i.scheduled_for)

    def list_all(self) -> list[NotificationIntent]:
        with self._lock:
            return [i.model_copy(deep=True) for i in self._intents.values()]


class InMemoryMessageRepository:
    def __init__(self) -> None:
        self._messages: dict[str, Message] = {}
        self._lock = threading.Lock()

    def _select(self, predicate) -> list[Message]:
        with self._lock:
            return [m.model_copy(deep=True) for m in self._messages.values() if predicate(m)]

    def get(self, message_id: str) -> Optional[Message]:
        with self._lock:
            message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message else None

    def save(self, message: Message) -> Message:
        with self._lock:
            self._messages[message.id] = message.model_copy(deep=True)
        return message

    def list_for_thread(self, thread_id: str) -> list[Message]:
        messages = self._select(lambda m: m.thread_id == thread_id)
        return sorted(messages, key=lambda m: m.created_at)

    def list_for_user(self, user_id: str) -> list[Message]:
        messages = self._select(lambda m: user_id in (m.sender_id, m.receiver_id))
        return sorted(messages, key=lambda m: m.created_at, reverse=True)

    def list_for_booking(self, booking_id: str) -> list[Message]:
        messages = self._select(lambda m: m.booking_id == booking_id)
        return sorted(messages, key=lambda m: m.created_at)
