"""Client directory derived from bookings; guests are identified by email."""

import logging
from datetime import datetime
from typing import Callable

from booking_engine.repositories.base import BookingRepository
from booking_engine.schemas.booking_schema import Booking, BookingStatus, ClientSummary

logger = logging.getLogger(__name__)


def _email_key(email: str) -> str:
    return email.strip().lower()


class ClientDirectory:
    """Read-only, group-by-email view over a provider's bookings."""

    def __init__(
        self,
        bookings: BookingRepository,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._bookings = bookings
        self._clock = clock

    def _summarize(self, email: str, bookings: list[Booking], now: datetime) -> ClientSummary:
        latest = max(bookings, key=lambda b: b.created_at)
        completed = [b.start_time for b in bookings if b.status == BookingStatus.COMPLETED]
        upcoming = [
            b.start_time for b in bookings
            if b.status == BookingStatus.CONFIRMED and b.start_time > now
        ]
        return ClientSummary(
            email=email,
            first_name=latest.first_name,
            last_name=latest.last_name,
            phone=latest.phone,
            total_appointments=len(bookings),
            completed_appointments=len(completed),
            cancelled_appointments=sum(1 for b in bookings if b.status == BookingStatus.CANCELLED),
            last_appointment=max(completed) if completed else None,
            next_appointment=min(upcoming) if upcoming else None,
        )

    def list_clients(self, provider_id: str) -> list[ClientSummary]:
        """One summary per guest email, most recently seen first."""
        grouped: dict[str, list[Booking]] = {}
        for booking in self._bookings.list_for_provider(provider_id):
            grouped.setdefault(_email_key(booking.email), []).append(booking)

        now = self._clock()
        summaries = [self._summarize(email, items, now) for email, items in grouped.items()]
        # Clients without a completed appointment sort last
        summaries.sort(key=lambda s: s.last_appointment or datetime.min, reverse=True)
        logger.debug("Found %d clients for provider %s", len(summaries), provider_id)
        return summaries

    def client_bookings(self, email: str, provider_id: str) -> list[Booking]:
        return [b for b in self._bookings.list_by_email(email) if b.provider_id == provider_id]
