"""
Availability engine: derives bookable slots from a provider's calendar.

A provider's recurring weekly windows are sliced into fixed-length steps,
then filtered by time-off, by the current instant, and by existing
occupying bookings. Windows are sliced independently and their results
concatenated, so two overlapping windows can yield the same start twice.

Usage:
    engine = AvailabilityEngine(windows, time_off, bookings)
    starts = engine.compute_free_slots("prov-1", date(2026, 11, 2), 60)
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from booking_engine.repositories.base import (
    AvailabilityRepository,
    BookingRepository,
    TimeOffRepository,
)
from booking_engine.schemas.calendar_schema import AvailabilityWindow, DayOfWeek, DaySlots
from booking_engine.utils import intervals_overlap

logger = logging.getLogger(__name__)


def _require_positive(duration_minutes: int) -> None:
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, datetime.min.time())
    return start, start + timedelta(days=1)


class AvailabilityEngine:
    """Computes free slots for a provider on a date."""

    def __init__(
        self,
        windows: AvailabilityRepository,
        time_off: TimeOffRepository,
        bookings: BookingRepository,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._windows = windows
        self._time_off = time_off
        self._bookings = bookings
        self._clock = clock

    def generate_candidate_slots(
        self, window: AvailabilityWindow, day: date, duration_minutes: int
    ) -> list[datetime]:
        """Step through one window on ``day``; a trailing partial step is dropped."""
        _require_positive(duration_minutes)
        window_start, window_end = window.bounds_on(day)
        step = timedelta(minutes=duration_minutes)

        starts: list[datetime] = []
        cursor = window_start
        while cursor + step <= window_end:
            starts.append(cursor)
            cursor += step
        return starts

    def _is_on_time_off(self, provider_id: str, day: date) -> bool:
        return any(p.covers_date(day) for p in self._time_off.list_for_provider(provider_id))

    def _effective_windows(self, provider_id: str, day: date) -> list[AvailabilityWindow]:
        return [
            w
            for w in self._windows.list_for_day(provider_id, DayOfWeek.from_date(day))
            if w.is_effective_on(day)
        ]

    def compute_free_slots(
        self, provider_id: str, day: date, duration_minutes: int
    ) -> list[datetime]:
        """Return the free slot starts for ``provider_id`` on ``day``.

        Args:
            provider_id: Provider whose calendar is consulted.
            day: Calendar date in practice-local time.
            duration_minutes: Slot length, also the step between starts.

        Returns:
            Slot starts in window order. Empty when the provider has no
            window on that weekday, is on time-off, or is fully booked.

        Raises:
            ValueError: If ``duration_minutes`` is not positive.
        """
        _require_positive(duration_minutes)

        windows = self._effective_windows(provider_id, day)
        if not windows:
            logger.debug("No availability windows for %s on %s", provider_id, day)
            return []

        if self._is_on_time_off(provider_id, day):
            logger.debug("Provider %s is on time-off on %s", provider_id, day)
            return []

        now = self._clock()
        day_start, day_end = _day_bounds(day)
        occupied = self._bookings.list_occupying(provider_id, day_start, day_end)
        step = timedelta(minutes=duration_minutes)

        free: list[datetime] = []
        for window in windows:
            for start in self.generate_candidate_slots(window, day, duration_minutes):
                if start < now:
                    continue
                end = start + step
                if any(intervals_overlap(start, end, b.start_time, b.end_time) for b in occupied):
                    continue
                free.append(start)

        logger.debug(
            "Computed %d free slots for %s on %s (%d min)",
            len(free), provider_id, day, duration_minutes,
        )
        return free

    def get_slots_for_date(
        self, provider_id: str, day: date, duration_minutes: int
    ) -> DaySlots:
        starts = self.compute_free_slots(provider_id, day, duration_minutes)
        return DaySlots.from_starts(provider_id, day, duration_minutes, starts)

    def is_slot_free(
        self,
        provider_id: str,
        start: datetime,
        duration_minutes: int,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """Check a single interval against windows, time-off and bookings.

        The interval must fit inside one effective window on its date and
        must not start in the past. ``exclude_booking_id`` ignores one
        booking, used when moving that booking.
        """
        _require_positive(duration_minutes)
        day = start.date()
        end = start + timedelta(minutes=duration_minutes)

        if start < self._clock():
            return False

        if self._is_on_time_off(provider_id, day):
            return False

        contained = False
        for window in self._effective_windows(provider_id, day):
            window_start, window_end = window.bounds_on(day)
            if window_start <= start and end <= window_end:
                contained = True
                break
        if not contained:
            return False

        day_start, day_end = _day_bounds(day)
        for booking in self._bookings.list_occupying(provider_id, day_start, day_end):
            if booking.id == exclude_booking_id:
                continue
            if intervals_overlap(start, end, booking.start_time, booking.end_time):
                return False
        return True
