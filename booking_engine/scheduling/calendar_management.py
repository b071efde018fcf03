"""Provider-side management of recurring availability and time-off."""

import logging
from datetime import datetime
from typing import Callable

from booking_engine.errors import NotFoundError
from booking_engine.repositories.base import AvailabilityRepository, TimeOffRepository
from booking_engine.schemas.calendar_schema import (
    AvailabilityWindow,
    AvailabilityWindowRequest,
    DayOfWeek,
    TimeOffPeriod,
    TimeOffRequest,
)

logger = logging.getLogger(__name__)

_DAY_ORDER = {day: i for i, day in enumerate(DayOfWeek)}


class CalendarManagementService:
    """CRUD over a provider's windows and time-off periods.

    Every call is scoped to ``provider_id``; a record owned by another
    provider is reported as not found.
    """

    def __init__(
        self,
        windows: AvailabilityRepository,
        time_off: TimeOffRepository,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._windows = windows
        self._time_off = time_off
        self._clock = clock

    def _owned_window(self, provider_id: str, window_id: str) -> AvailabilityWindow:
        window = self._windows.get(window_id)
        if window is None or window.provider_id != provider_id:
            raise NotFoundError("AvailabilityWindow", window_id)
        return window

    def list_windows(self, provider_id: str) -> list[AvailabilityWindow]:
        windows = self._windows.list_for_provider(provider_id)
        return sorted(windows, key=lambda w: (_DAY_ORDER[w.day_of_week], w.start_time))

    def add_window(self, provider_id: str, request: AvailabilityWindowRequest) -> AvailabilityWindow:
        window = AvailabilityWindow(provider_id=provider_id, **request.model_dump())
        self._windows.save(window)
        logger.info(
            "Added availability %s for %s: %s %s-%s",
            window.id, provider_id, window.day_of_week.value, window.start_time, window.end_time,
        )
        return window

    def update_window(
        self, provider_id: str, window_id: str, request: AvailabilityWindowRequest
    ) -> AvailabilityWindow:
        self._owned_window(provider_id, window_id)
        updated = AvailabilityWindow(id=window_id, provider_id=provider_id, **request.model_dump())
        self._windows.save(updated)
        logger.info("Updated availability %s", window_id)
        return updated

    def delete_window(self, provider_id: str, window_id: str) -> None:
        self._owned_window(provider_id, window_id)
        self._windows.delete(window_id)
        logger.info("Deleted availability %s", window_id)

    def list_time_off(self, provider_id: str) -> list[TimeOffPeriod]:
        return self._time_off.list_for_provider(provider_id)

    def add_time_off(self, provider_id: str, request: TimeOffRequest) -> TimeOffPeriod:
        period = TimeOffPeriod(
            provider_id=provider_id,
            start=request.start,
            end=request.end,
            reason=request.reason,
            created_at=self._clock(),
        )
        self._time_off.save(period)
        logger.info("Added time off %s for %s: %s to %s", period.id, provider_id, period.start, period.end)
        return period

    def delete_time_off(self, provider_id: str, time_off_id: str) -> None:
        period = self._time_off.get(time_off_id)
        if period is None or period.provider_id != provider_id:
            raise NotFoundError("TimeOffPeriod", time_off_id)
        self._time_off.delete(time_off_id)
        logger.info("Deleted time off %s", time_off_id)
