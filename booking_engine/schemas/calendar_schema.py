"""Provider calendar models: recurring weekly windows and time-off periods.

Times are wall-clock values in the practice's local time; no timezone
conversion is performed anywhere in the engine.
"""

import uuid
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _new_id() -> str:
    return uuid.uuid4().hex


class DayOfWeek(str, Enum):
    """Days of the week, ordered to match ``date.weekday()``."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, day: date) -> "DayOfWeek":
        return list(cls)[day.weekday()]


def _parse_day_of_week(value: object) -> object:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class AvailabilityWindow(BaseModel):
    """A recurring weekly range during which a provider can be booked."""

    id: str = Field(default_factory=_new_id)
    provider_id: str
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    is_recurring: bool = True
    effective_from: Optional[date] = None
    effective_until: Optional[date] = None

    @field_validator("day_of_week", mode="before")
    @classmethod
    def normalize_day(cls, value: object) -> object:
        return _parse_day_of_week(value)

    @model_validator(mode="after")
    def check_bounds(self) -> "AvailabilityWindow":
        if self.start_time >= self.end_time:
            raise ValueError(
                f"start_time {self.start_time} must be before end_time {self.end_time}"
            )
        if (
            self.effective_from is not None
            and self.effective_until is not None
            and self.effective_from > self.effective_until
        ):
            raise ValueError("effective_from must not be after effective_until")
        return self

    def is_effective_on(self, day: date) -> bool:
        """Both effective bounds are inclusive; a missing bound is open-ended."""
        if self.effective_from is not None and day < self.effective_from:
            return False
        if self.effective_until is not None and day > self.effective_until:
            return False
        return True

    def bounds_on(self, day: date) -> tuple[datetime, datetime]:
        """Concrete start and end instants of this window on ``day``."""
        return datetime.combine(day, self.start_time), datetime.combine(day, self.end_time)


class TimeOffPeriod(BaseModel):
    """An explicit range removing all availability for a provider.

    Any calendar day touched by the period is unavailable in full.
    """

    id: str = Field(default_factory=_new_id)
    provider_id: str
    start: datetime
    end: datetime
    reason: str = ""
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def check_range(self) -> "TimeOffPeriod":
        if self.start > self.end:
            raise ValueError(f"start {self.start} must not be after end {self.end}")
        return self

    def covers_date(self, day: date) -> bool:
        return self.start.date() <= day <= self.end.date()


class AvailabilityWindowRequest(BaseModel):
    """Provider-submitted definition of a recurring window."""

    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    is_recurring: bool = True
    effective_from: Optional[date] = None
    effective_until: Optional[date] = None

    @field_validator("day_of_week", mode="before")
    @classmethod
    def normalize_day(cls, value: object) -> object:
        return _parse_day_of_week(value)


class TimeOffRequest(BaseModel):
    """Provider-submitted time-off period."""

    start: datetime
    end: datetime
    reason: str = ""


class TimeSlot(BaseModel):
    """A single bookable interval."""

    start: datetime
    end: datetime
    duration_minutes: int
    available: bool = True


class DaySlots(BaseModel):
    """Free slots for one provider on one date."""

    provider_id: str
    day: date
    duration_minutes: int
    slots: list[TimeSlot] = Field(default_factory=list)
    total_slots: int = 0

    @classmethod
    def from_starts(
        cls, provider_id: str, day: date, duration_minutes: int, starts: list[datetime]
    ) -> "DaySlots":
        step = timedelta(minutes=duration_minutes)
        slots = [
            TimeSlot(start=start, end=start + step, duration_minutes=duration_minutes)
            for start in starts
        ]
        return cls(
            provider_id=provider_id,
            day=day,
            duration_minutes=duration_minutes,
            slots=slots,
            total_slots=len(slots),
        )
