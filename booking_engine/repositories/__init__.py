from booking_engine.repositories.base import (
    AvailabilityRepository,
    BookingRepository,
    MessageRepository,
    NotificationRepository,
    ProviderRepository,
    SessionTypeRepository,
    TimeOffRepository,
)
from booking_engine.repositories.memory import (
    InMemoryAvailabilityRepository,
    InMemoryBookingRepository,
    InMemoryMessageRepository,
    InMemoryNotificationRepository,
    InMemoryProviderRepository,
    InMemorySessionTypeRepository,
    InMemoryTimeOffRepository,
)

__all__ = [
    "AvailabilityRepository", "BookingRepository", "MessageRepository",
    "NotificationRepository", "ProviderRepository", "SessionTypeRepository",
    "TimeOffRepository",
    "InMemoryAvailabilityRepository", "InMemoryBookingRepository",
    "InMemoryMessageRepository", "InMemoryNotificationRepository",
    "InMemoryProviderRepository", "InMemorySessionTypeRepository",
    "InMemoryTimeOffRepository",
]
