from booking_engine.scheduling.availability import AvailabilityEngine
from booking_engine.scheduling.calendar_management import CalendarManagementService

__all__ = ["AvailabilityEngine", "CalendarManagementService"]
