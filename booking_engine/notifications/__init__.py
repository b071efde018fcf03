from booking_engine.notifications.delivery import Delivery, LoggingDelivery, SentMessage
from booking_engine.notifications.scheduler import NotificationScheduler, SweepReport

__all__ = ["NotificationScheduler", "SweepReport", "Delivery", "LoggingDelivery", "SentMessage"]
