"""Notification intent models queued by the booking lifecycle."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    BOOKING_CONFIRMATION = "booking_confirmation"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"
    RESCHEDULED = "rescheduled"
    MESSAGE_RECEIVED = "message_received"


class DeliveryChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class DeliveryMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"

    @property
    def channels(self) -> list[DeliveryChannel]:
        if self == DeliveryMethod.BOTH:
            return [DeliveryChannel.EMAIL, DeliveryChannel.SMS]
        return [DeliveryChannel(self.value)]


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationContent(BaseModel):
    """Rendered subject/body plus the template reference used for email."""

    subject: str
    message: str
    template_ref: Optional[str] = None
    template_data: dict[str, Any] = Field(default_factory=dict)


class NotificationIntent(BaseModel):
    """A queued, time-scheduled delivery task with retry state."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    booking_id: Optional[str] = None
    recipient_id: Optional[str] = None
    recipient_type: str = "guest"
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None

    notification_type: NotificationType
    delivery_method: DeliveryMethod = DeliveryMethod.BOTH
    subject: str = ""
    message: str = ""
    template_ref: Optional[str] = None
    template_data: dict[str, Any] = Field(default_factory=dict)

    scheduled_for: datetime
    sent_at: Optional[datetime] = None
    status: NotificationStatus = NotificationStatus.PENDING
    retry_count: int = 0
    last_error: Optional[str] = None
    delivered_channels: list[DeliveryChannel] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=datetime.now)
