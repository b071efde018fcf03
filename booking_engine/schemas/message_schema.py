"""Direct messages exchanged between guests and providers."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ParticipantType(str, Enum):
    GUEST = "guest"
    PROVIDER = "provider"


class Message(BaseModel):
    """One message in a thread.

    Guests are identified by their email address, providers by their id.
    Deleted messages are kept and flagged.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    thread_id: str
    sender_id: str
    receiver_id: str
    sender_type: ParticipantType
    receiver_type: ParticipantType
    subject: str = ""
    content: str
    booking_id: Optional[str] = None

    is_read: bool = False
    read_at: Optional[datetime] = None
    deleted: bool = False
    deleted_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.now)


class MessageRequest(BaseModel):
    """Input for sending a message."""

    sender_id: str = Field(min_length=1)
    receiver_id: str = Field(min_length=1)
    sender_type: ParticipantType
    receiver_type: ParticipantType
    subject: str = Field(default="", max_length=200)
    content: str = Field(min_length=1, max_length=5000)
    booking_id: Optional[str] = None
