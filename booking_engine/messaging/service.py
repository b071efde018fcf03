"""
Guest and provider messaging.

Messages between the same two participants share a thread, one per
booking when the message is about a booking. Every new message queues
a ``message_received`` email to its receiver; delivery is left to the
notification sweep, so a mail outage never fails the send.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from booking_engine.config import PracticeConfig
from booking_engine.errors import NotFoundError
from booking_engine.notifications import templates
from booking_engine.notifications.scheduler import NotificationScheduler
from booking_engine.repositories.base import MessageRepository, ProviderRepository
from booking_engine.schemas.message_schema import Message, MessageRequest, ParticipantType
from booking_engine.schemas.notification_schema import DeliveryMethod, NotificationType

logger = logging.getLogger(__name__)


def create_thread_id(first_id: str, second_id: str, booking_id: Optional[str] = None) -> str:
    """Thread key for a pair of participants, independent of who wrote first."""
    prefix = booking_id or "thread"
    low, high = sorted((first_id, second_id))
    return f"{prefix}_{low}_{high}"


class MessageService:
    def __init__(
        self,
        messages: MessageRepository,
        providers: ProviderRepository,
        scheduler: NotificationScheduler,
        practice: Optional[PracticeConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._messages = messages
        self._providers = providers
        self._scheduler = scheduler
        self._practice = practice or PracticeConfig()
        self._clock = clock

    def _participant(self, participant_id: str, participant_type: ParticipantType) -> tuple[str, str]:
        """Return ``(display name, email)``; guests are addressed by email."""
        if participant_type == ParticipantType.GUEST:
            return participant_id, participant_id
        provider = self._providers.get(participant_id)
        if provider is None:
            raise NotFoundError("Provider", participant_id)
        return provider.display_name, provider.email

    def _require(self, message_id: str) -> Message:
        message = self._messages.get(message_id)
        if message is None or message.deleted:
            raise NotFoundError("Message", message_id)
        return message

    def send_message(self, request: MessageRequest) -> Message:
        sender_name, _ = self._participant(request.sender_id, request.sender_type)
        _, receiver_email = self._participant(request.receiver_id, request.receiver_type)

        now = self._clock()
        message = Message(
            thread_id=create_thread_id(request.sender_id, request.receiver_id, request.booking_id),
            sender_id=request.sender_id,
            receiver_id=request.receiver_id,
            sender_type=request.sender_type,
            receiver_type=request.receiver_type,
            subject=request.subject.strip(),
            content=request.content,
            booking_id=request.booking_id,
            created_at=now,
        )
        self._messages.save(message)
        logger.info("Message %s sent in thread %s", message.id, message.thread_id)

        self._scheduler.schedule(
            NotificationType.MESSAGE_RECEIVED,
            templates.build_message_received(self._practice, message, sender_name),
            now,
            booking_id=message.booking_id,
            recipient_id=message.receiver_id,
            recipient_type=message.receiver_type.value,
            recipient_email=receiver_email,
            delivery_method=DeliveryMethod.EMAIL,
        )
        return message

    def thread_messages(self, thread_id: str) -> list[Message]:
        """Oldest first."""
        return [m for m in self._messages.list_for_thread(thread_id) if not m.deleted]

    def booking_messages(self, booking_id: str) -> list[Message]:
        return [m for m in self._messages.list_for_booking(booking_id) if not m.deleted]

    def user_messages(self, user_id: str) -> list[Message]:
        """Everything sent or received by ``user_id``, newest first."""
        return [m for m in self._messages.list_for_user(user_id) if not m.deleted]

    def unread_messages(self, user_id: str) -> list[Message]:
        return [m for m in self.user_messages(user_id) if m.receiver_id == user_id and not m.is_read]

    def count_unread(self, user_id: str) -> int:
        return len(self.unread_messages(user_id))

    def mark_as_read(self, message_id: str) -> Message:
        message = self._require(message_id)
        if message.is_read:
            return message
        message.is_read = True
        message.read_at = self._clock()
        self._messages.save(message)
        return message

    def delete_message(self, message_id: str) -> Message:
        """Hide a message from every listing; the record is kept."""
        message = self._require(message_id)
        message.deleted = True
        message.deleted_at = self._clock()
        self._messages.save(message)
        logger.info("Message %s deleted", message_id)
        return message
