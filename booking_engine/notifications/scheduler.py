"""
Notification scheduler: queues intents and delivers the due ones.

A single sweep picks up every pending intent whose ``scheduled_for`` has
passed and tries each of its channels. A failed channel pushes the whole
intent back by the configured backoff until ``max_retries`` attempts have
failed, after which it is marked ``failed``. Channels that already
succeeded on an earlier attempt are not sent again.

The sweep runs on an asyncio task for the lifetime of the process:

    scheduler = NotificationScheduler(repo, delivery)
    scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from booking_engine.config import NotificationConfig
from booking_engine.errors import DeliveryError, InvalidTransitionError, NotFoundError
from booking_engine.notifications.delivery import Delivery
from booking_engine.repositories.base import NotificationRepository
from booking_engine.schemas.notification_schema import (
    DeliveryChannel,
    DeliveryMethod,
    NotificationContent,
    NotificationIntent,
    NotificationStatus,
    NotificationType,
)

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Counts from one pass over the due intents."""
    processed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    discarded: int = 0


class NotificationScheduler:
    """Owns the notification intent queue and its delivery sweep."""

    def __init__(
        self,
        repository: NotificationRepository,
        delivery: Delivery,
        config: Optional[NotificationConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._repository = repository
        self._delivery = delivery
        self._config = config or NotificationConfig()
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def config(self) -> NotificationConfig:
        return self._config

    # ------------------------------------------------------------------ #
    # Queueing
    # ------------------------------------------------------------------ #

    def schedule(
        self,
        notification_type: NotificationType,
        content: NotificationContent,
        scheduled_for: datetime,
        *,
        booking_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
        recipient_type: str = "guest",
        recipient_email: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        delivery_method: DeliveryMethod = DeliveryMethod.BOTH,
    ) -> NotificationIntent:
        """Persist a new pending intent and return it."""
        intent = NotificationIntent(
            booking_id=booking_id,
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            recipient_email=recipient_email,
            recipient_phone=recipient_phone or None,
            notification_type=notification_type,
            delivery_method=delivery_method,
            subject=content.subject,
            message=content.message,
            template_ref=content.template_ref,
            template_data=dict(content.template_data),
            scheduled_for=scheduled_for,
            created_at=self._clock(),
        )
        self._repository.save(intent)
        logger.info(
            "Scheduled %s notification %s for %s (booking %s)",
            notification_type.value, intent.id, scheduled_for, booking_id,
        )
        return intent

    def cancel_pending_for_booking(
        self,
        booking_id: str,
        types: Optional[Iterable[NotificationType]] = None,
    ) -> int:
        """Mark the booking's pending intents ``cancelled``; returns how many changed."""
        wanted = set(types) if types is not None else None
        cancelled = 0
        for intent in self._repository.list_for_booking(booking_id):
            if intent.status != NotificationStatus.PENDING:
                continue
            if wanted is not None and intent.notification_type not in wanted:
                continue
            intent.status = NotificationStatus.CANCELLED
            if self._repository.save_if_status(intent, [NotificationStatus.PENDING]):
                cancelled += 1
        if cancelled:
            logger.info("Cancelled %d pending notifications for booking %s", cancelled, booking_id)
        return cancelled

    # ------------------------------------------------------------------ #
    # Administration
    # ------------------------------------------------------------------ #

    def get_intent(self, intent_id: str) -> NotificationIntent:
        intent = self._repository.get(intent_id)
        if intent is None:
            raise NotFoundError("NotificationIntent", intent_id)
        return intent

    def list_for_booking(self, booking_id: str) -> list[NotificationIntent]:
        return self._repository.list_for_booking(booking_id)

    def list_for_recipient(self, recipient_id: str) -> list[NotificationIntent]:
        return self._repository.list_for_recipient(recipient_id)

    def list_by_status(self, status: NotificationStatus) -> list[NotificationIntent]:
        return self._repository.list_by_status(status)

    def cancel_intent(self, intent_id: str) -> NotificationIntent:
        """Cancel a single pending intent."""
        intent = self.get_intent(intent_id)
        if intent.status != NotificationStatus.PENDING:
            raise InvalidTransitionError(
                intent.status.value, NotificationStatus.CANCELLED.value,
                [NotificationStatus.PENDING.value],
            )
        intent.status = NotificationStatus.CANCELLED
        if not self._repository.save_if_status(intent, [NotificationStatus.PENDING]):
            current = self.get_intent(intent_id)
            raise InvalidTransitionError(
                current.status.value, NotificationStatus.CANCELLED.value,
                [NotificationStatus.PENDING.value],
            )
        logger.info("Notification %s cancelled", intent_id)
        return intent

    def retry_failed(self, intent_id: str) -> NotificationIntent:
        """
        Put a terminally failed intent back in the queue, due immediately.

        The retry count keeps growing, so a manual retry gets a single
        further attempt before the intent is marked failed again.
        """
        intent = self.get_intent(intent_id)
        if intent.status != NotificationStatus.FAILED:
            raise InvalidTransitionError(
                intent.status.value, NotificationStatus.PENDING.value,
                [NotificationStatus.FAILED.value],
            )
        intent.status = NotificationStatus.PENDING
        intent.retry_count += 1
        intent.last_error = None
        intent.scheduled_for = self._clock()
        if not self._repository.save_if_status(intent, [NotificationStatus.FAILED]):
            current = self.get_intent(intent_id)
            raise InvalidTransitionError(
                current.status.value, NotificationStatus.PENDING.value,
                [NotificationStatus.FAILED.value],
            )
        logger.info("Notification %s re-queued by hand (attempt %d)", intent_id, intent.retry_count)
        return intent

    # ------------------------------------------------------------------ #
    # Delivery
    # ------------------------------------------------------------------ #

    def _channel_enabled(self, channel: DeliveryChannel) -> bool:
        if channel == DeliveryChannel.EMAIL:
            return self._config.email_enabled
        return self._config.sms_enabled

    def _send(self, intent: NotificationIntent, channel: DeliveryChannel) -> None:
        if channel == DeliveryChannel.EMAIL:
            if not intent.recipient_email:
                raise DeliveryError(channel.value, "no recipient email address")
            self._delivery.send_email(
                intent.recipient_email,
                intent.subject,
                intent.message,
                template_ref=intent.template_ref,
                template_data=intent.template_data,
            )
        else:
            if not intent.recipient_phone:
                raise DeliveryError(channel.value, "no recipient phone number")
            self._delivery.send_sms(intent.recipient_phone, intent.message)

    def _deliver(self, intent: NotificationIntent) -> list[str]:
        """Attempt every outstanding channel; return the error messages."""
        errors: list[str] = []
        for channel in intent.delivery_method.channels:
            if channel in intent.delivered_channels:
                continue
            if not self._channel_enabled(channel):
                logger.debug("%s disabled, skipping for notification %s", channel.value, intent.id)
                continue
            try:
                self._send(intent, channel)
            except DeliveryError as e:
                logger.warning("Delivery of %s via %s failed: %s", intent.id, channel.value, e)
                errors.append(str(e))
                continue
            intent.delivered_channels.append(channel)
        return errors

    def process_pending(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Deliver every pending intent due at ``now``.

        An intent cancelled while its delivery was in flight stays
        cancelled; the outcome of that attempt is dropped.
        """
        now = now or self._clock()
        report = SweepReport()
        due = self._repository.list_due(now)
        if due:
            logger.info("Processing %d due notifications", len(due))

        for intent in due:
            report.processed += 1
            errors = self._deliver(intent)
            if not errors:
                intent.status = NotificationStatus.SENT
                intent.sent_at = now
                intent.last_error = None
            else:
                intent.retry_count += 1
                intent.last_error = "; ".join(errors)
                if intent.retry_count < self._config.max_retries:
                    intent.scheduled_for = now + timedelta(minutes=self._config.retry_backoff_minutes)
                else:
                    intent.status = NotificationStatus.FAILED

            if not self._repository.save_if_status(intent, [NotificationStatus.PENDING]):
                report.discarded += 1
                logger.info("Notification %s changed during delivery, result discarded", intent.id)
                continue

            if intent.status == NotificationStatus.SENT:
                report.sent += 1
                logger.info("Notification %s sent", intent.id)
            elif intent.status == NotificationStatus.PENDING:
                report.retried += 1
                logger.info(
                    "Notification %s will retry at %s (attempt %d of %d)",
                    intent.id, intent.scheduled_for, intent.retry_count, self._config.max_retries,
                )
            else:
                report.failed += 1
                logger.error(
                    "Notification %s failed after %d attempts: %s",
                    intent.id, intent.retry_count, intent.last_error,
                )
        return report

    # ------------------------------------------------------------------ #
    # Background loop
    # ------------------------------------------------------------------ #

    async def run(self, stop_event: asyncio.Event, interval: Optional[float] = None) -> None:
        """Sweep every ``interval`` seconds until ``stop_event`` is set."""
        interval = interval if interval is not None else self._config.sweep_interval_seconds
        logger.info("Notification sweep started (every %.1fs)", interval)
        while not stop_event.is_set():
            try:
                await asyncio.to_thread(self.process_pending)
            except Exception:
                logger.exception("Notification sweep failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Notification sweep stopped")

    def start(self, interval: Optional[float] = None) -> asyncio.Task:
        """Start the sweep loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event, interval))
        return self._task

    async def stop(self) -> None:
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self._stop_event = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

