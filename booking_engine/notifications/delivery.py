"""
Delivery port for email and SMS.

In production this would wrap an SMTP or transactional-email client and
an SMS provider. ``LoggingDelivery`` logs each message and keeps an
outbox so the demo and tests can inspect what was sent.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

from booking_engine.errors import DeliveryError
from booking_engine.schemas.notification_schema import DeliveryChannel
from booking_engine.utils import to_e164

logger = logging.getLogger(__name__)


@runtime_checkable
class Delivery(Protocol):
    """Sends one message over one channel; raises ``DeliveryError`` on failure."""

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        template_ref: Optional[str] = None,
        template_data: Optional[dict[str, Any]] = None,
    ) -> None: ...

    def send_sms(self, to: str, body: str) -> None: ...


@dataclass
class SentMessage:
    """A message accepted by ``LoggingDelivery``."""
    channel: DeliveryChannel
    to: str
    body: str
    subject: Optional[str] = None
    template_ref: Optional[str] = None
    template_data: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=datetime.now)


class LoggingDelivery:
    """Delivery adapter that logs instead of sending.

    Channels listed in ``failing_channels`` raise ``DeliveryError``, which
    lets the demo show the retry path.
    """

    def __init__(
        self,
        failing_channels: Iterable[DeliveryChannel] = (),
        country_code: str = "61",
    ) -> None:
        self.outbox: list[SentMessage] = []
        self.failing_channels: set[DeliveryChannel] = set(failing_channels)
        self.attempts: dict[DeliveryChannel, int] = {c: 0 for c in DeliveryChannel}
        self._country_code = country_code

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        template_ref: Optional[str] = None,
        template_data: Optional[dict[str, Any]] = None,
    ) -> None:
        self.attempts[DeliveryChannel.EMAIL] += 1
        if DeliveryChannel.EMAIL in self.failing_channels:
            raise DeliveryError(DeliveryChannel.EMAIL.value, f"mail relay rejected {to}")
        self.outbox.append(SentMessage(
            channel=DeliveryChannel.EMAIL,
            to=to,
            subject=subject,
            body=body,
            template_ref=template_ref,
            template_data=dict(template_data or {}),
        ))
        logger.info("Email sent to %s: %s (template: %s)", to, subject, template_ref or "none")

    def send_sms(self, to: str, body: str) -> None:
        self.attempts[DeliveryChannel.SMS] += 1
        if DeliveryChannel.SMS in self.failing_channels:
            raise DeliveryError(DeliveryChannel.SMS.value, f"SMS gateway rejected {to}")
        try:
            formatted = to_e164(to, self._country_code)
        except ValueError as e:
            raise DeliveryError(DeliveryChannel.SMS.value, str(e)) from e
        self.outbox.append(SentMessage(channel=DeliveryChannel.SMS, to=formatted, body=body))
        logger.info("SMS sent to %s", formatted)

    def sent_to(self, address: str) -> list[SentMessage]:
        return [m for m in self.outbox if m.to == address]
