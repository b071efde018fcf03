"""
Payment webhook ingestion.

Events arrive as a raw JSON body plus a signature header of the form
``t=<unix seconds>,v1=<hex digest>``, where the digest is HMAC-SHA256 of
``"<t>.<body>"`` under the shared webhook secret. Only authenticated events
reach the booking service.

Event handling:
    checkout.session.completed              -> BookingService.confirm_payment
    checkout.session.expired                -> BookingService.fail_payment
    checkout.session.async_payment_failed   -> BookingService.fail_payment
    charge.refunded                         -> BookingService.mark_refunded
    anything else                           -> acknowledged, ignored

Events for bookings the service does not know, or that no longer fit the
booking's status, are logged and acknowledged so the gateway stops
redelivering them.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import BaseModel, ValidationError

from booking_engine.booking.lifecycle import BookingService
from booking_engine.errors import (
    InvalidTransitionError,
    NotFoundError,
    WebhookPayloadError,
    WebhookSignatureError,
)
from booking_engine.logging_context import get_request_logger, new_request_id, request_context

logger = get_request_logger(__name__)

SIGNATURE_SCHEME = "v1"
DEFAULT_TOLERANCE_SECONDS = 300

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"
CHECKOUT_PAYMENT_FAILED = "checkout.session.async_payment_failed"
CHARGE_REFUNDED = "charge.refunded"


class EventObject(BaseModel):
    id: str
    payment_intent: Optional[str] = None


class EventData(BaseModel):
    object: EventObject


class WebhookEvent(BaseModel):
    id: Optional[str] = None
    type: str
    data: EventData


@dataclass
class WebhookOutcome:
    """What ingestion did with one event; always returned for authenticated events."""
    event_type: str
    handled: bool
    booking_id: Optional[str] = None
    detail: str = ""


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a signature header for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},{SIGNATURE_SCHEME}={compute_signature(payload, secret, ts)}"


def _parse_header(header: str) -> tuple[int, list[str]]:
    timestamp: Optional[int] = None
    signatures: list[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookSignatureError(f"Invalid timestamp in signature header: {value!r}") from None
        elif key == SIGNATURE_SCHEME:
            signatures.append(value)
    if timestamp is None:
        raise WebhookSignatureError("Signature header has no timestamp")
    if not signatures:
        raise WebhookSignatureError(f"Signature header has no {SIGNATURE_SCHEME} signature")
    return timestamp, signatures


class WebhookIngestion:
    """Authenticates gateway events and applies them to bookings."""

    def __init__(
        self,
        service: BookingService,
        secret: str,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Webhook secret must not be empty")
        self._service = service
        self._secret = secret
        self._tolerance = tolerance_seconds
        self._clock = clock

    def verify_signature(self, payload: bytes, header: Optional[str]) -> None:
        """
        Raise ``WebhookSignatureError`` unless ``header`` signs ``payload``.

        Comparison is constant-time. Timestamps further than the tolerance
        from the current time are rejected to stop replays.
        """
        if not header:
            raise WebhookSignatureError("Missing signature header")
        timestamp, signatures = _parse_header(header)

        age = abs(int(self._clock()) - timestamp)
        if age > self._tolerance:
            logger.warning("Webhook timestamp outside tolerance: %ds (max %ds)", age, self._tolerance)
            raise WebhookSignatureError("Webhook timestamp outside tolerance")

        expected = compute_signature(payload, self._secret, timestamp)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            logger.warning("Webhook signature mismatch")
            raise WebhookSignatureError("Signature does not match payload")

    def parse_event(self, payload: bytes) -> WebhookEvent:
        try:
            return WebhookEvent.model_validate_json(payload)
        except ValidationError as e:
            raise WebhookPayloadError(f"Malformed webhook payload: {e.error_count()} errors") from e

    def handle(self, payload: bytes, header: Optional[str]) -> WebhookOutcome:
        """Verify, parse and dispatch one event under the event's correlation ID."""
        self.verify_signature(payload, header)
        event = self.parse_event(payload)
        with request_context(event.id or new_request_id("evt")):
            return self._dispatch(event)

    def _dispatch(self, event: WebhookEvent) -> WebhookOutcome:
        logger.info("Received webhook event: %s", event.type)

        obj = event.data.object
        try:
            if event.type == CHECKOUT_COMPLETED:
                booking = self._service.confirm_payment(obj.id, payment_reference=obj.payment_intent)
                return WebhookOutcome(event.type, True, booking.id, "payment confirmed")
            if event.type in (CHECKOUT_EXPIRED, CHECKOUT_PAYMENT_FAILED):
                booking = self._service.fail_payment(obj.id)
                return WebhookOutcome(event.type, True, booking.id, "payment failed")
            if event.type == CHARGE_REFUNDED:
                reference = obj.payment_intent or obj.id
                booking = self._service.mark_refunded(reference)
                return WebhookOutcome(event.type, True, booking.id, "payment refunded")
        except NotFoundError as e:
            logger.warning("Webhook %s for unknown booking: %s", event.type, e)
            return WebhookOutcome(event.type, False, None, str(e))
        except InvalidTransitionError as e:
            logger.warning("Webhook %s does not apply: %s", event.type, e)
            return WebhookOutcome(event.type, False, None, str(e))

        logger.info("Unhandled webhook event type: %s", event.type)
        return WebhookOutcome(event.type, False, None, "ignored")
