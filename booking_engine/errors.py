"""Error taxonomy shared by the availability, booking, and notification layers."""

from typing import Optional


class BookingEngineError(Exception):
    """Base class for all domain errors raised by the engine."""


class NotFoundError(BookingEngineError):
    """Raised when a provider, session type, booking, or other record is missing."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class SlotUnavailableError(BookingEngineError):
    """Raised when the requested interval is not free for the provider."""

    def __init__(self, provider_id: str, start: object, duration_minutes: int) -> None:
        self.provider_id = provider_id
        self.start = start
        self.duration_minutes = duration_minutes
        super().__init__(
            f"Slot {start} ({duration_minutes} min) is not available "
            f"for provider {provider_id}"
        )


class InvalidTransitionError(BookingEngineError):
    """Raised when a booking or notification status change is not allowed."""

    def __init__(self, source: str, target: str, allowed: Optional[list[str]] = None) -> None:
        self.source = source
        self.target = target
        self.allowed = allowed or []
        super().__init__(
            f"No valid transition from '{source}' to '{target}'. "
            f"Valid targets: {self.allowed}"
        )


class PolicyViolationError(BookingEngineError):
    """Raised when the cancellation notice period has not been met."""


class GatewayError(BookingEngineError):
    """Raised when the payment gateway fails to create a session or a refund."""


class DeliveryError(BookingEngineError):
    """Raised by a delivery channel that failed to send a notification."""

    def __init__(self, channel: str, message: str) -> None:
        self.channel = channel
        super().__init__(f"{channel}: {message}")


class WebhookSignatureError(BookingEngineError):
    """Raised when a webhook payload cannot be authenticated."""


class WebhookPayloadError(BookingEngineError):
    """Raised when an authenticated webhook body is not a recognisable event."""
