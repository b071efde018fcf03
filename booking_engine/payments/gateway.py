"""
Payment gateway port and an in-memory gateway.

In production this would wrap a hosted-checkout provider (Stripe Checkout
or similar): create a checkout session for the booking amount, and later
refund the captured payment. Amounts cross this boundary in minor units.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from booking_engine.errors import GatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    """A hosted checkout the guest is redirected to."""
    session_id: str
    redirect_url: str


@runtime_checkable
class PaymentGateway(Protocol):
    def create_checkout_session(
        self, amount_minor_units: int, booking_id: str, customer_email: str
    ) -> CheckoutSession: ...

    def create_refund(self, payment_reference: str, amount_minor_units: int) -> str: ...


@dataclass
class _SessionRecord:
    session_id: str
    booking_id: str
    amount_minor_units: int
    customer_email: str
    payment_reference: Optional[str] = None


@dataclass
class _RefundRecord:
    refund_id: str
    payment_reference: str
    amount_minor_units: int


@dataclass
class InMemoryPaymentGateway:
    """Gateway double with switchable failures.

    ``complete_session`` plays the part of the guest paying: it assigns a
    payment reference that a later refund must name.
    """

    checkout_base_url: str = "https://checkout.example.test/pay"
    currency: str = "AUD"
    fail_checkout: bool = False
    fail_refund: bool = False
    sessions: dict[str, _SessionRecord] = field(default_factory=dict)
    refunds: list[_RefundRecord] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def create_checkout_session(
        self, amount_minor_units: int, booking_id: str, customer_email: str
    ) -> CheckoutSession:
        if self.fail_checkout:
            raise GatewayError("Checkout session could not be created")
        if amount_minor_units < 0:
            raise GatewayError(f"Invalid amount: {amount_minor_units}")

        session_id = f"cs_test_{uuid.uuid4().hex[:24]}"
        with self._lock:
            self.sessions[session_id] = _SessionRecord(
                session_id=session_id,
                booking_id=booking_id,
                amount_minor_units=amount_minor_units,
                customer_email=customer_email,
            )
        logger.info(
            "Checkout session %s created for booking %s (%d %s minor units)",
            session_id, booking_id, amount_minor_units, self.currency,
        )
        return CheckoutSession(session_id=session_id, redirect_url=f"{self.checkout_base_url}/{session_id}")

    def complete_session(self, session_id: str) -> str:
        """Mark the session paid and return its payment reference."""
        with self._lock:
            record = self.sessions.get(session_id)
            if record is None:
                raise GatewayError(f"Unknown checkout session: {session_id}")
            if record.payment_reference is None:
                record.payment_reference = f"pi_{uuid.uuid4().hex[:24]}"
            return record.payment_reference

    def create_refund(self, payment_reference: str, amount_minor_units: int) -> str:
        if self.fail_refund:
            raise GatewayError(f"Refund for {payment_reference} was declined")
        with self._lock:
            known = {r.payment_reference for r in self.sessions.values()}
            if payment_reference not in known:
                raise GatewayError(f"Unknown payment reference: {payment_reference}")
            refund_id = f"re_{uuid.uuid4().hex[:24]}"
            self.refunds.append(_RefundRecord(refund_id, payment_reference, amount_minor_units))
        logger.info("Refund %s issued for %s (%d minor units)", refund_id, payment_reference, amount_minor_units)
        return refund_id

    def refunds_for(self, payment_reference: str) -> list[_RefundRecord]:
        with self._lock:
            return [r for r in self.refunds if r.payment_reference == payment_reference]
