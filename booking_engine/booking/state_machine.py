"""
Finite state machine for booking lifecycle control.

Bookings start in ``pending_payment`` and move only along explicit
transitions keyed by trigger. Anything not listed in the table is
rejected with the source state, the requested target and the targets
that would have been allowed.

Usage:
    booking = BookingStateMachine.transition(booking, BookingTrigger.PAYMENT_SUCCEEDED)
    assert booking.status == BookingStatus.CONFIRMED
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from booking_engine.errors import InvalidTransitionError
from booking_engine.schemas.booking_schema import Booking, BookingStatus

logger = logging.getLogger(__name__)


class BookingTrigger(str, Enum):
    """Events that cause booking status transitions."""
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED_BY_CLIENT = "cancelled_by_client"
    CANCELLED_BY_PROVIDER = "cancelled_by_provider"
    SESSION_COMPLETED = "session_completed"
    MARKED_NO_SHOW = "marked_no_show"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_state: BookingStatus
    to_state: BookingStatus
    trigger: BookingTrigger


TERMINAL_STATES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}
)


class BookingStateMachine:
    """Stateless transition table applied to ``Booking`` records."""

    TRANSITIONS: list[Transition] = [
        # --- Payment gate ---
        Transition(BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED,
                   BookingTrigger.PAYMENT_SUCCEEDED),
        Transition(BookingStatus.PENDING_PAYMENT, BookingStatus.CANCELLED,
                   BookingTrigger.PAYMENT_FAILED),
        Transition(BookingStatus.PENDING_PAYMENT, BookingStatus.CANCELLED,
                   BookingTrigger.CANCELLED_BY_PROVIDER),

        # --- Confirmed booking ---
        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED,
                   BookingTrigger.CANCELLED_BY_CLIENT),
        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED,
                   BookingTrigger.CANCELLED_BY_PROVIDER),
        Transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED,
                   BookingTrigger.SESSION_COMPLETED),
        Transition(BookingStatus.CONFIRMED, BookingStatus.NO_SHOW,
                   BookingTrigger.MARKED_NO_SHOW),
    ]

    @classmethod
    def valid_targets(cls, current: BookingStatus) -> list[BookingStatus]:
        targets: list[BookingStatus] = []
        for t in cls.TRANSITIONS:
            if t.from_state == current and t.to_state not in targets:
                targets.append(t.to_state)
        return targets

    @classmethod
    def next_state(cls, current: BookingStatus, trigger: BookingTrigger) -> BookingStatus:
        """
        Resolve the target state for ``trigger`` without mutating anything.

        Raises:
            InvalidTransitionError: If ``trigger`` is not valid from ``current``.
        """
        for t in cls.TRANSITIONS:
            if t.from_state == current and t.trigger == trigger:
                return t.to_state
        target = cls._target_for(trigger)
        raise InvalidTransitionError(
            current.value,
            target.value,
            [s.value for s in cls.valid_targets(current)],
        )

    @classmethod
    def trigger_for(
        cls, current: BookingStatus, target: BookingStatus
    ) -> BookingTrigger:
        """Pick the trigger that moves ``current`` to ``target``.

        Provider-initiated cancellation is preferred when several triggers
        lead to ``cancelled``, since status updates by target come from
        the provider side.
        """
        candidates = [
            t.trigger for t in cls.TRANSITIONS
            if t.from_state == current and t.to_state == target
        ]
        if not candidates:
            raise InvalidTransitionError(
                current.value,
                target.value,
                [s.value for s in cls.valid_targets(current)],
            )
        if BookingTrigger.CANCELLED_BY_PROVIDER in candidates:
            return BookingTrigger.CANCELLED_BY_PROVIDER
        return candidates[0]

    @classmethod
    def transition(
        cls,
        booking: Booking,
        trigger: BookingTrigger,
        at: Optional[datetime] = None,
    ) -> Booking:
        """
        Apply ``trigger`` to ``booking`` in place.

        Args:
            booking: The booking to mutate.
            trigger: The event causing the transition.
            at: Timestamp recorded as ``updated_at``.

        Returns:
            The same booking, now in its new status.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        old_state = booking.status
        booking.status = cls.next_state(old_state, trigger)
        booking.updated_at = at or datetime.now()
        logger.debug(
            "Booking %s: %s -> %s (trigger: %s)",
            booking.id, old_state.value, booking.status.value, trigger.value,
        )
        return booking

    @staticmethod
    def is_terminal(status: BookingStatus) -> bool:
        return status in TERMINAL_STATES

    @classmethod
    def _target_for(cls, trigger: BookingTrigger) -> BookingStatus:
        for t in cls.TRANSITIONS:
            if t.trigger == trigger:
                return t.to_state
        raise ValueError(f"Unknown trigger: {trigger}")
