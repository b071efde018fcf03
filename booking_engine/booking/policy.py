"""Cancellation notice and refund eligibility."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from booking_engine.errors import PolicyViolationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundDecision:
    """Whether a cancellation earns a full refund, and why not if it doesn't."""

    eligible: bool
    notice_met: bool
    reason: Optional[str] = None


class CancellationPolicy:
    """Full refund when cancelled at least ``notice_hours`` ahead of a paid session."""

    def __init__(self, notice_hours: int = 24) -> None:
        if notice_hours < 0:
            raise ValueError(f"notice_hours must be >= 0, got {notice_hours}")
        self.notice_hours = notice_hours

    @property
    def notice(self) -> timedelta:
        return timedelta(hours=self.notice_hours)

    def notice_met(self, appointment_time: datetime, now: datetime) -> bool:
        # Exactly ``notice`` ahead still counts.
        return appointment_time - now >= self.notice

    def evaluate(
        self,
        appointment_time: datetime,
        now: datetime,
        has_captured_payment: bool,
    ) -> RefundDecision:
        notice_met = self.notice_met(appointment_time, now)
        if not notice_met:
            return RefundDecision(
                eligible=False,
                notice_met=False,
                reason=f"Cancelled less than {self.notice_hours} hours before the appointment",
            )
        if not has_captured_payment:
            return RefundDecision(
                eligible=False, notice_met=True, reason="No captured payment to refund"
            )
        return RefundDecision(eligible=True, notice_met=True)

    def check_notice(self, appointment_time: datetime, now: datetime) -> None:
        """Raise ``PolicyViolationError`` when the notice period is not met."""
        if not self.notice_met(appointment_time, now):
            logger.info("Notice not met for appointment at %s (now %s)", appointment_time, now)
            raise PolicyViolationError(
                f"Changes require at least {self.notice_hours} hours notice"
            )
