"""
Booking lifecycle: reservation, payment gating, cancellation, reschedule.

The guest reserves a slot and is sent to a hosted checkout; the booking
waits in ``pending_payment`` until the gateway reports the payment
outcome. Every status change goes through ``BookingStateMachine`` and is
written with a compare-and-set against the expected status, so replayed
gateway events and concurrent requests cannot apply a change twice.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Optional

from booking_engine.booking.policy import CancellationPolicy
from booking_engine.booking.state_machine import BookingStateMachine, BookingTrigger
from booking_engine.config import PracticeConfig
from booking_engine.errors import (
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
)
from booking_engine.logging_context import get_request_logger, with_request_id
from booking_engine.notifications import templates
from booking_engine.notifications.scheduler import NotificationScheduler
from booking_engine.payments.gateway import PaymentGateway
from booking_engine.repositories.base import (
    BookingRepository,
    ProviderRepository,
    SessionTypeRepository,
)
from booking_engine.scheduling.availability import AvailabilityEngine
from booking_engine.schemas.booking_schema import (
    Booking,
    BookingRequest,
    BookingStatus,
    CancellationResult,
    CheckoutResult,
    DashboardSummary,
    PaymentStatus,
)
from booking_engine.schemas.notification_schema import NotificationContent, NotificationType
from booking_engine.utils import normalize_phone, to_minor_units

logger = get_request_logger(__name__)

UPCOMING_DAYS = 7

# Targets a provider may set directly
PROVIDER_SETTABLE: frozenset[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.NO_SHOW, BookingStatus.CANCELLED}
)


class BookingService:
    """Guest and provider operations over bookings."""

    def __init__(
        self,
        bookings: BookingRepository,
        providers: ProviderRepository,
        session_types: SessionTypeRepository,
        availability: AvailabilityEngine,
        gateway: PaymentGateway,
        scheduler: NotificationScheduler,
        policy: Optional[CancellationPolicy] = None,
        practice: Optional[PracticeConfig] = None,
        reminder_lead_hours: int = 24,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._bookings = bookings
        self._providers = providers
        self._session_types = session_types
        self._availability = availability
        self._gateway = gateway
        self._scheduler = scheduler
        self._policy = policy or CancellationPolicy()
        self._practice = practice or PracticeConfig()
        self._reminder_lead = timedelta(hours=reminder_lead_hours)
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    def _require_booking(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    def _by_session(self, session_id: str) -> Booking:
        booking = self._bookings.get_by_session_id(session_id)
        if booking is None:
            raise NotFoundError("Booking", f"session {session_id}")
        return booking

    def _provider_name(self, provider_id: str) -> str:
        provider = self._providers.get(provider_id)
        return provider.display_name if provider else "your practitioner"

    def _lost_race(self, booking_id: str, target: BookingStatus) -> InvalidTransitionError:
        current = self._require_booking(booking_id)
        return InvalidTransitionError(
            current.status.value,
            target.value,
            [s.value for s in BookingStateMachine.valid_targets(current.status)],
        )

    def get_by_token(self, access_token: str) -> Booking:
        booking = self._bookings.get_by_token(access_token)
        if booking is None:
            raise NotFoundError("Booking", "access token")
        return booking

    def list_by_email(self, email: str) -> list[Booking]:
        return self._bookings.list_by_email(email)

    # ------------------------------------------------------------------ #
    # Notifications
    # ------------------------------------------------------------------ #

    def _queue_guest(
        self,
        booking: Booking,
        notification_type: NotificationType,
        content: NotificationContent,
        when: datetime,
    ) -> None:
        self._scheduler.schedule(
            notification_type,
            content,
            when,
            booking_id=booking.id,
            recipient_email=booking.email,
            recipient_phone=booking.phone,
        )

    def _queue_reminder(self, booking: Booking, provider_name: str, now: datetime) -> None:
        remind_at = booking.start_time - self._reminder_lead
        if remind_at <= now:
            logger.info("Reminder time for booking %s already passed, not scheduling", booking.id)
            return
        content = templates.build_reminder(self._practice, booking, provider_name)
        self._queue_guest(booking, NotificationType.REMINDER, content, remind_at)

    # ------------------------------------------------------------------ #
    # Guest operations
    # ------------------------------------------------------------------ #

    @with_request_id("BKG")
    def create_booking(self, request: BookingRequest) -> CheckoutResult:
        """
        Reserve a slot and open a checkout session for it.

        The reservation is released before any checkout failure propagates.

        Raises:
            NotFoundError: Unknown or inactive provider or session type.
            SlotUnavailableError: The interval is not free.
            GatewayError: The checkout session could not be created.
        """
        provider = self._providers.get(request.provider_id)
        if provider is None or not provider.is_active:
            raise NotFoundError("Provider", request.provider_id)
        session_type = self._session_types.get(request.session_type_id)
        if session_type is None or not session_type.is_active:
            raise NotFoundError("SessionType", request.session_type_id)

        duration = session_type.duration_minutes
        if not self._availability.is_slot_free(provider.id, request.start_time, duration):
            raise SlotUnavailableError(provider.id, request.start_time, duration)

        now = self._clock()
        booking = Booking(
            first_name=request.first_name.strip(),
            last_name=request.last_name.strip(),
            email=request.email.strip(),
            phone=normalize_phone(request.phone) if request.phone else "",
            provider_id=provider.id,
            session_type_id=session_type.id,
            start_time=request.start_time,
            duration_minutes=duration,
            modality=request.modality or session_type.modality,
            amount=session_type.price,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )
        booking = self._bookings.add_if_slot_free(booking)
        logger.info(
            "Booking %s reserved for %s with %s at %s",
            booking.id, booking.email, provider.id, booking.start_time,
        )

        try:
            session = self._gateway.create_checkout_session(
                to_minor_units(booking.amount), booking.id, booking.email
            )
        except Exception:
            self._bookings.delete(booking.id)
            logger.error("Checkout failed for booking %s, reservation released", booking.id)
            raise

        def attach_session(b: Booking) -> None:
            b.gateway_session_id = session.session_id

        self._bookings.update(booking.id, attach_session)
        return CheckoutResult(
            booking_id=booking.id,
            access_token=booking.access_token,
            session_id=session.session_id,
            redirect_url=session.redirect_url,
        )

    @with_request_id("BKG")
    def confirm_payment(self, session_id: str, payment_reference: Optional[str] = None) -> Booking:
        """Confirm the booking paid through ``session_id``. Safe to repeat."""
        booking = self._by_session(session_id)
        if booking.status == BookingStatus.CONFIRMED:
            logger.info("Booking %s already confirmed, ignoring repeat", booking.id)
            return booking

        now = self._clock()

        def apply(b: Booking) -> None:
            BookingStateMachine.transition(b, BookingTrigger.PAYMENT_SUCCEEDED, now)
            b.payment_status = PaymentStatus.COMPLETED
            if payment_reference:
                b.payment_reference = payment_reference

        confirmed = self._bookings.update_if_status(
            booking.id, [BookingStatus.PENDING_PAYMENT], apply
        )
        if confirmed is None:
            current = self._require_booking(booking.id)
            if current.status == BookingStatus.CONFIRMED:
                return current
            raise self._lost_race(booking.id, BookingStatus.CONFIRMED)

        logger.info("Booking %s confirmed (payment %s)", confirmed.id, confirmed.payment_reference)
        provider_name = self._provider_name(confirmed.provider_id)
        self._queue_guest(
            confirmed,
            NotificationType.BOOKING_CONFIRMATION,
            templates.build_confirmation(self._practice, confirmed, provider_name),
            now,
        )
        self._queue_reminder(confirmed, provider_name, now)
        return confirmed

    @with_request_id("BKG")
    def fail_payment(self, session_id: str) -> Booking:
        """Cancel the booking whose checkout failed or expired. Safe to repeat."""
        booking = self._by_session(session_id)
        if booking.status == BookingStatus.CANCELLED:
            logger.info("Booking %s already cancelled, ignoring repeat", booking.id)
            return booking

        now = self._clock()

        def apply(b: Booking) -> None:
            BookingStateMachine.transition(b, BookingTrigger.PAYMENT_FAILED, now)
            b.payment_status = PaymentStatus.FAILED

        failed = self._bookings.update_if_status(
            booking.id, [BookingStatus.PENDING_PAYMENT], apply
        )
        if failed is None:
            current = self._require_booking(booking.id)
            if current.status == BookingStatus.CANCELLED:
                return current
            raise self._lost_race(booking.id, BookingStatus.CANCELLED)

        logger.info("Booking %s cancelled after failed payment, slot released", failed.id)
        return failed

    @with_request_id("BKG")
    def cancel(
        self,
        access_token: str,
        reason: Optional[str] = None,
        *,
        enforce_notice: bool = False,
    ) -> CancellationResult:
        """
        Cancel a confirmed booking on the guest's behalf.

        The booking is cancelled first and the refund requested afterwards,
        so a retried request can never refund twice. A refund failure is
        reported on the result and does not undo the cancellation.

        With ``enforce_notice`` a late cancellation is refused with
        ``PolicyViolationError`` and the booking is left untouched.
        """
        booking = self.get_by_token(access_token)
        BookingStateMachine.next_state(booking.status, BookingTrigger.CANCELLED_BY_CLIENT)

        now = self._clock()
        if enforce_notice:
            self._policy.check_notice(booking.start_time, now)
        decision = self._policy.evaluate(booking.start_time, now, booking.has_captured_payment)

        def apply(b: Booking) -> None:
            BookingStateMachine.transition(b, BookingTrigger.CANCELLED_BY_CLIENT, now)
            b.cancellation_reason = reason

        cancelled = self._bookings.update_if_status(booking.id, [BookingStatus.CONFIRMED], apply)
        if cancelled is None:
            raise self._lost_race(booking.id, BookingStatus.CANCELLED)
        logger.info("Booking %s cancelled by guest (refund eligible: %s)", booking.id, decision.eligible)

        result = CancellationResult(booking_id=booking.id, refund_eligible=decision.eligible)
        if decision.eligible:
            try:
                refund_id = self._gateway.create_refund(
                    cancelled.payment_reference, to_minor_units(cancelled.amount)
                )
            except GatewayError as e:
                logger.error("Refund failed for booking %s: %s", booking.id, e)
                result.refund_error = str(e)
            else:
                def mark_refund(b: Booking) -> None:
                    b.payment_status = PaymentStatus.REFUNDED
                    b.refund_reference = refund_id
                    b.updated_at = now

                cancelled = self._bookings.update(booking.id, mark_refund)
                result.refund_processed = True
                result.refund_amount = cancelled.amount

        if result.refund_processed:
            refund_note = f"A full refund of ${result.refund_amount:.2f} has been issued."
        elif result.refund_error:
            refund_note = "Your refund could not be processed automatically; we will be in touch."
        else:
            refund_note = decision.reason

        self._scheduler.cancel_pending_for_booking(booking.id)
        self._queue_guest(
            cancelled,
            NotificationType.CANCELLATION,
            templates.build_cancellation(self._practice, cancelled, refund_note),
            now,
        )
        return result

    @with_request_id("BKG")
    def reschedule(self, access_token: str, new_start: datetime) -> Booking:
        """Move a confirmed booking to ``new_start``; id, token and payment are kept."""
        booking = self.get_by_token(access_token)
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidTransitionError(
                booking.status.value, "rescheduled", [BookingStatus.CONFIRMED.value]
            )

        if not self._availability.is_slot_free(
            booking.provider_id, new_start, booking.duration_minutes, exclude_booking_id=booking.id
        ):
            raise SlotUnavailableError(booking.provider_id, new_start, booking.duration_minutes)

        now = self._clock()
        moved = self._bookings.move_if_slot_free(
            booking.id, new_start, [BookingStatus.CONFIRMED], now
        )
        if moved is None:
            current = self._require_booking(booking.id)
            raise InvalidTransitionError(
                current.status.value, "rescheduled", [BookingStatus.CONFIRMED.value]
            )
        logger.info("Booking %s moved from %s to %s", moved.id, booking.start_time, moved.start_time)

        provider_name = self._provider_name(moved.provider_id)
        self._scheduler.cancel_pending_for_booking(moved.id, types=[NotificationType.REMINDER])
        self._queue_guest(
            moved,
            NotificationType.RESCHEDULED,
            templates.build_rescheduled(self._practice, moved, provider_name, booking.start_time),
            now,
        )
        self._queue_reminder(moved, provider_name, now)
        return moved

    # ------------------------------------------------------------------ #
    # Gateway-reported refunds
    # ------------------------------------------------------------------ #

    @with_request_id("BKG")
    def mark_refunded(self, payment_reference: str) -> Booking:
        booking = self._bookings.get_by_payment_reference(payment_reference)
        if booking is None:
            raise NotFoundError("Booking", f"payment {payment_reference}")
        if booking.payment_status == PaymentStatus.REFUNDED:
            return booking

        now = self._clock()

        def apply(b: Booking) -> None:
            b.payment_status = PaymentStatus.REFUNDED
            b.updated_at = now

        updated = self._bookings.update(booking.id, apply)
        logger.info("Payment %s for booking %s marked refunded", payment_reference, booking.id)
        return updated

    # ------------------------------------------------------------------ #
    # Provider operations
    # ------------------------------------------------------------------ #

    def list_provider_bookings(
        self,
        provider_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]:
        """Bookings starting within ``[start_date, end_date]``, both inclusive."""
        start = datetime.combine(start_date, datetime.min.time()) if start_date else None
        end = (
            datetime.combine(end_date + timedelta(days=1), datetime.min.time())
            if end_date else None
        )
        bookings = self._bookings.list_for_provider(provider_id, start, end)
        if status is not None:
            bookings = [b for b in bookings if b.status == status]
        return bookings

    def get_provider_booking(self, booking_id: str, provider_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None or booking.provider_id != provider_id:
            raise NotFoundError("Booking", booking_id)
        return booking

    @with_request_id("BKG")
    def update_status(
        self,
        booking_id: str,
        provider_id: str,
        status: BookingStatus,
        reason: Optional[str] = None,
    ) -> Booking:
        """Provider-driven status change; no availability check and no refund."""
        booking = self.get_provider_booking(booking_id, provider_id)
        if status not in PROVIDER_SETTABLE:
            raise InvalidTransitionError(
                booking.status.value, status.value, sorted(s.value for s in PROVIDER_SETTABLE)
            )
        trigger = BookingStateMachine.trigger_for(booking.status, status)
        now = self._clock()

        def apply(b: Booking) -> None:
            BookingStateMachine.transition(b, trigger, now)
            if status == BookingStatus.CANCELLED and reason:
                b.cancellation_reason = reason

        updated = self._bookings.update_if_status(booking.id, [booking.status], apply)
        if updated is None:
            raise self._lost_race(booking.id, status)
        logger.info(
            "Provider %s moved booking %s: %s -> %s",
            provider_id, booking.id, booking.status.value, updated.status.value,
        )

        if BookingStateMachine.is_terminal(updated.status):
            self._scheduler.cancel_pending_for_booking(updated.id)
        if status == BookingStatus.CANCELLED:
            self._queue_guest(
                updated,
                NotificationType.CANCELLATION,
                templates.build_cancellation(self._practice, updated, reason),
                now,
            )
        return updated

    def add_provider_notes(self, booking_id: str, provider_id: str, notes: str) -> Booking:
        self.get_provider_booking(booking_id, provider_id)
        now = self._clock()

        def apply(b: Booking) -> None:
            b.provider_notes = notes
            b.updated_at = now

        return self._bookings.update(booking_id, apply)

    def dashboard(self, provider_id: str, day: Optional[date] = None) -> DashboardSummary:
        day = day or self._clock().date()
        all_bookings = self._bookings.list_for_provider(provider_id)
        tomorrow = day + timedelta(days=1)
        horizon = tomorrow + timedelta(days=UPCOMING_DAYS)

        counts: dict[str, int] = {s.value: 0 for s in BookingStatus}
        for b in all_bookings:
            counts[b.status.value] += 1

        return DashboardSummary(
            provider_id=provider_id,
            day=day,
            today=[b for b in all_bookings if b.start_time.date() == day],
            upcoming=[
                b for b in all_bookings
                if tomorrow <= b.start_time.date() < horizon and b.status == BookingStatus.CONFIRMED
            ],
            status_counts=counts,
        )
