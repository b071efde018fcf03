"""Tests for notification queueing, delivery sweeps, and retry."""

import asyncio
from datetime import timedelta

import pytest

from booking_engine.config import NotificationConfig
from booking_engine.errors import DeliveryError, InvalidTransitionError, NotFoundError
from booking_engine.notifications.delivery import LoggingDelivery
from booking_engine.notifications.scheduler import NotificationScheduler
from booking_engine.repositories.memory import InMemoryNotificationRepository
from booking_engine.schemas.notification_schema import (
    DeliveryChannel,
    DeliveryMethod,
    NotificationContent,
    NotificationStatus,
    NotificationType,
)
from tests.conftest import START_OF_TEST, FakeClock

CONTENT = NotificationContent(
    subject="Appointment Reminder - Test Practice",
    message="Reminder: your appointment is tomorrow",
    template_ref="email/appointment-reminder",
    template_data={"patientName": "Alex"},
)


def _config(**overrides) -> NotificationConfig:
    values = {
        "email_enabled": True,
        "sms_enabled": True,
        "max_retries": 3,
        "retry_backoff_minutes": 5,
        "sweep_interval_seconds": 60,
    }
    values.update(overrides)
    return NotificationConfig(**values)


@pytest.fixture
def repo():
    return InMemoryNotificationRepository()


@pytest.fixture
def outbox():
    return LoggingDelivery()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(repo, outbox, clock):
    return NotificationScheduler(repo, outbox, _config(), clock=clock)


def _schedule(scheduler, when=START_OF_TEST, booking_id="b-1", **kwargs):
    params = {
        "booking_id": booking_id,
        "recipient_email": "alex@example.test",
        "recipient_phone": "0412345678",
    }
    params.update(kwargs)
    return scheduler.schedule(NotificationType.REMINDER, CONTENT, when, **params)


class TestSchedule:
    def test_new_intent_is_pending(self, scheduler, repo):
        intent = _schedule(scheduler)
        stored = repo.get(intent.id)
        assert stored.status == NotificationStatus.PENDING
        assert stored.retry_count == 0
        assert stored.subject == CONTENT.subject
        assert stored.template_data == {"patientName": "Alex"}

    def test_blank_phone_stored_as_none(self, scheduler, repo):
        intent = _schedule(scheduler, recipient_phone="")
        assert repo.get(intent.id).recipient_phone is None

    def test_not_sent_before_due(self, scheduler, outbox):
        _schedule(scheduler, when=START_OF_TEST + timedelta(hours=1))
        report = scheduler.process_pending()
        assert report.processed == 0
        assert outbox.outbox == []


class TestDelivery:
    def test_sends_both_channels(self, scheduler, repo, outbox):
        intent = _schedule(scheduler)
        report = scheduler.process_pending()
        assert report.sent == 1
        stored = repo.get(intent.id)
        assert stored.status == NotificationStatus.SENT
        assert stored.sent_at == START_OF_TEST
        assert set(stored.delivered_channels) == {DeliveryChannel.EMAIL, DeliveryChannel.SMS}
        assert [m.to for m in outbox.outbox] == ["alex@example.test", "+61412345678"]

    def test_email_carries_template(self, scheduler, outbox):
        _schedule(scheduler, delivery_method=DeliveryMethod.EMAIL)
        scheduler.process_pending()
        message = outbox.sent_to("alex@example.test")[0]
        assert message.template_ref == "email/appointment-reminder"
        assert message.template_data["patientName"] == "Alex"

    def test_disabled_channel_is_skipped_not_failed(self, repo, outbox, clock):
        scheduler = NotificationScheduler(repo, outbox, _config(sms_enabled=False), clock=clock)
        intent = _schedule(scheduler)
        scheduler.process_pending()
        stored = repo.get(intent.id)
        assert stored.status == NotificationStatus.SENT
        assert stored.delivered_channels == [DeliveryChannel.EMAIL]
        assert outbox.attempts[DeliveryChannel.SMS] == 0

    def test_sent_once_only(self, scheduler, outbox):
        _schedule(scheduler)
        scheduler.process_pending()
        scheduler.process_pending(START_OF_TEST + timedelta(hours=1))
        assert len(outbox.outbox) == 2

    def test_due_order(self, scheduler, outbox, clock):
        late = _schedule(scheduler, when=START_OF_TEST, delivery_method=DeliveryMethod.EMAIL,
                         recipient_email="late@example.test")
        early = _schedule(scheduler, when=START_OF_TEST - timedelta(hours=1),
                          delivery_method=DeliveryMethod.EMAIL, recipient_email="early@example.test")
        scheduler.process_pending()
        assert [m.to for m in outbox.outbox] == [early.recipient_email, late.recipient_email]


class TestRetry:
    def test_always_failing_channel_gives_up_after_three_attempts(self, scheduler, repo, outbox, clock):
        outbox.failing_channels.add(DeliveryChannel.EMAIL)
        intent = _schedule(scheduler, delivery_method=DeliveryMethod.EMAIL)

        first = scheduler.process_pending()
        assert first.retried == 1
        stored = repo.get(intent.id)
        assert stored.retry_count == 1
        assert stored.scheduled_for == START_OF_TEST + timedelta(minutes=5)
        assert "mail relay rejected" in stored.last_error

        # Not due again until the backoff passes
        clock.advance(minutes=4)
        assert scheduler.process_pending().processed == 0

        clock.advance(minutes=1)
        scheduler.process_pending()
        stored = repo.get(intent.id)
        assert stored.retry_count == 2
        assert stored.scheduled_for == START_OF_TEST + timedelta(minutes=10)

        clock.advance(minutes=5)
        report = scheduler.process_pending()
        assert report.failed == 1
        stored = repo.get(intent.id)
        assert stored.status == NotificationStatus.FAILED
        assert stored.retry_count == 3
        assert outbox.attempts[DeliveryChannel.EMAIL] == 3

        clock.advance(hours=1)
        assert scheduler.process_pending().processed == 0

    def test_recovers_on_later_attempt(self, scheduler, repo, outbox, clock):
        outbox.failing_channels.add(DeliveryChannel.EMAIL)
        intent = _schedule(scheduler, delivery_method=DeliveryMethod.EMAIL)
        scheduler.process_pending()

        outbox.failing_channels.clear()
        clock.advance(minutes=5)
        scheduler.process_pending()
        stored = repo.get(intent.id)
        assert stored.status == NotificationStatus.SENT
        assert stored.retry_count == 1
        assert stored.last_error is None

    def test_delivered_channel_not_resent(self, scheduler, repo, outbox, clock):
        outbox.failing_channels.add(DeliveryChannel.SMS)
        intent = _schedule(scheduler)
        scheduler.process_pending()
        stored = repo.get(intent.id)
        assert stored.delivered_channels == [DeliveryChannel.EMAIL]
        assert stored.status == NotificationStatus.PENDING

        outbox.failing_channels.clear()
        clock.advance(minutes=5)
        scheduler.process_pending()
        assert outbox.attempts[DeliveryChannel.EMAIL] == 1
        assert outbox.attempts[DeliveryChannel.SMS] == 2
        assert repo.get(intent.id).status == NotificationStatus.SENT

    def test_missing_address_counts_as_failure(self, scheduler, repo):
        intent = _schedule(scheduler, recipient_phone=None, delivery_method=DeliveryMethod.SMS)
        scheduler.process_pending()
        stored = repo.get(intent.id)
        assert stored.retry_count == 1
        assert "no recipient phone" in stored.last_error

    def test_custom_retry_limit(self, repo, outbox, clock):
        scheduler = NotificationScheduler(repo, outbox, _config(max_retries=1), clock=clock)
        outbox.failing_channels.add(DeliveryChannel.EMAIL)
        intent = _schedule(scheduler, delivery_method=DeliveryMethod.EMAIL)
        scheduler.process_pending()
        assert repo.get(intent.id).status == NotificationStatus.FAILED


class TestCancelPending:
    def test_cancels_only_pending(self, scheduler, repo):
        sent = _schedule(scheduler)
        scheduler.process_pending()
        pending = _schedule(scheduler, when=START_OF_TEST + timedelta(days=1))

        assert scheduler.cancel_pending_for_booking("b-1") == 1
        assert repo.get(pending.id).status == NotificationStatus.CANCELLED
        assert repo.get(sent.id).status == NotificationStatus.SENT

    def test_filter_by_type(self, scheduler, repo):
        reminder = _schedule(scheduler, when=START_OF_TEST + timedelta(days=1))
        other = scheduler.schedule(
            NotificationType.MESSAGE_RECEIVED, CONTENT, START_OF_TEST + timedelta(days=1),
            booking_id="b-1", recipient_email="alex@example.test",
        )
        scheduler.cancel_pending_for_booking("b-1", types=[NotificationType.REMINDER])
        assert repo.get(reminder.id).status == NotificationStatus.CANCELLED
        assert repo.get(other.id).status == NotificationStatus.PENDING

    def test_other_bookings_untouched(self, scheduler, repo):
        mine = _schedule(scheduler, when=START_OF_TEST + timedelta(days=1))
        theirs = _schedule(scheduler, when=START_OF_TEST + timedelta(days=1), booking_id="b-2")
        scheduler.cancel_pending_for_booking("b-1")
        assert repo.get(mine.id).status == NotificationStatus.CANCELLED
        assert repo.get(theirs.id).status == NotificationStatus.PENDING

    def test_cancelled_intent_not_delivered(self, scheduler, outbox):
        _schedule(scheduler)
        scheduler.cancel_pending_for_booking("b-1")
        assert scheduler.process_pending().processed == 0
        assert outbox.outbox == []


class CancellingDelivery(LoggingDelivery):
    """Cancels the booking's notifications while an email is being sent."""

    def __init__(self, fail: bool) -> None:
        super().__init__()
        self.fail = fail
        self.scheduler = None

    def send_email(self, to, subject, body, template_ref=None, template_data=None):
        self.scheduler.cancel_pending_for_booking("b-1")
        if self.fail:
            raise DeliveryError(DeliveryChannel.EMAIL.value, "relay timed out")
        super().send_email(to, subject, body, template_ref, template_data)


class TestCancelDuringDelivery:
    @pytest.mark.parametrize("fail", [True, False])
    def test_cancellation_survives_in_flight_delivery(self, repo, clock, fail):
        delivery = CancellingDelivery(fail=fail)
        scheduler = NotificationScheduler(repo, delivery, _config(), clock=clock)
        delivery.scheduler = scheduler
        intent = _schedule(
            scheduler, when=START_OF_TEST - timedelta(seconds=1),
            delivery_method=DeliveryMethod.EMAIL,
        )

        report = scheduler.process_pending()

        stored = repo.get(intent.id)
        assert stored.status == NotificationStatus.CANCELLED
        assert stored.retry_count == 0
        assert stored.sent_at is None
        assert report.processed == 1
        assert report.discarded == 1
        assert report.sent == report.retried == report.failed == 0

    def test_cancel_after_sweep_leaves_sent_intent(self, scheduler, repo):
        intent = _schedule(scheduler)
        scheduler.process_pending()
        assert scheduler.cancel_pending_for_booking("b-1") == 0
        assert repo.get(intent.id).status == NotificationStatus.SENT


class TestAdministration:
    def _fail_terminally(self, scheduler, outbox, clock):
        outbox.failing_channels.add(DeliveryChannel.EMAIL)
        intent = _schedule(scheduler, delivery_method=DeliveryMethod.EMAIL)
        for _ in range(3):
            scheduler.process_pending()
            clock.advance(minutes=5)
        return intent

    def test_get_intent(self, scheduler):
        intent = _schedule(scheduler)
        assert scheduler.get_intent(intent.id).notification_type == NotificationType.REMINDER

    def test_get_unknown_intent(self, scheduler):
        with pytest.raises(NotFoundError) as exc_info:
            scheduler.get_intent("missing")
        assert exc_info.value.kind == "NotificationIntent"

    def test_list_by_status(self, scheduler, outbox, clock):
        failed = self._fail_terminally(scheduler, outbox, clock)
        pending = _schedule(scheduler, when=clock.now + timedelta(days=1))
        assert [i.id for i in scheduler.list_by_status(NotificationStatus.FAILED)] == [failed.id]
        assert [i.id for i in scheduler.list_by_status(NotificationStatus.PENDING)] == [pending.id]
        assert scheduler.list_by_status(NotificationStatus.SENT) == []

    def test_list_for_booking_and_recipient(self, scheduler, clock):
        first = _schedule(scheduler, recipient_id="guest-1")
        clock.advance(minutes=1)
        second = _schedule(scheduler, recipient_id="guest-1", booking_id="b-2")
        _schedule(scheduler, recipient_id="guest-2")

        assert [i.id for i in scheduler.list_for_recipient("guest-1")] == [second.id, first.id]
        assert len(scheduler.list_for_booking("b-1")) == 2
        assert [i.id for i in scheduler.list_for_booking("b-2")] == [second.id]

    def test_cancel_pending_intent(self, scheduler, repo, outbox):
        intent = _schedule(scheduler)
        cancelled = scheduler.cancel_intent(intent.id)
        assert cancelled.status == NotificationStatus.CANCELLED
        assert repo.get(intent.id).status == NotificationStatus.CANCELLED
        assert scheduler.process_pending().processed == 0
        assert outbox.outbox == []

    def test_cannot_cancel_sent_intent(self, scheduler, repo):
        intent = _schedule(scheduler)
        scheduler.process_pending()
        with pytest.raises(InvalidTransitionError):
            scheduler.cancel_intent(intent.id)
        assert repo.get(intent.id).status == NotificationStatus.SENT

    def test_retry_failed_requeues_immediately(self, scheduler, repo, outbox, clock):
        intent = self._fail_terminally(scheduler, outbox, clock)
        outbox.failing_channels.clear()

        retried = scheduler.retry_failed(intent.id)
        assert retried.status == NotificationStatus.PENDING
        assert retried.retry_count == 4
        assert retried.last_error is None
        assert retried.scheduled_for == clock.now

        assert scheduler.process_pending().sent == 1
        assert repo.get(intent.id).status == NotificationStatus.SENT

    def test_retry_gets_one_more_attempt(self, scheduler, repo, outbox, clock):
        intent = self._fail_terminally(scheduler, outbox, clock)
        scheduler.retry_failed(intent.id)
        assert scheduler.process_pending().failed == 1
        assert repo.get(intent.id).status == NotificationStatus.FAILED

    def test_retry_requires_failed_status(self, scheduler):
        intent = _schedule(scheduler)
        with pytest.raises(InvalidTransitionError):
            scheduler.retry_failed(intent.id)


class TestBackgroundLoop:
    @pytest.mark.asyncio
    async def test_run_sweeps_until_stopped(self, scheduler, repo):
        intent = _schedule(scheduler)
        stop = asyncio.Event()
        task = asyncio.create_task(scheduler.run(stop, interval=0.01))
        for _ in range(100):
            if repo.get(intent.id).status == NotificationStatus.SENT:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        assert repo.get(intent.id).status == NotificationStatus.SENT

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler):
        task = scheduler.start(interval=0.01)
        assert scheduler.running
        assert scheduler.start(interval=0.01) is task
        await scheduler.stop()
        assert not scheduler.running
        assert task.done()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, scheduler):
        await scheduler.stop()
        assert not scheduler.running
