"""
Offline console demo: walks a booking through its whole lifecycle.

Uses the real availability engine, booking service, webhook ingestion and
notification sweep over in-memory repositories. No payment provider, no
mail server, no network calls. Time is simulated so reminders and retries
can be shown without waiting.

Usage:
    python console_demo.py
    python console_demo.py --scenario retry
    python console_demo.py --scenario conflict
    python console_demo.py --scenario messages
"""

import argparse
import json
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Optional

from booking_engine.config import settings
from booking_engine.container import BookingEngine, build_engine
from booking_engine.errors import SlotUnavailableError
from booking_engine.logging_context import new_request_id
from booking_engine.notifications.delivery import LoggingDelivery
from booking_engine.payments.gateway import InMemoryPaymentGateway
from booking_engine.payments.webhooks import sign_payload
from booking_engine.schemas.booking_schema import BookingRequest, Modality, Provider, SessionType
from booking_engine.schemas.calendar_schema import AvailabilityWindowRequest, DayOfWeek
from booking_engine.schemas.message_schema import MessageRequest, ParticipantType
from booking_engine.schemas.notification_schema import DeliveryChannel

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

PROVIDER_ID = "prov-sarah"
SESSION_TYPE_ID = "initial-consult"
WEEKDAYS = [DayOfWeek.MONDAY, DayOfWeek.TUESDAY, DayOfWeek.WEDNESDAY, DayOfWeek.THURSDAY, DayOfWeek.FRIDAY]


class SimulatedClock:
    """Wall clock the demo can move forward."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    def unix(self) -> float:
        return self.now.timestamp()


class ConsoleSession:
    """Runs one scripted scenario against a freshly wired engine."""

    SCENARIOS = ("booking", "retry", "conflict", "messages")

    def __init__(self, failing_channels: tuple[DeliveryChannel, ...] = ()) -> None:
        today = datetime.now().replace(hour=8, minute=0, second=0, microsecond=0)
        # Start on a Monday morning so the weekday windows apply
        self.clock = SimulatedClock(today + timedelta(days=(7 - today.weekday()) % 7 or 7))
        self.gateway = InMemoryPaymentGateway(currency=settings.payments.currency)
        self.delivery = LoggingDelivery(failing_channels=failing_channels)
        self.engine: BookingEngine = build_engine(
            settings,
            gateway=self.gateway,
            delivery=self.delivery,
            clock=self.clock,
            webhook_clock=self.clock.unix,
        )
        self._seed()

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _seed(self) -> None:
        self.engine.providers.add(Provider(
            id=PROVIDER_ID, first_name="Sarah", last_name="Mitchell",
            email="sarah@example.test", phone="0400 000 001",
        ))
        self.engine.session_types.add(SessionType(
            id=SESSION_TYPE_ID, name="Initial Consultation", duration_minutes=60,
            price=Decimal("180.00"), modality=Modality.ONLINE,
        ))
        for day in WEEKDAYS:
            self.engine.calendar.add_window(PROVIDER_ID, AvailabilityWindowRequest(
                day_of_week=day, start_time=time(9, 0), end_time=time(17, 0),
            ))

    def _header(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  BOOKING ENGINE - {title}{RESET}")
        print(f"{BOLD}  Practice: {settings.practice.name}{RESET}")
        print(f"{BOLD}  Simulated now: {self.clock.now:%A %d %B %Y %H:%M}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    def _footer(self) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{DIM}  Outbox: {len(self.delivery.outbox)} message(s){RESET}")
        for message in self.delivery.outbox:
            print(f"{DIM}    {message.channel.value:5} {message.to:28} {message.subject or message.body}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    def _send_webhook(self, event_type: str, session_id: str, payment_intent: Optional[str] = None) -> None:
        obj = {"id": session_id}
        if payment_intent:
            obj["payment_intent"] = payment_intent
        payload = json.dumps({"id": new_request_id("evt"), "type": event_type, "data": {"object": obj}}).encode()
        header = sign_payload(payload, settings.payments.webhook_secret, int(self.clock.unix()))
        outcome = self.engine.webhooks.handle(payload, header)
        self.system_log(f"Webhook {outcome.event_type}: handled={outcome.handled} ({outcome.detail})")

    def _book(self, start: datetime, email: str = "alex@example.test") -> str:
        request = BookingRequest(
            first_name="Alex", last_name="Nguyen", email=email, phone="0412 345 678",
            provider_id=PROVIDER_ID, session_type_id=SESSION_TYPE_ID, start_time=start,
        )
        checkout = self.engine.booking_service.create_booking(request)
        self.say(f"Reserved {start:%a %d %b %H:%M}; redirect to {checkout.redirect_url}")
        reference = self.gateway.complete_session(checkout.session_id)
        self._send_webhook("checkout.session.completed", checkout.session_id, reference)
        return checkout.access_token

    def _sweep(self) -> None:
        report = self.engine.scheduler.process_pending()
        self.system_log(
            f"Sweep at {self.clock.now:%d %b %H:%M}: processed={report.processed} "
            f"sent={report.sent} retried={report.retried} failed={report.failed}"
        )

    def run_booking(self) -> None:
        self._header("Booking lifecycle")
        day = (self.clock.now + timedelta(days=2)).date()
        slots = self.engine.availability.get_slots_for_date(PROVIDER_ID, day, 60)
        self.say(f"{slots.total_slots} free slots on {day:%A %d %B}:")
        self.system_log(", ".join(f"{s.start:%H:%M}" for s in slots.slots))

        token = self._book(slots.slots[0].start)
        self._sweep()

        remaining = self.engine.availability.compute_free_slots(PROVIDER_ID, day, 60)
        self.system_log(f"Free slots after booking: {len(remaining)}")

        booking = self.engine.booking_service.reschedule(token, slots.slots[2].start)
        self.say(f"Rescheduled to {booking.start_time:%H:%M}")
        self._sweep()

        result = self.engine.booking_service.cancel(token, reason="Feeling better")
        self.say(
            f"Cancelled; refund eligible={result.refund_eligible} "
            f"processed={result.refund_processed} amount=${result.refund_amount}"
        )
        self._sweep()
        self._footer()

    def run_retry(self) -> None:
        self._header("Notification retry")
        start = datetime.combine((self.clock.now + timedelta(days=3)).date(), time(10, 0))
        self._book(start)
        for _ in range(3):
            self._sweep()
            self.clock.advance(minutes=settings.notifications.retry_backoff_minutes)
        for intent in self.engine.notifications.list_all():
            colour = RED if intent.status.value == "failed" else YELLOW
            print(
                f"{colour}  {intent.notification_type.value:22} {intent.status.value:9} "
                f"retries={intent.retry_count} last_error={intent.last_error}{RESET}"
            )
        self._footer()

    def run_conflict(self) -> None:
        self._header("Double booking")
        start = datetime.combine((self.clock.now + timedelta(days=1)).date(), time(11, 0))
        self._book(start)
        try:
            self._book(start, email="jordan@example.test")
        except SlotUnavailableError as e:
            print(f"{RED}  Second booking rejected: {e}{RESET}")
        self._footer()

    def run_messages(self) -> None:
        self._header("Messaging")
        guest = "alex@example.test"
        messaging = self.engine.messaging
        question = messaging.send_message(MessageRequest(
            sender_id=guest, receiver_id=PROVIDER_ID,
            sender_type=ParticipantType.GUEST, receiver_type=ParticipantType.PROVIDER,
            subject="Parking", content="Is there parking near the practice?",
        ))
        self.say(f"Guest wrote in thread {question.thread_id}")
        messaging.send_message(MessageRequest(
            sender_id=PROVIDER_ID, receiver_id=guest,
            sender_type=ParticipantType.PROVIDER, receiver_type=ParticipantType.GUEST,
            subject="Re: Parking", content="Yes, two bays behind the building.",
        ))
        self.system_log(f"Unread for guest: {messaging.count_unread(guest)}")
        for message in messaging.unread_messages(guest):
            messaging.mark_as_read(message.id)
        self.system_log(f"Unread for guest after reading: {messaging.count_unread(guest)}")
        self._sweep()
        self._footer()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline booking engine demo")
    parser.add_argument(
        "--scenario",
        choices=ConsoleSession.SCENARIOS,
        default="booking",
        help="Which walkthrough to run",
    )
    args = parser.parse_args()

    if args.scenario == "retry":
        ConsoleSession(failing_channels=(DeliveryChannel.EMAIL,)).run_retry()
    elif args.scenario == "conflict":
        ConsoleSession().run_conflict()
    elif args.scenario == "messages":
        ConsoleSession().run_messages()
    else:
        ConsoleSession().run_booking()


if __name__ == "__main__":
    main()
