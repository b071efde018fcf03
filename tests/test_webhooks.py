"""Tests for webhook authentication and event dispatch."""

import json
import logging

import pytest

from booking_engine.errors import WebhookPayloadError, WebhookSignatureError
from booking_engine.logging_context import DEFAULT_REQUEST_ID, get_request_id, request_context
from booking_engine.payments.webhooks import WebhookIngestion, sign_payload
from booking_engine.schemas.booking_schema import BookingStatus, PaymentStatus
from booking_engine.schemas.notification_schema import NotificationType
from tests.conftest import WEBHOOK_SECRET, WEDNESDAY, at, make_request


def _event(event_type: str, object_id: str, payment_intent=None, event_id="evt_1") -> bytes:
    obj = {"id": object_id}
    if payment_intent is not None:
        obj["payment_intent"] = payment_intent
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode()


def _signed(clock, payload: bytes, secret: str = WEBHOOK_SECRET, skew: int = 0) -> str:
    return sign_payload(payload, secret, timestamp=int(clock.unix()) + skew)


@pytest.fixture
def pending(engine):
    return engine.booking_service.create_booking(make_request(at(WEDNESDAY, 10)))


class TestSignature:
    def test_valid_signature_accepted(self, engine, clock):
        payload = _event("customer.created", "cus_1")
        engine.webhooks.verify_signature(payload, _signed(clock, payload))

    def test_wrong_secret_rejected(self, engine, clock):
        payload = _event("customer.created", "cus_1")
        with pytest.raises(WebhookSignatureError):
            engine.webhooks.verify_signature(payload, _signed(clock, payload, secret="whsec_other"))

    def test_tampered_body_rejected(self, engine, clock):
        payload = _event("customer.created", "cus_1")
        header = _signed(clock, payload)
        with pytest.raises(WebhookSignatureError):
            engine.webhooks.verify_signature(payload + b" ", header)

    def test_missing_header_rejected(self, engine):
        with pytest.raises(WebhookSignatureError, match="Missing"):
            engine.webhooks.verify_signature(b"{}", None)

    @pytest.mark.parametrize("header", ["garbage", "t=abc,v1=00", "v1=deadbeef", "t=1700000000"])
    def test_malformed_header_rejected(self, engine, header):
        with pytest.raises(WebhookSignatureError):
            engine.webhooks.verify_signature(b"{}", header)

    def test_stale_timestamp_rejected(self, engine, clock):
        payload = _event("customer.created", "cus_1")
        with pytest.raises(WebhookSignatureError, match="tolerance"):
            engine.webhooks.verify_signature(payload, _signed(clock, payload, skew=-301))

    def test_timestamp_at_tolerance_accepted(self, engine, clock):
        payload = _event("customer.created", "cus_1")
        engine.webhooks.verify_signature(payload, _signed(clock, payload, skew=-300))

    def test_any_matching_signature_accepted(self, engine, clock):
        payload = _event("customer.created", "cus_1")
        header = _signed(clock, payload)
        ts, good = header.split(",")
        engine.webhooks.verify_signature(payload, f"{ts},v1=00ff,{good}")

    def test_empty_secret_refused(self, engine):
        with pytest.raises(ValueError):
            WebhookIngestion(engine.booking_service, "")

    def test_bad_signature_never_reaches_bookings(self, engine, clock, pending):
        payload = _event("checkout.session.completed", pending.session_id, "pi_1")
        with pytest.raises(WebhookSignatureError):
            engine.webhooks.handle(payload, _signed(clock, payload, secret="whsec_other"))
        assert engine.bookings.get(pending.booking_id).status == BookingStatus.PENDING_PAYMENT


class TestDispatch:
    def test_checkout_completed_confirms(self, engine, clock, gateway, pending):
        reference = gateway.complete_session(pending.session_id)
        payload = _event("checkout.session.completed", pending.session_id, reference)
        outcome = engine.webhooks.handle(payload, _signed(clock, payload))

        assert outcome.handled
        assert outcome.booking_id == pending.booking_id
        booking = engine.bookings.get(pending.booking_id)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_reference == reference

    def test_duplicate_completed_event_queues_one_confirmation(self, engine, clock, gateway, pending):
        reference = gateway.complete_session(pending.session_id)
        payload = _event("checkout.session.completed", pending.session_id, reference)
        first = engine.webhooks.handle(payload, _signed(clock, payload))
        second = engine.webhooks.handle(payload, _signed(clock, payload))
        assert first.handled and second.handled
        confirmations = [
            i for i in engine.notifications.list_for_booking(pending.booking_id)
            if i.notification_type == NotificationType.BOOKING_CONFIRMATION
        ]
        assert len(confirmations) == 1

    @pytest.mark.parametrize(
        "event_type", ["checkout.session.expired", "checkout.session.async_payment_failed"]
    )
    def test_failed_checkout_cancels(self, engine, clock, pending, event_type):
        payload = _event(event_type, pending.session_id)
        outcome = engine.webhooks.handle(payload, _signed(clock, payload))
        assert outcome.handled
        booking = engine.bookings.get(pending.booking_id)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.payment_status == PaymentStatus.FAILED

    def test_charge_refunded_marks_payment(self, engine, clock, confirmed_booking):
        booking, _ = confirmed_booking
        payload = _event("charge.refunded", "ch_1", booking.payment_reference)
        outcome = engine.webhooks.handle(payload, _signed(clock, payload))
        assert outcome.handled
        stored = engine.bookings.get(booking.id)
        assert stored.payment_status == PaymentStatus.REFUNDED
        assert stored.status == BookingStatus.CONFIRMED

    def test_unknown_session_acknowledged(self, engine, clock):
        payload = _event("checkout.session.completed", "cs_test_unknown", "pi_x")
        outcome = engine.webhooks.handle(payload, _signed(clock, payload))
        assert not outcome.handled
        assert "not found" in outcome.detail

    def test_late_completion_after_expiry_acknowledged(self, engine, clock, pending):
        expired = _event("checkout.session.expired", pending.session_id)
        engine.webhooks.handle(expired, _signed(clock, expired))
        completed = _event("checkout.session.completed", pending.session_id, "pi_late")
        outcome = engine.webhooks.handle(completed, _signed(clock, completed))
        assert not outcome.handled
        assert engine.bookings.get(pending.booking_id).status == BookingStatus.CANCELLED

    def test_unrelated_event_ignored(self, engine, clock):
        payload = _event("customer.created", "cus_1")
        outcome = engine.webhooks.handle(payload, _signed(clock, payload))
        assert not outcome.handled
        assert outcome.detail == "ignored"

    @pytest.mark.parametrize("payload", [b"not json", b'{"type": "checkout.session.completed"}'])
    def test_malformed_payload(self, engine, clock, payload):
        with pytest.raises(WebhookPayloadError):
            engine.webhooks.handle(payload, _signed(clock, payload))


class TestCorrelationId:
    def test_event_id_tags_booking_logs(self, engine, gateway, clock, pending, caplog):
        reference = gateway.complete_session(pending.session_id)
        payload = _event(
            "checkout.session.completed", pending.session_id, reference, event_id="evt_trace"
        )
        with caplog.at_level(logging.INFO):
            engine.webhooks.handle(payload, _signed(clock, payload))

        tagged = [r for r in caplog.records if r.name == "booking_engine.booking.lifecycle"]
        assert tagged
        assert all(r.request_id == "evt_trace" for r in tagged)
        assert get_request_id() == DEFAULT_REQUEST_ID

    def test_caller_id_restored_after_handling(self, engine, clock):
        payload = _event("checkout.session.completed", "cs_missing", event_id="evt_other")
        with request_context("REQ-outer"):
            outcome = engine.webhooks.handle(payload, _signed(clock, payload))
            assert get_request_id() == "REQ-outer"
        assert not outcome.handled
