"""Notification copy for each booking event."""

from datetime import datetime
from typing import Any, Optional

from booking_engine.config import PracticeConfig
from booking_engine.schemas.booking_schema import Booking
from booking_engine.schemas.message_schema import Message
from booking_engine.schemas.notification_schema import NotificationContent


def format_date(value: datetime) -> str:
    """``Wednesday, November 4, 2026``"""
    return f"{value:%A, %B} {value.day}, {value.year}"


def format_time(value: datetime) -> str:
    """``9:05 AM``; the hour is not zero-padded."""
    return f"{value.hour % 12 or 12}:{value:%M %p}"


def management_link(practice: PracticeConfig, booking: Booking) -> str:
    return f"{practice.frontend_url.rstrip('/')}/booking/manage/{booking.access_token}"


def _base_data(booking: Booking, provider_name: str) -> dict[str, Any]:
    return {
        "patientName": booking.first_name,
        "psychologistName": provider_name,
        "appointmentDate": format_date(booking.start_time),
        "appointmentTime": format_time(booking.start_time),
        "modality": booking.modality.value,
    }


def build_confirmation(
    practice: PracticeConfig, booking: Booking, provider_name: str
) -> NotificationContent:
    data = _base_data(booking, provider_name)
    data["managementLink"] = management_link(practice, booking)
    return NotificationContent(
        subject=f"Booking Confirmation - {practice.name}",
        message=(
            f"Your appointment with {provider_name} is confirmed for "
            f"{data['appointmentDate']} at {data['appointmentTime']}"
        ),
        template_ref="email/booking-confirmation",
        template_data=data,
    )


def build_reminder(
    practice: PracticeConfig, booking: Booking, provider_name: str
) -> NotificationContent:
    data = _base_data(booking, provider_name)
    return NotificationContent(
        subject=f"Appointment Reminder - {practice.name}",
        message=(
            f"Reminder: {booking.first_name}, your appointment with {provider_name} "
            f"is on {data['appointmentDate']} at {data['appointmentTime']}"
        ),
        template_ref="email/appointment-reminder",
        template_data=data,
    )


def build_cancellation(
    practice: PracticeConfig,
    booking: Booking,
    refund_note: Optional[str] = None,
) -> NotificationContent:
    data: dict[str, Any] = {
        "patientName": booking.first_name,
        "appointmentDate": format_date(booking.start_time),
    }
    message = f"Your appointment on {data['appointmentDate']} has been cancelled"
    if refund_note:
        data["refundNote"] = refund_note
        message = f"{message}. {refund_note}"
    return NotificationContent(
        subject=f"Appointment Cancelled - {practice.name}",
        message=message,
        template_ref="email/cancellation-confirmation",
        template_data=data,
    )


def build_rescheduled(
    practice: PracticeConfig,
    booking: Booking,
    provider_name: str,
    previous_start: datetime,
) -> NotificationContent:
    data = _base_data(booking, provider_name)
    data["previousDate"] = format_date(previous_start)
    data["previousTime"] = format_time(previous_start)
    data["managementLink"] = management_link(practice, booking)
    return NotificationContent(
        subject=f"Appointment Rescheduled - {practice.name}",
        message=(
            f"Your appointment with {provider_name} has moved to "
            f"{data['appointmentDate']} at {data['appointmentTime']}"
        ),
        template_ref="email/appointment-rescheduled",
        template_data=data,
    )


def message_link(practice: PracticeConfig, thread_id: str) -> str:
    return f"{practice.frontend_url.rstrip('/')}/messages/{thread_id}"


def build_message_received(
    practice: PracticeConfig, message: Message, sender_name: str
) -> NotificationContent:
    return NotificationContent(
        subject=f"New Message - {practice.name}",
        message=f"You have received a new message from {sender_name}",
        template_ref="email/message-notification",
        template_data={
            "senderName": sender_name,
            "subject": message.subject,
            "messageContent": message.content,
            "messageLink": message_link(practice, message.thread_id),
        },
    )
