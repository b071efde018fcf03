from booking_engine.booking.clients import ClientDirectory
from booking_engine.booking.lifecycle import BookingService
from booking_engine.booking.policy import CancellationPolicy, RefundDecision
from booking_engine.booking.state_machine import (
    BookingStateMachine,
    BookingTrigger,
    Transition,
)

__all__ = [
    "BookingService",
    "BookingStateMachine",
    "BookingTrigger",
    "Transition",
    "CancellationPolicy",
    "RefundDecision",
    "ClientDirectory",
]
