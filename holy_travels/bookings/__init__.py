"""
Tour Booking Management

This module handles the booking lifecycle for tour departures, including:
- Seat reservation and release against each departure's remaining seats
- Pricing with taxes and per-passenger unit prices
- The pending/confirmed/cancelled/completed state machine
- Tiered cancellation refunds
- Admin confirmation, completion and ticket details
"""

from .state import BookingStatus, PaymentStatus, RefundStatus, can_transition, ensure_transition
from .refunds import refund_percent, refund_amount, days_until_tour
from .inventory import SeatInventoryLedger
from .booking_service import BookingService

__all__ = [
    "BookingStatus",
    "PaymentStatus",
    "RefundStatus",
    "can_transition",
    "ensure_transition",
    "refund_percent",
    "refund_amount",
    "days_until_tour",
    "SeatInventoryLedger",
    "BookingService"
]
