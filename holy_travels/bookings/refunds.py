"""Cancellation refund policy."""

from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
import math

# (days strictly greater than, percent refunded), checked in order
REFUND_TIERS: List[Tuple[int, int]] = [
    (30, 90),
    (15, 70),
    (7, 50),
    (3, 25),
]

def refund_percent(days_until_tour: int) -> int:
    for threshold, percent in REFUND_TIERS:
        if days_until_tour > threshold:
            return percent
    return 0

def days_until_tour(tour_date: date, now: Optional[datetime] = None) -> int:
    """Whole days from ``now`` to the start of the travel day, rounded up"""
    now = now or datetime.now()
    departure = datetime.combine(tour_date, time.min, tzinfo=now.tzinfo)
    return math.ceil((departure - now).total_seconds() / 86400)

def round_amount(value) -> Decimal:
    """Round to whole currency units, halves away from zero"""
    return Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)

def refund_amount(paid_amount, percent: int) -> Decimal:
    return round_amount(Decimal(paid_amount or 0) * percent / 100)
