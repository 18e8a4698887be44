from enum import Enum
from typing import Dict, FrozenSet

from holy_travels.errors import InvalidStateError

class BookingStatus(str, Enum):
    """Booking lifecycle status"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"

class RefundStatus(str, Enum):
    """Refund status enumeration"""
    PENDING = "pending"
    PROCESSED = "processed"
    COMPLETED = "completed"

# Allowed moves; cancelled and completed have no exits
TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

def is_terminal(status) -> bool:
    return not TRANSITIONS[BookingStatus(status)]

def can_transition(current, target) -> bool:
    return BookingStatus(target) in TRANSITIONS[BookingStatus(current)]

def ensure_transition(current, target) -> BookingStatus:
    """Return the target status, or raise InvalidStateError if the move is not allowed"""
    current = BookingStatus(current)
    target = BookingStatus(target)
    if target not in TRANSITIONS[current]:
        if is_terminal(current):
            raise InvalidStateError(f"Booking is already {current.value}")
        raise InvalidStateError(f"Cannot move booking from {current.value} to {target.value}")
    return target
