from pydantic import Field
from typing import List, Optional
from datetime import datetime

from holy_travels.schemas import CamelModel, Money, Pagination
from holy_travels.bookings.schemas import BookingRecord

# Request Models
class CreateOrderRequest(CamelModel):
    """Start a checkout for a booking; amount defaults to the outstanding balance"""
    booking_id: str
    amount: Optional[Money] = Field(None, gt=0)

class PaymentVerifyRequest(CamelModel):
    """Checkout callback fields, accepted in Razorpay's snake_case or camelCase"""
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    booking_id: str
    amount: Optional[Money] = Field(None, ge=0)

class RefundRequest(CamelModel):
    booking_id: str
    amount: Optional[Money] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=1000)

# Response Models
class OrderResponse(CamelModel):
    order_id: str
    amount: int
    currency: str
    booking_id: str
    key: str

class VerifyResponse(CamelModel):
    booking: BookingRecord
    transaction_id: str

class RefundResponse(CamelModel):
    refund_id: Optional[str] = None
    amount: Money

class PaymentHistoryEntry(CamelModel):
    booking_id: str
    transaction_id: str
    tour_name: Optional[str] = None
    amount: Money
    paid_amount: Money
    status: str
    date: Optional[datetime] = None

class PaymentHistory(CamelModel):
    payments: List[PaymentHistoryEntry]
    pagination: Pagination
