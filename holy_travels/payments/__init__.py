"""
Online Payments

Razorpay checkout for tour bookings:
- Order creation for a pending booking
- Signature verification of the checkout callback, which confirms the booking
- Admin refunds through the gateway
- Payment history per user
"""

from .signature import verify_signature
from .gateway import PaymentGateway, get_payment_gateway
from .service import PaymentService

__all__ = [
    "verify_signature",
    "PaymentGateway",
    "get_payment_gateway",
    "PaymentService"
]
