from sqlalchemy.orm import Session, selectinload
from typing import List, Optional, Tuple
from decimal import Decimal
from loguru import logger

from holy_travels.config import settings
from holy_travels.models import Booking
from holy_travels.errors import (
    InvalidStateError, PaymentGatewayError, PaymentVerificationError, ValidationError
)
from holy_travels.bookings.booking_service import BookingService
from holy_travels.bookings.state import BookingStatus, PaymentStatus, RefundStatus, ensure_transition
from holy_travels.notifications.outbox import enqueue
from holy_travels.payments.gateway import PaymentGateway
from holy_travels.payments.schemas import PaymentVerifyRequest
from holy_travels.payments.signature import verify_signature

class PaymentService:
    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.bookings = BookingService(db)

    def create_order(self, user, booking_ref: str, amount: Optional[Decimal] = None) -> dict:
        """Open a Razorpay order for one of the user's pending bookings.

        The amount defaults to the outstanding balance and may not exceed it.
        It is stored on the booking and is the amount verification records.
        """
        booking = self.bookings.get_booking(booking_ref, user)
        if booking.status != BookingStatus.PENDING.value or booking.payment_status == PaymentStatus.COMPLETED.value:
            raise InvalidStateError("Booking is not awaiting payment")

        balance = Decimal(booking.total_amount) - Decimal(booking.paid_amount or 0)
        amount = Decimal(amount) if amount is not None else balance
        if amount <= 0 or amount > balance:
            raise ValidationError(f"Order amount must be positive and at most the outstanding {balance}")

        order = self.gateway.create_order(
            amount,
            receipt=f"booking_{booking.booking_id}",
            notes={
                "bookingId": booking.booking_id,
                "userId": str(booking.user_id),
                "tourName": booking.tour.title
            }
        )

        booking.order_id = order["id"]
        booking.order_amount = amount
        booking.payment_method = "razorpay"
        self.db.commit()

        logger.bind(event="payment_order").info(
            "Order {} created for booking {} ({} {})",
            order["id"], booking.booking_id, amount, settings.PAYMENT_CURRENCY
        )
        return {
            "order_id": order["id"],
            "amount": order["amount"],
            "currency": order.get("currency", settings.PAYMENT_CURRENCY),
            "booking_id": booking.booking_id,
            "key": self.gateway.key_id
        }

    def verify_payment(self, user, request: PaymentVerifyRequest) -> Booking:
        """Record a payment from a signed checkout callback.

        The signature is checked before the booking is even loaded, so a forged
        callback changes nothing. The amount recorded is the one stored with the
        open order; a callback amount that differs from it is rejected. Replaying
        the callback that already applied returns the booking unchanged.
        """
        secret = settings.RAZORPAY_KEY_SECRET
        if not secret:
            raise PaymentGatewayError("Payment verification is not configured")
        if not verify_signature(
            request.razorpay_order_id, request.razorpay_payment_id, request.razorpay_signature, secret
        ):
            logger.bind(event="payment_verify").warning(
                "Invalid signature for order {} (booking {})", request.razorpay_order_id, request.booking_id
            )
            raise PaymentVerificationError("Invalid payment signature")

        booking = self.bookings.get_booking(request.booking_id, user)

        if (
            booking.transaction_id == request.razorpay_payment_id
            and booking.payment_status in (PaymentStatus.COMPLETED.value, PaymentStatus.PARTIAL.value)
        ):
            return booking
        ensure_transition(booking.status, BookingStatus.CONFIRMED)

        if not booking.order_id or booking.order_amount is None:
            raise PaymentVerificationError("No open payment order for this booking")
        if booking.order_id != request.razorpay_order_id:
            raise PaymentVerificationError("Order does not belong to this booking")

        amount = Decimal(booking.order_amount)
        if request.amount is not None and Decimal(request.amount) != amount:
            raise PaymentVerificationError("Amount does not match the payment order")
        if Decimal(booking.paid_amount or 0) + amount > Decimal(booking.total_amount):
            raise PaymentVerificationError("Payment exceeds the booking total")

        try:
            self.bookings.apply_payment(booking, request.razorpay_payment_id, amount)
            # One payment per order
            booking.order_amount = None
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.bind(event="payment_verify").info(
            "Payment {} applied to booking {} (paid {} of {}, {})",
            request.razorpay_payment_id, booking.booking_id,
            booking.paid_amount, booking.total_amount, booking.payment_status
        )
        return booking

    def refund(self, booking_ref: str, amount: Optional[Decimal] = None, reason: Optional[str] = None) -> dict:
        """Refund a captured payment through the gateway (admin)"""
        booking = self.bookings.get_booking(booking_ref)
        if not booking.transaction_id:
            raise ValidationError("No payment found for this booking")
        if booking.payment_status == PaymentStatus.REFUNDED.value:
            raise InvalidStateError("Booking payment is already refunded")

        if amount is None:
            amount = booking.refund_amount if booking.refund_amount else booking.paid_amount
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationError("Refund amount must be positive")
        if amount > Decimal(booking.paid_amount or 0):
            raise ValidationError("Refund amount exceeds the amount paid")

        refund = self.gateway.refund(
            booking.transaction_id,
            amount,
            notes={"reason": reason or "", "bookingId": booking.booking_id}
        )

        booking.refund_amount = amount
        booking.refund_status = RefundStatus.PROCESSED.value
        booking.payment_status = PaymentStatus.REFUNDED.value
        enqueue(
            self.db,
            event_type="refund_processed",
            aggregate_type="booking",
            aggregate_id=booking.id,
            payload={
                "booking_id": booking.booking_id,
                "user_id": booking.user_id,
                "refund_amount": str(amount)
            },
            dedupe_key=f"booking:{booking.id}:refund_processed"
        )
        self.db.commit()

        logger.bind(event="payment_refund").info(
            "Refunded {} on booking {} (refund {})", amount, booking.booking_id, refund.get("id")
        )
        return {"refund_id": refund.get("id"), "amount": amount}

    def payment_history(self, user_id: int, skip: int = 0, limit: int = 10) -> Tuple[List[Booking], int]:
        """Bookings of a user that carry a payment, newest first"""
        query = self.db.query(Booking).filter(
            Booking.user_id == user_id,
            Booking.transaction_id.isnot(None)
        )
        total = query.count()
        bookings = query.options(selectinload(Booking.tour)).order_by(
            Booking.created_at.desc(), Booking.id.desc()
        ).offset(skip).limit(limit).all()
        return bookings, total
