from typing import Dict, List, Optional, Tuple
from datetime import date, datetime, timezone
from decimal import Decimal
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func, or_, update
from loguru import logger
import secrets
import string
import time

from holy_travels.config import settings
from holy_travels.models import Booking, Passenger, Tour
from holy_travels.errors import InvalidStateError, InventoryError, NotFoundError, ValidationError
from holy_travels.bookings.schemas import BookingCreateRequest, BookingSearchFilters, TicketDetailsUpdate
from holy_travels.bookings.state import BookingStatus, PaymentStatus, RefundStatus, ensure_transition
from holy_travels.bookings.inventory import SeatInventoryLedger
from holy_travels.bookings.refunds import days_until_tour, refund_amount, refund_percent, round_amount
from holy_travels.notifications.outbox import enqueue
from holy_travels.travellers.service import TravellerService

BASE36 = string.digits + string.ascii_uppercase

def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36[remainder])
    return "".join(reversed(digits))

def generate_booking_id() -> str:
    """Human-readable booking reference: HT + base36 millisecond clock + 4 random chars"""
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(BASE36) for _ in range(4))
    return f"HT{timestamp}{suffix}"

def _as_json(model) -> Optional[dict]:
    # Stored with the same camelCase keys the API returns
    return model.model_dump(mode="json", by_alias=True) if model is not None else None

def calculate_pricing(unit_price: Decimal, passenger_count: int) -> Dict[str, Decimal]:
    base_price = Decimal(unit_price) * passenger_count
    taxes = round_amount(base_price * Decimal(str(settings.TAX_RATE)))
    return {
        "base_price": base_price,
        "taxes": taxes,
        "total_amount": base_price + taxes
    }

class BookingService:
    """Booking lifecycle: create, confirm, cancel, complete.

    Every public mutation commits once at the end, so the booking row, the
    seat ledger and the queued notification change together or not at all.
    """

    def __init__(self, db: Session):
        self.db = db
        self.inventory = SeatInventoryLedger(db)
        self.travellers = TravellerService(db)

    def create_booking(
        self,
        user_id: int,
        request: BookingCreateRequest,
        today: Optional[date] = None
    ) -> Booking:
        """Reserve seats and record a pending booking"""
        passenger_count = len(request.passengers)
        if passenger_count < 1:
            raise ValidationError("At least one passenger is required")

        today = today or date.today()
        if request.tour_date < today:
            raise ValidationError("Tour date is in the past")

        tour = self.db.query(Tour).filter(Tour.id == request.tour_id, Tour.is_active == True).first()
        if not tour:
            raise NotFoundError("Tour not found")

        departure = self.inventory.find_start_date(tour.id, request.tour_date)
        if departure is not None and departure.status != "upcoming":
            raise InventoryError(f"Departure on {request.tour_date.isoformat()} is {departure.status}")

        unit_price = Decimal(tour.unit_price)
        pricing = calculate_pricing(unit_price, passenger_count)

        try:
            self.inventory.reserve(tour.id, request.tour_date, passenger_count)

            booking = Booking(
                booking_id=generate_booking_id(),
                user_id=user_id,
                tour_id=tour.id,
                tour_date=request.tour_date,
                total_passengers=passenger_count,
                discount=Decimal("0"),
                paid_amount=Decimal("0"),
                payment_status=PaymentStatus.PENDING.value,
                status=BookingStatus.PENDING.value,
                contact_name=request.contact_name,
                contact_phone=request.contact_phone,
                contact_email=request.contact_email,
                special_requests=request.special_requests,
                **pricing
            )
            booking.passengers = [
                Passenger(position=index, price=unit_price, **passenger.model_dump())
                for index, passenger in enumerate(request.passengers)
            ]
            self.db.add(booking)
            self.db.flush()

            enqueue(
                self.db,
                event_type="booking_created",
                aggregate_type="booking",
                aggregate_id=booking.id,
                payload={"booking_id": booking.booking_id, "user_id": user_id, "tour_id": tour.id}
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.bind(event="booking_create").info(
            "Booking {} created for user {} on tour {} ({} passenger(s), total {})",
            booking.booking_id, user_id, tour.id, passenger_count, booking.total_amount
        )
        return booking

    def get_booking(self, booking_ref: str, requester=None) -> Booking:
        """Load a booking by primary key or booking ID.

        With a requester, bookings owned by someone else are reported as missing
        unless the requester is an administrator.
        """
        query = self.db.query(Booking).options(
            selectinload(Booking.passengers),
            selectinload(Booking.tour)
        )
        booking_ref = str(booking_ref)
        if booking_ref.isdigit():
            query = query.filter(Booking.id == int(booking_ref))
        else:
            query = query.filter(Booking.booking_id == booking_ref)

        booking = query.first()
        if booking is None:
            raise NotFoundError("Booking not found")
        if requester is not None and booking.user_id != requester.id and not requester.is_admin:
            raise NotFoundError("Booking not found")
        return booking

    def confirm_booking(self, booking_ref: str) -> Booking:
        """Confirm a pending booking without an online payment (admin)"""
        booking = self.get_booking(booking_ref)
        try:
            self._transition(booking, BookingStatus.CONFIRMED)
            self.travellers.set_current_trip(booking)
            self._notify(booking, "booking_confirmed")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.bind(event="booking_confirm").info("Booking {} confirmed by admin", booking.booking_id)
        return booking

    def apply_payment(self, booking: Booking, transaction_id: str, amount: Decimal) -> Booking:
        """Record a captured payment on a pending booking; the caller commits.

        The booking is confirmed once its payments cover the total. Until then
        it stays pending with a partial payment status.
        """
        ensure_transition(booking.status, BookingStatus.CONFIRMED)
        total = Decimal(booking.total_amount)
        paid = Decimal(booking.paid_amount or 0) + Decimal(amount)
        if paid > total:
            raise ValidationError("Payment exceeds the booking total")

        if paid == total:
            self._transition(booking, BookingStatus.CONFIRMED)
            booking.payment_status = PaymentStatus.COMPLETED.value
            self.travellers.set_current_trip(booking)
        else:
            booking.payment_status = PaymentStatus.PARTIAL.value
        booking.transaction_id = transaction_id
        booking.paid_amount = paid

        if paid == total:
            self._notify(booking, "payment_success", {"transaction_id": transaction_id})
        else:
            self._notify(booking, "payment_partial", {
                "transaction_id": transaction_id,
                "paid_amount": str(paid)
            }, dedupe=False)
        return booking

    def cancel_booking(
        self,
        booking_ref: str,
        requester,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> dict:
        """Cancel a pending or confirmed booking, compute its refund and free its seats"""
        booking = self.get_booking(booking_ref, requester)
        ensure_transition(booking.status, BookingStatus.CANCELLED)

        now = now or datetime.now(timezone.utc)
        days = days_until_tour(booking.tour_date, now)
        percent = refund_percent(days)
        amount = refund_amount(booking.paid_amount, percent)

        try:
            self._transition(booking, BookingStatus.CANCELLED)
            booking.cancellation_reason = reason
            booking.cancelled_at = now
            booking.refund_amount = amount
            booking.refund_status = RefundStatus.PENDING.value if amount > 0 else None

            self.inventory.release(booking.tour_id, booking.tour_date, booking.total_passengers)
            self.travellers.clear_current_trip(booking)
            self._notify(booking, "booking_cancelled", {
                "refund_amount": str(amount),
                "refund_percent": percent
            })
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.bind(event="booking_cancel").info(
            "Booking {} cancelled {} day(s) before travel, refund {}% = {}",
            booking.booking_id, days, percent, amount
        )
        return {
            "refund_amount": amount,
            "refund_percent": percent,
            "days_until_tour": days,
            "booking": booking
        }

    def complete_booking(self, booking_ref: str) -> Booking:
        """Mark a confirmed booking completed and credit the traveller (admin)"""
        booking = self.get_booking(booking_ref)
        try:
            self._transition(booking, BookingStatus.COMPLETED)
            self.travellers.record_completed_trip(booking)
            self._notify(booking, "booking_completed")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.bind(event="booking_complete").info("Booking {} completed", booking.booking_id)
        return booking

    def update_ticket_details(self, booking_ref: str, details: TicketDetailsUpdate) -> Booking:
        """Attach train and hotel details to a booking (admin)"""
        booking = self.get_booking(booking_ref)
        fields = details.model_fields_set

        if "ticket_details" in fields:
            booking.ticket_details = _as_json(details.ticket_details)
        if "hotel_details" in fields:
            booking.hotel_details = _as_json(details.hotel_details)
        if "admin_notes" in fields:
            booking.admin_notes = details.admin_notes

        self._notify(booking, "ticket_updated", dedupe=False)
        self.db.commit()
        self.db.refresh(booking)
        return booking

    def list_user_bookings(
        self,
        user_id: int,
        status: Optional[BookingStatus] = None,
        skip: int = 0,
        limit: int = 10
    ) -> Tuple[List[Booking], int]:
        """A user's bookings, newest first"""
        query = self.db.query(Booking).filter(Booking.user_id == user_id)
        if status:
            query = query.filter(Booking.status == BookingStatus(status).value)

        total = query.count()
        bookings = query.options(
            selectinload(Booking.passengers),
            selectinload(Booking.tour)
        ).order_by(Booking.created_at.desc(), Booking.id.desc()).offset(skip).limit(limit).all()
        return bookings, total

    def list_all_bookings(
        self,
        filters: BookingSearchFilters,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Booking], int, Dict[str, dict]]:
        """Every booking matching the filters, plus per-status totals across all bookings"""
        query = self.db.query(Booking)

        if filters.status:
            query = query.filter(Booking.status == BookingStatus(filters.status).value)
        if filters.tour_id:
            query = query.filter(Booking.tour_id == filters.tour_id)
        if filters.start_date:
            query = query.filter(Booking.tour_date >= filters.start_date)
        if filters.end_date:
            query = query.filter(Booking.tour_date <= filters.end_date)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.filter(or_(
                Booking.booking_id.ilike(pattern),
                Booking.contact_name.ilike(pattern),
                Booking.contact_email.ilike(pattern)
            ))

        total = query.count()
        bookings = query.options(
            selectinload(Booking.passengers),
            selectinload(Booking.tour)
        ).order_by(Booking.created_at.desc(), Booking.id.desc()).offset(skip).limit(limit).all()

        rows = self.db.query(
            Booking.status,
            func.count(Booking.id),
            func.coalesce(func.sum(Booking.total_amount), 0)
        ).group_by(Booking.status).all()
        stats = {
            status: {"count": count, "total_amount": Decimal(amount or 0)}
            for status, count, amount in rows
        }
        return bookings, total, stats

    def _transition(self, booking: Booking, target: BookingStatus):
        """Compare-and-set the status so two requests cannot both move the same booking"""
        current = booking.status
        target = ensure_transition(current, target)

        result = self.db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == current)
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError("Booking was changed by another request; reload and retry")
        booking.status = target.value

    def _notify(self, booking: Booking, event_type: str, extra: Optional[dict] = None, dedupe: bool = True):
        payload = {
            "booking_id": booking.booking_id,
            "user_id": booking.user_id,
            "tour_id": booking.tour_id,
            "status": booking.status
        }
        payload.update(extra or {})
        dedupe_key = f"booking:{booking.id}:{event_type}"
        if not dedupe:
            dedupe_key = f"{dedupe_key}:{secrets.token_hex(8)}"
        enqueue(
            self.db,
            event_type=event_type,
            aggregate_type="booking",
            aggregate_id=booking.id,
            payload=payload,
            dedupe_key=dedupe_key
        )
