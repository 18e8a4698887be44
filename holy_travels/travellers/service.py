from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func
from typing import List, Optional, Tuple
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from loguru import logger
import secrets

from holy_travels.config import settings
from holy_travels.models import Booking, Traveller, TravelHistory
from holy_travels.errors import NotFoundError, ValidationError
from holy_travels.notifications.outbox import enqueue
from holy_travels.travellers.schemas import TravelDetailsUpdate

# Minimum completed trips per tier, highest first
TIER_THRESHOLDS = [
    (20, "platinum"),
    (10, "gold"),
    (5, "silver"),
    (0, "bronze"),
]
TIER_ORDER = ["bronze", "silver", "gold", "platinum"]

def membership_tier(total_trips: int) -> str:
    for minimum, tier in TIER_THRESHOLDS:
        if total_trips >= minimum:
            return tier
    return "bronze"

def loyalty_points_for(total_amount: Decimal) -> int:
    return int(Decimal(total_amount) // settings.LOYALTY_POINTS_DIVISOR)

class TravellerService:
    """Per-user traveller profile: current trip, history, loyalty"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: int) -> Optional[Traveller]:
        return self.db.query(Traveller).options(
            selectinload(Traveller.travel_history)
        ).filter(Traveller.user_id == user_id).first()

    def get_or_create(self, user_id: int) -> Traveller:
        """Return the user's profile, creating it in the current transaction if missing"""
        traveller = self.get_by_user(user_id)
        if traveller is None:
            traveller = Traveller(
                user_id=user_id,
                total_trips=0,
                loyalty_points=0,
                membership_tier="bronze"
            )
            self.db.add(traveller)
            self.db.flush()
        return traveller

    def set_current_trip(self, booking: Booking) -> Traveller:
        traveller = self.get_or_create(booking.user_id)
        traveller.current_tour_id = booking.tour_id
        traveller.current_booking_id = booking.id
        return traveller

    def clear_current_trip(self, booking: Booking):
        """Drop the current-trip pointers if they still reference this booking"""
        traveller = self.get_by_user(booking.user_id)
        if traveller and traveller.current_booking_id == booking.id:
            traveller.current_tour_id = None
            traveller.current_booking_id = None

    def record_completed_trip(self, booking: Booking) -> Traveller:
        """Append a history entry for a completed booking and refresh loyalty state.

        Does not commit; the caller owns the transaction.
        """
        traveller = self.get_or_create(booking.user_id)
        tour = booking.tour

        traveller.travel_history.append(TravelHistory(
            tour_id=tour.id,
            booking_id=booking.id,
            start_date=booking.tour_date,
            end_date=booking.tour_date + timedelta(days=tour.duration_days),
            destinations=[destination.name for destination in tour.destinations]
        ))
        traveller.total_trips = len(traveller.travel_history)

        new_tier = membership_tier(traveller.total_trips)
        if TIER_ORDER.index(new_tier) > TIER_ORDER.index(traveller.membership_tier or "bronze"):
            traveller.membership_tier = new_tier

        traveller.loyalty_points = (traveller.loyalty_points or 0) + loyalty_points_for(booking.total_amount)
        traveller.current_tour_id = None
        traveller.current_booking_id = None

        logger.bind(event="traveller_history").info(
            "Traveller {} completed trip {} (trips={}, tier={})",
            traveller.id, booking.booking_id, traveller.total_trips, traveller.membership_tier
        )
        return traveller

    def current_trip(self, user_id: int) -> Traveller:
        traveller = self.get_by_user(user_id)
        if not traveller or traveller.current_booking_id is None:
            raise NotFoundError("No active trip found")
        return traveller

    def stats(self, user_id: int) -> dict:
        traveller = self.get_or_create(user_id)

        totals = self.db.query(
            func.count(Booking.id),
            func.coalesce(func.sum(Booking.paid_amount), 0)
        ).filter(Booking.user_id == user_id).one()
        status_rows = self.db.query(Booking.status, func.count(Booking.id)).filter(
            Booking.user_id == user_id
        ).group_by(Booking.status).all()

        return {
            "total_trips": traveller.total_trips,
            "loyalty_points": traveller.loyalty_points,
            "membership_tier": traveller.membership_tier,
            "total_bookings": totals[0],
            "total_spent": Decimal(totals[1] or 0),
            "bookings_by_status": {status: count for status, count in status_rows},
        }

    def list_travellers(
        self,
        skip: int = 0,
        limit: int = 20,
        tier: Optional[str] = None
    ) -> Tuple[List[Traveller], int]:
        query = self.db.query(Traveller).options(selectinload(Traveller.user))
        if tier:
            query = query.filter(Traveller.membership_tier == tier)
        total = query.count()
        travellers = query.order_by(Traveller.total_trips.desc(), Traveller.id).offset(skip).limit(limit).all()
        return travellers, total

    def get_traveller(self, traveller_id: int) -> Traveller:
        traveller = self.db.query(Traveller).options(
            selectinload(Traveller.user),
            selectinload(Traveller.travel_history)
        ).filter(Traveller.id == traveller_id).first()
        if not traveller:
            raise NotFoundError("Traveller not found")
        return traveller

    def update_travel_details(self, traveller_id: int, details: TravelDetailsUpdate) -> Traveller:
        """Admin edit of dietary needs, special requirements and the current trip.

        Only fields present in the request are changed. A current booking must
        belong to the traveller and still be active; clearing it also clears
        the current tour.
        """
        traveller = self.get_traveller(traveller_id)
        fields = details.model_fields_set

        if "dietary_preferences" in fields:
            traveller.dietary_preferences = details.dietary_preferences
        if "special_requirements" in fields:
            traveller.special_requirements = details.special_requirements
        if "current_booking_id" in fields:
            if details.current_booking_id is None:
                traveller.current_booking_id = None
                traveller.current_tour_id = None
            else:
                booking = self.db.query(Booking).filter(
                    Booking.id == details.current_booking_id,
                    Booking.user_id == traveller.user_id
                ).first()
                if not booking:
                    raise NotFoundError("Booking not found for this traveller")
                if booking.status not in ("pending", "confirmed"):
                    raise ValidationError(f"Booking is {booking.status}")
                traveller.current_booking_id = booking.id
                traveller.current_tour_id = booking.tour_id

        enqueue(
            self.db,
            event_type="travel_details_updated",
            aggregate_type="traveller",
            aggregate_id=traveller.id,
            payload={"traveller_id": traveller.id, "user_id": traveller.user_id},
            dedupe_key=f"traveller:{traveller.id}:travel_details_updated:{secrets.token_hex(8)}"
        )
        self.db.commit()
        self.db.refresh(traveller)
        logger.bind(event="traveller_details").info(
            "Travel details of traveller {} updated ({})", traveller.id, ", ".join(sorted(fields)) or "no fields"
        )
        return traveller

    def review_trip(self, user_id: int, history_id: int, rating: int, feedback: Optional[str]) -> TravelHistory:
        """Fill in the rating left blank when the trip was completed.

        The tour's average rating and review count are recomputed from every
        rated trip in the same commit.
        """
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        entry = self.db.query(TravelHistory).join(Traveller).filter(
            TravelHistory.id == history_id,
            Traveller.user_id == user_id
        ).first()
        if not entry:
            raise NotFoundError("Travel history entry not found")

        entry.rating = rating
        entry.feedback = feedback
        self.db.flush()

        if entry.tour is not None:
            count, average = self.db.query(
                func.count(TravelHistory.id),
                func.avg(TravelHistory.rating)
            ).filter(
                TravelHistory.tour_id == entry.tour_id,
                TravelHistory.rating.isnot(None)
            ).one()
            entry.tour.total_reviews = count
            entry.tour.average_rating = Decimal(str(average or 0)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)

        self.db.commit()
        self.db.refresh(entry)
        return entry
