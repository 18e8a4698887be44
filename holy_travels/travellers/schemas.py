from pydantic import Field
from typing import Dict, List, Literal, Optional
from datetime import date

from holy_travels.schemas import CamelModel, Money, Pagination

class TravelHistoryEntry(CamelModel):
    id: int
    tour_id: Optional[int] = None
    booking_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    destinations: List[str] = []
    rating: Optional[int] = None
    feedback: Optional[str] = None

class TravellerProfile(CamelModel):
    id: int
    user_id: int
    total_trips: int
    loyalty_points: int
    membership_tier: str
    current_tour_id: Optional[int] = None
    current_booking_id: Optional[int] = None
    dietary_preferences: Optional[str] = None
    special_requirements: Optional[str] = None
    travel_history: List[TravelHistoryEntry] = []

class CurrentTrip(CamelModel):
    tour_id: int
    tour_title: str
    booking_id: str
    tour_date: date
    status: str
    duration_days: int
    destinations: List[str] = []
    ticket_details: Optional[dict] = None
    hotel_details: Optional[dict] = None

class TravellerStats(CamelModel):
    total_trips: int
    loyalty_points: int
    membership_tier: str
    total_bookings: int
    total_spent: Money
    bookings_by_status: Dict[str, int] = {}

class TravellerList(CamelModel):
    travellers: List[TravellerProfile]
    pagination: Pagination

class TripReview(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=2000)

class TravellerUser(CamelModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None

class TravellerDetail(TravellerProfile):
    user: Optional[TravellerUser] = None

class TravelDetailsUpdate(CamelModel):
    """Admin edit; omitted fields are left unchanged, a null booking clears the current trip"""
    dietary_preferences: Optional[Literal["veg", "non-veg", "vegan", "jain"]] = None
    special_requirements: Optional[str] = Field(None, max_length=2000)
    current_booking_id: Optional[int] = None
