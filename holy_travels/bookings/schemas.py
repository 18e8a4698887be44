from pydantic import EmailStr, Field, field_validator
from typing import Dict, List, Literal, Optional
from datetime import date, datetime

from holy_travels.schemas import CamelModel, Money, Pagination
from holy_travels.bookings.state import BookingStatus, PaymentStatus, RefundStatus

# Passenger Information
class PassengerInfo(CamelModel):
    """Individual passenger as entered at booking time"""
    name: str = Field(..., min_length=1, max_length=255)
    age: Optional[int] = Field(None, ge=0, le=120)
    gender: Optional[Literal["male", "female", "other"]] = None
    age_category: Literal["adult", "child", "infant", "senior"] = "adult"
    phone: Optional[str] = None

class Passenger(PassengerInfo):
    price: Optional[Money] = None

# Booking Request Models
class BookingCreateRequest(CamelModel):
    """Request to book a tour departure"""
    tour_id: int
    tour_date: date
    passengers: List[PassengerInfo]
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    special_requests: Optional[str] = Field(None, max_length=2000)

    @field_validator("tour_date", mode="before")
    @classmethod
    def strip_time_of_day(cls, v):
        # Departures are matched by calendar day; ISO datetimes keep only their date part
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return datetime.fromisoformat(v.replace("Z", "+00:00")).date()
        return v

    @field_validator("passengers")
    @classmethod
    def validate_passengers(cls, v):
        if not v:
            raise ValueError("At least one passenger is required")
        return v

class BookingCancellationRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=1000)

class TicketDetails(CamelModel):
    ticket_number: Optional[str] = None
    pnr: Optional[str] = None
    train_number: Optional[str] = None
    train_name: Optional[str] = None
    coach: Optional[str] = None
    seat_numbers: List[str] = []
    departure_station: Optional[str] = None
    arrival_station: Optional[str] = None
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    platform: Optional[str] = None

class HotelDetails(CamelModel):
    hotel_name: Optional[str] = None
    address: Optional[str] = None
    room_numbers: List[str] = []
    room_type: Optional[str] = None
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None

class TicketDetailsUpdate(CamelModel):
    ticket_details: Optional[TicketDetails] = None
    hotel_details: Optional[HotelDetails] = None
    admin_notes: Optional[str] = None

# Booking Response Models
class TourBrief(CamelModel):
    id: int
    title: str
    slug: str
    category: str
    duration_days: int

class BookingRecord(CamelModel):
    """Booking as returned to clients"""
    id: int
    booking_id: str
    user_id: int
    tour_id: int
    tour: Optional[TourBrief] = None
    tour_date: date
    passengers: List[Passenger]
    total_passengers: int
    base_price: Money
    discount: Optional[Money] = None
    taxes: Money
    total_amount: Money
    paid_amount: Money
    payment_status: PaymentStatus
    payment_method: Optional[str] = None
    order_id: Optional[str] = None
    order_amount: Optional[Money] = None
    transaction_id: Optional[str] = None
    status: BookingStatus
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    special_requests: Optional[str] = None
    ticket_details: Optional[dict] = None
    hotel_details: Optional[dict] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    refund_amount: Optional[Money] = None
    refund_status: Optional[RefundStatus] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class BookingAdminRecord(BookingRecord):
    admin_notes: Optional[str] = None

class CancellationResult(CamelModel):
    refund_amount: Money
    refund_percent: int
    days_until_tour: int
    booking: BookingRecord

class BookingList(CamelModel):
    bookings: List[BookingRecord]
    pagination: Pagination

class StatusStats(CamelModel):
    count: int
    total_amount: Money

class AdminBookingList(CamelModel):
    bookings: List[BookingAdminRecord]
    stats: Dict[str, StatusStats]
    pagination: Pagination

class BookingSearchFilters(CamelModel):
    """Filters for the admin booking list"""
    status: Optional[BookingStatus] = None
    tour_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None
