from pydantic import Field, model_validator
from typing import List, Literal, Optional
from datetime import date, datetime

from holy_travels.schemas import CamelModel, Money, Pagination

StartDateStatus = Literal["upcoming", "ongoing", "completed", "cancelled"]

class DestinationInfo(CamelModel):
    name: str
    type: Optional[Literal["religious", "historic", "cultural", "scenic"]] = None
    description: Optional[str] = None

class StartDateInput(CamelModel):
    """A departure as supplied by an administrator"""
    date: date
    total_seats: int = Field(..., ge=0)
    available_seats: Optional[int] = Field(None, ge=0)
    status: StartDateStatus = "upcoming"

    @model_validator(mode="after")
    def check_seat_range(self):
        if self.available_seats is None:
            self.available_seats = self.total_seats
        if self.available_seats > self.total_seats:
            raise ValueError("availableSeats cannot exceed totalSeats")
        return self

class StartDate(CamelModel):
    id: int
    date: date
    available_seats: int
    total_seats: int
    status: str

class TourBase(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str
    short_description: Optional[str] = None
    category: str
    duration_days: int = Field(..., ge=1)
    duration_nights: Optional[int] = Field(None, ge=0)
    price_amount: Money = Field(..., ge=0)
    price_discounted_amount: Optional[Money] = Field(None, ge=0)
    price_currency: str = "INR"
    departure_city: Optional[str] = None
    max_group_size: int = Field(50, ge=1)
    difficulty: Literal["easy", "moderate", "challenging"] = "easy"
    is_featured: bool = False

class TourCreate(TourBase):
    destinations: List[DestinationInfo] = []
    start_dates: List[StartDateInput] = []

class TourUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    short_description: Optional[str] = None
    category: Optional[str] = None
    duration_days: Optional[int] = Field(None, ge=1)
    duration_nights: Optional[int] = Field(None, ge=0)
    price_amount: Optional[Money] = Field(None, ge=0)
    price_discounted_amount: Optional[Money] = Field(None, ge=0)
    departure_city: Optional[str] = None
    max_group_size: Optional[int] = Field(None, ge=1)
    difficulty: Optional[Literal["easy", "moderate", "challenging"]] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None

class StartDatesUpdate(CamelModel):
    start_dates: List[StartDateInput]

class TourSummary(TourBase):
    id: int
    slug: str
    average_rating: Optional[Money] = None
    total_reviews: int = 0
    is_active: bool
    start_dates: List[StartDate] = []

class TourDetail(TourSummary):
    destinations: List[DestinationInfo] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class TourList(CamelModel):
    tours: List[TourSummary]
    pagination: Pagination

class UpcomingDates(CamelModel):
    tour_id: int
    dates: List[StartDate]
    pagination: Pagination

class CategoryCount(CamelModel):
    category: str
    count: int
