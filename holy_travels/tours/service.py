from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func, or_
from typing import List, Optional, Tuple
from datetime import date
from decimal import Decimal
from loguru import logger
import re

from holy_travels.models import Tour, TourDestination, TourStartDate
from holy_travels.tours.schemas import TourCreate, TourUpdate, StartDateInput
from holy_travels.errors import NotFoundError, ValidationError

def slugify(title: str) -> str:
    """Lowercase the title and collapse every non-alphanumeric run into a dash"""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")

class TourService:
    """Read side of the tour catalog plus the administrator write operations"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Tour).options(
            selectinload(Tour.start_dates),
            selectinload(Tour.destinations)
        )

    def find_by_id(self, tour_id: int, active_only: bool = False) -> Optional[Tour]:
        query = self._query().filter(Tour.id == tour_id)
        if active_only:
            query = query.filter(Tour.is_active == True)
        return query.first()

    def find_by_slug(self, slug: str) -> Optional[Tour]:
        return self._query().filter(Tour.slug == slug, Tour.is_active == True).first()

    def get_tour(self, tour_id: int) -> Tour:
        tour = self.find_by_id(tour_id)
        if not tour:
            raise NotFoundError("Tour not found")
        return tour

    def list_tours(
        self,
        skip: int = 0,
        limit: int = 12,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        duration: Optional[int] = None,
        featured: Optional[bool] = None
    ) -> Tuple[List[Tour], int]:
        """Active tours, newest first, with optional filters"""
        query = self._query().filter(Tour.is_active == True)

        if category:
            query = query.filter(Tour.category == category)
        if featured:
            query = query.filter(Tour.is_featured == True)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Tour.title.ilike(pattern), Tour.description.ilike(pattern)))
        if min_price is not None:
            query = query.filter(Tour.price_amount >= min_price)
        if max_price is not None:
            query = query.filter(Tour.price_amount <= max_price)
        if duration:
            query = query.filter(Tour.duration_days == duration)

        total = query.count()
        tours = query.order_by(Tour.created_at.desc(), Tour.id.desc()).offset(skip).limit(limit).all()
        return tours, total

    def list_upcoming_dates(
        self,
        tour_id: int,
        skip: int = 0,
        limit: int = 20,
        today: Optional[date] = None
    ) -> Tuple[List[TourStartDate], int]:
        """Departures from today onwards still marked upcoming, soonest first"""
        self.get_tour(tour_id)
        today = today or date.today()

        query = self.db.query(TourStartDate).filter(
            TourStartDate.tour_id == tour_id,
            TourStartDate.date >= today,
            TourStartDate.status == "upcoming"
        )
        total = query.count()
        dates = query.order_by(TourStartDate.date.asc()).offset(skip).limit(limit).all()
        return dates, total

    def categories(self) -> List[dict]:
        rows = self.db.query(Tour.category, func.count(Tour.id)).filter(
            Tour.is_active == True
        ).group_by(Tour.category).order_by(Tour.category).all()
        return [{"category": category, "count": count} for category, count in rows]

    def create_tour(self, data: TourCreate, created_by: Optional[int] = None) -> Tour:
        tour = Tour(
            **data.model_dump(exclude={"destinations", "start_dates"}),
            slug=self._unique_slug(slugify(data.title)),
            created_by=created_by
        )
        tour.destinations = [
            TourDestination(position=index, **destination.model_dump())
            for index, destination in enumerate(data.destinations)
        ]
        tour.start_dates = self._build_start_dates(data.start_dates)

        self.db.add(tour)
        self.db.commit()
        self.db.refresh(tour)
        logger.bind(event="tour_create").info("Created tour {} ({})", tour.id, tour.slug)
        return tour

    def update_tour(self, tour_id: int, data: TourUpdate) -> Tour:
        tour = self.get_tour(tour_id)
        update_data = data.model_dump(exclude_unset=True)

        if "title" in update_data and update_data["title"] != tour.title:
            tour.slug = self._unique_slug(slugify(update_data["title"]), exclude_id=tour.id)

        for field, value in update_data.items():
            setattr(tour, field, value)

        self.db.commit()
        self.db.refresh(tour)
        return tour

    def deactivate_tour(self, tour_id: int) -> Tour:
        """Soft delete: the tour disappears from the catalog but bookings keep it"""
        tour = self.get_tour(tour_id)
        tour.is_active = False
        self.db.commit()
        logger.bind(event="tour_deactivate").info("Deactivated tour {}", tour_id)
        return tour

    def replace_start_dates(self, tour_id: int, start_dates: List[StartDateInput]) -> Tour:
        """Replace the departure list, keeping rows for dates that survive"""
        tour = self.get_tour(tour_id)
        existing = {entry.date: entry for entry in tour.start_dates}

        seen = set()
        replacement = []
        for item in start_dates:
            if item.date in seen:
                raise ValidationError(f"Duplicate start date {item.date.isoformat()}")
            seen.add(item.date)

            entry = existing.get(item.date)
            if entry is None:
                entry = TourStartDate(date=item.date)
            entry.total_seats = item.total_seats
            entry.available_seats = item.available_seats
            entry.status = item.status
            replacement.append(entry)

        tour.start_dates = replacement
        self.db.commit()
        self.db.refresh(tour)
        return tour

    def _build_start_dates(self, start_dates: List[StartDateInput]) -> List[TourStartDate]:
        dates = [item.date for item in start_dates]
        if len(dates) != len(set(dates)):
            raise ValidationError("Start dates must be unique")
        return [
            TourStartDate(
                date=item.date,
                total_seats=item.total_seats,
                available_seats=item.available_seats,
                status=item.status
            )
            for item in start_dates
        ]

    def _unique_slug(self, base: str, exclude_id: Optional[int] = None) -> str:
        base = base or "tour"
        slug = base
        suffix = 2
        while True:
            query = self.db.query(Tour.id).filter(Tour.slug == slug)
            if exclude_id is not None:
                query = query.filter(Tour.id != exclude_id)
            if query.first() is None:
                return slug
            slug = f"{base}-{suffix}"
            suffix += 1
