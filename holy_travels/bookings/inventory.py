from sqlalchemy.orm import Session
from sqlalchemy import case, update
from typing import Optional, Union
from datetime import date, datetime
from loguru import logger

from holy_travels.models import TourStartDate
from holy_travels.errors import InventoryError, ValidationError

def calendar_day(value: Union[date, datetime]) -> date:
    """Strip the time of day; departures are matched by calendar day only"""
    if isinstance(value, datetime):
        return value.date()
    return value

class SeatInventoryLedger:
    """Remaining seats per tour departure.

    Both mutations are a single conditional UPDATE on the start-date row, so
    concurrent requests cannot oversell a departure or push it past capacity.
    They run in the caller's transaction and do not commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_start_date(self, tour_id: int, tour_date: Union[date, datetime]) -> Optional[TourStartDate]:
        return self.db.query(TourStartDate).filter(
            TourStartDate.tour_id == tour_id,
            TourStartDate.date == calendar_day(tour_date)
        ).first()

    def reserve(self, tour_id: int, tour_date: Union[date, datetime], count: int) -> int:
        """Take ``count`` seats; returns the seats left afterwards"""
        if count < 1:
            raise ValidationError("At least one seat must be reserved")
        day = calendar_day(tour_date)

        result = self.db.execute(
            update(TourStartDate)
            .where(
                TourStartDate.tour_id == tour_id,
                TourStartDate.date == day,
                TourStartDate.available_seats >= count
            )
            .values(available_seats=TourStartDate.available_seats - count)
            .execution_options(synchronize_session=False)
        )

        entry = self.find_start_date(tour_id, day)
        if entry is not None:
            self.db.refresh(entry)

        if result.rowcount != 1:
            if entry is None:
                raise InventoryError(f"Tour has no departure on {day.isoformat()}")
            raise InventoryError("Not enough seats available for selected date")

        logger.bind(event="inventory_reserve").info(
            "Reserved {} seat(s) on tour {} for {} ({} left)", count, tour_id, day, entry.available_seats
        )
        return entry.available_seats

    def release(self, tour_id: int, tour_date: Union[date, datetime], count: int) -> Optional[int]:
        """Give ``count`` seats back, never exceeding the departure's capacity.

        Returns the seats available afterwards, or None when the departure no
        longer exists.
        """
        if count < 1:
            raise ValidationError("At least one seat must be released")
        day = calendar_day(tour_date)

        restored = TourStartDate.available_seats + count
        result = self.db.execute(
            update(TourStartDate)
            .where(TourStartDate.tour_id == tour_id, TourStartDate.date == day)
            .values(available_seats=case(
                (restored > TourStartDate.total_seats, TourStartDate.total_seats),
                else_=restored
            ))
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.bind(event="inventory_release").warning(
                "No departure on {} for tour {}; {} seat(s) not restored", day, tour_id, count
            )
            return None

        entry = self.find_start_date(tour_id, day)
        self.db.refresh(entry)
        logger.bind(event="inventory_release").info(
            "Released {} seat(s) on tour {} for {} ({} available)", count, tour_id, day, entry.available_seats
        )
        return entry.available_seats
