"""
Tour Catalog Module

Read-only catalog queries used by the public site and the booking flow
(lookup by ID or slug, filtered listing, upcoming departures, categories)
plus the administrator operations that create tours and manage their
departure dates.

Key Components:
- service.py: TourService with the catalog queries and admin writes
- router.py: FastAPI endpoints under /tours
- schemas.py: Pydantic models for tours and start dates
"""

from .service import TourService, slugify
from .schemas import TourCreate, TourUpdate, TourDetail, TourSummary, StartDate, StartDateInput

__all__ = [
    "TourService",
    "slugify",
    "TourCreate",
    "TourUpdate",
    "TourDetail",
    "TourSummary",
    "StartDate",
    "StartDateInput"
]
