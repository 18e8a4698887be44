from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from decimal import Decimal

from holy_travels.database import get_db
from holy_travels.auth.dependencies import require_admin
from holy_travels.schemas import ApiResponse, Pagination
from holy_travels.tours.schemas import (
    TourCreate, TourUpdate, TourDetail, TourSummary, TourList, StartDatesUpdate,
    StartDate, UpcomingDates, CategoryCount
)
from holy_travels.tours.service import TourService

router = APIRouter()

@router.get("/", response_model=ApiResponse[TourList])
def list_tours(
    skip: int = Query(0, ge=0, description="Number of tours to skip"),
    limit: int = Query(12, ge=1, le=100, description="Number of tours to return"),
    category: Optional[str] = Query(None, description="Filter by category"),
    search: Optional[str] = Query(None, description="Search title and description"),
    min_price: Optional[Decimal] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", ge=0),
    duration: Optional[int] = Query(None, ge=1, description="Duration in days"),
    featured: Optional[bool] = Query(None, description="Only featured tours"),
    db: Session = Depends(get_db)
):
    """Public tour catalog"""
    tours, total = TourService(db).list_tours(
        skip=skip,
        limit=limit,
        category=category,
        search=search,
        min_price=min_price,
        max_price=max_price,
        duration=duration,
        featured=featured
    )
    return ApiResponse(data=TourList(
        tours=[TourSummary.model_validate(tour) for tour in tours],
        pagination=Pagination.build(total, skip, limit)
    ))

@router.get("/categories", response_model=ApiResponse[List[CategoryCount]])
def list_categories(db: Session = Depends(get_db)):
    """Active tour counts per category"""
    return ApiResponse(data=[CategoryCount(**row) for row in TourService(db).categories()])

@router.get("/id/{tour_id}", response_model=ApiResponse[TourDetail])
def get_tour_by_id(tour_id: int, db: Session = Depends(get_db)):
    """Get an active tour by its numeric ID"""
    tour = TourService(db).find_by_id(tour_id, active_only=True)
    if not tour:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour not found")
    return ApiResponse(data=TourDetail.model_validate(tour))

@router.get("/{tour_id}/dates", response_model=ApiResponse[UpcomingDates])
def list_upcoming_dates(
    tour_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """Upcoming departures of a tour with their remaining seats"""
    dates, total = TourService(db).list_upcoming_dates(tour_id, skip=skip, limit=limit)
    return ApiResponse(data=UpcomingDates(
        tour_id=tour_id,
        dates=[StartDate.model_validate(entry) for entry in dates],
        pagination=Pagination.build(total, skip, limit)
    ))

@router.get("/{slug}", response_model=ApiResponse[TourDetail])
def get_tour_by_slug(slug: str, db: Session = Depends(get_db)):
    """Get an active tour by slug"""
    tour = TourService(db).find_by_slug(slug)
    if not tour:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tour not found")
    return ApiResponse(data=TourDetail.model_validate(tour))

# Admin Endpoints
@router.post("/", response_model=ApiResponse[TourDetail], status_code=status.HTTP_201_CREATED)
def create_tour(
    tour: TourCreate,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create a tour (admin)"""
    created = TourService(db).create_tour(tour, created_by=current_user.id)
    return ApiResponse(message="Tour created successfully", data=TourDetail.model_validate(created))

@router.put("/{tour_id}", response_model=ApiResponse[TourDetail])
def update_tour(
    tour_id: int,
    tour_update: TourUpdate,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update a tour (admin)"""
    tour = TourService(db).update_tour(tour_id, tour_update)
    return ApiResponse(message="Tour updated successfully", data=TourDetail.model_validate(tour))

@router.delete("/{tour_id}", response_model=ApiResponse[None])
def delete_tour(
    tour_id: int,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Soft delete a tour (admin)"""
    TourService(db).deactivate_tour(tour_id)
    return ApiResponse(message="Tour deleted successfully")

@router.put("/{tour_id}/start-dates", response_model=ApiResponse[List[StartDate]])
def update_start_dates(
    tour_id: int,
    payload: StartDatesUpdate,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Replace a tour's departures (admin)"""
    tour = TourService(db).replace_start_dates(tour_id, payload.start_dates)
    return ApiResponse(message="Start dates updated successfully", data=[StartDate.model_validate(entry) for entry in tour.start_dates])
