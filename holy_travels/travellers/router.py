from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session
from typing import Literal, Optional

from holy_travels.database import get_db
from holy_travels.auth.dependencies import get_current_user, require_admin
from holy_travels.schemas import ApiResponse, Pagination
from holy_travels.notifications.dispatcher import NotificationDispatcher, get_dispatcher
from holy_travels.travellers.schemas import (
    CurrentTrip, TravelDetailsUpdate, TravellerDetail, TravellerList, TravellerProfile,
    TravellerStats, TravelHistoryEntry, TripReview
)
from holy_travels.travellers.service import TravellerService

router = APIRouter()

@router.get("/me", response_model=ApiResponse[TravellerProfile])
def get_my_profile(current_user = Depends(get_current_user), db: Session = Depends(get_db)):
    """Traveller profile of the current user"""
    service = TravellerService(db)
    traveller = service.get_or_create(current_user.id)
    db.commit()
    return ApiResponse(data=TravellerProfile.model_validate(traveller))

@router.get("/current-trip", response_model=ApiResponse[CurrentTrip])
def get_current_trip(current_user = Depends(get_current_user), db: Session = Depends(get_db)):
    """The confirmed booking the user is currently travelling on"""
    traveller = TravellerService(db).current_trip(current_user.id)
    booking = traveller.current_booking
    tour = traveller.current_tour

    return ApiResponse(data=CurrentTrip(
        tour_id=tour.id,
        tour_title=tour.title,
        booking_id=booking.booking_id,
        tour_date=booking.tour_date,
        status=booking.status,
        duration_days=tour.duration_days,
        destinations=[destination.name for destination in tour.destinations],
        ticket_details=booking.ticket_details,
        hotel_details=booking.hotel_details
    ))

@router.get("/stats", response_model=ApiResponse[TravellerStats])
def get_stats(current_user = Depends(get_current_user), db: Session = Depends(get_db)):
    """Trip count, loyalty points and booking totals for the current user"""
    stats = TravellerService(db).stats(current_user.id)
    db.commit()
    return ApiResponse(data=TravellerStats(**stats))

@router.put("/history/{history_id}/review", response_model=ApiResponse[TravelHistoryEntry])
def review_trip(
    history_id: int,
    review: TripReview,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Rate a completed trip"""
    entry = TravellerService(db).review_trip(current_user.id, history_id, review.rating, review.feedback)
    return ApiResponse(message="Review saved", data=TravelHistoryEntry.model_validate(entry))

# Admin Endpoints
@router.get("/", response_model=ApiResponse[TravellerList])
def list_travellers(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    tier: Optional[Literal["bronze", "silver", "gold", "platinum"]] = Query(None, description="Filter by membership tier"),
    current_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """All traveller profiles, most travelled first (admin)"""
    travellers, total = TravellerService(db).list_travellers(skip=skip, limit=limit, tier=tier)
    return ApiResponse(data=TravellerList(
        travellers=[TravellerProfile.model_validate(traveller) for traveller in travellers],
        pagination=Pagination.build(total, skip, limit)
    ))

@router.get("/{traveller_id}", response_model=ApiResponse[TravellerDetail])
def get_traveller(
    traveller_id: int,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Traveller profile with contact details (admin)"""
    traveller = TravellerService(db).get_traveller(traveller_id)
    return ApiResponse(data=TravellerDetail.model_validate(traveller))

@router.put("/{traveller_id}/travel-details", response_model=ApiResponse[TravellerDetail])
def update_travel_details(
    traveller_id: int,
    details: TravelDetailsUpdate,
    background_tasks: BackgroundTasks,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Update dietary needs, special requirements or the current trip (admin)"""
    traveller = TravellerService(db).update_travel_details(traveller_id, details)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return ApiResponse(message="Travel details updated", data=TravellerDetail.model_validate(traveller))
