from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from holy_travels.database import get_db
from holy_travels.auth.dependencies import get_current_user, require_admin
from holy_travels.schemas import ApiResponse, Pagination
from holy_travels.bookings.schemas import (
    AdminBookingList, BookingAdminRecord, BookingCancellationRequest, BookingCreateRequest,
    BookingList, BookingRecord, BookingSearchFilters, CancellationResult, StatusStats,
    TicketDetailsUpdate
)
from holy_travels.bookings.state import BookingStatus
from holy_travels.bookings.booking_service import BookingService
from holy_travels.notifications.dispatcher import NotificationDispatcher, get_dispatcher

router = APIRouter()

@router.post("/", response_model=ApiResponse[BookingRecord], status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreateRequest,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Book seats on a tour departure"""
    booking = BookingService(db).create_booking(current_user.id, request)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return ApiResponse(message="Booking created successfully", data=BookingRecord.model_validate(booking))

@router.get("/", response_model=ApiResponse[BookingList])
def get_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Bookings of the current user, newest first"""
    bookings, total = BookingService(db).list_user_bookings(
        current_user.id, status=status_filter, skip=skip, limit=limit
    )
    return ApiResponse(data=BookingList(
        bookings=[BookingRecord.model_validate(booking) for booking in bookings],
        pagination=Pagination.build(total, skip, limit)
    ))

# Admin Endpoints
@router.get("/admin/all", response_model=ApiResponse[AdminBookingList])
def get_all_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    tour_id: Optional[int] = Query(None, alias="tourId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Every booking with per-status totals (admin)"""
    filters = BookingSearchFilters(
        status=status_filter,
        tour_id=tour_id,
        start_date=start_date,
        end_date=end_date,
        search=search
    )
    bookings, total, stats = BookingService(db).list_all_bookings(filters, skip=skip, limit=limit)
    return ApiResponse(data=AdminBookingList(
        bookings=[BookingAdminRecord.model_validate(booking) for booking in bookings],
        stats={key: StatusStats(**value) for key, value in stats.items()},
        pagination=Pagination.build(total, skip, limit)
    ))

@router.get("/{booking_id}", response_model=ApiResponse[BookingRecord])
def get_booking(
    booking_id: str,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """A single booking of the current user (any booking for admins)"""
    booking = BookingService(db).get_booking(booking_id, current_user)
    return ApiResponse(data=BookingRecord.model_validate(booking))

@router.put("/{booking_id}/cancel", response_model=ApiResponse[CancellationResult])
def cancel_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    cancellation: Optional[BookingCancellationRequest] = None,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Cancel a booking and report the refund it qualifies for"""
    reason = cancellation.reason if cancellation else None
    result = BookingService(db).cancel_booking(booking_id, current_user, reason=reason)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return ApiResponse(
        message="Booking cancelled successfully",
        data=CancellationResult(
            refund_amount=result["refund_amount"],
            refund_percent=result["refund_percent"],
            days_until_tour=result["days_until_tour"],
            booking=BookingRecord.model_validate(result["booking"])
        )
    )

@router.put("/{booking_id}/confirm", response_model=ApiResponse[BookingAdminRecord])
def confirm_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Confirm a pending booking (admin)"""
    booking = BookingService(db).confirm_booking(booking_id)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return ApiResponse(message="Booking confirmed", data=BookingAdminRecord.model_validate(booking))

@router.put("/{booking_id}/complete", response_model=ApiResponse[BookingAdminRecord])
def complete_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Mark a confirmed booking as travelled (admin)"""
    booking = BookingService(db).complete_booking(booking_id)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return ApiResponse(message="Booking completed", data=BookingAdminRecord.model_validate(booking))

@router.put("/{booking_id}/ticket-details", response_model=ApiResponse[BookingAdminRecord])
def update_ticket_details(
    booking_id: str,
    details: TicketDetailsUpdate,
    background_tasks: BackgroundTasks,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Attach train ticket and hotel details (admin)"""
    booking = BookingService(db).update_ticket_details(booking_id, details)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return ApiResponse(message="Ticket details updated", data=BookingAdminRecord.model_validate(booking))
