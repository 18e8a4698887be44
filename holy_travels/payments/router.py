from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from holy_travels.database import get_db
from holy_travels.auth.dependencies import get_current_user, require_admin
from holy_travels.schemas import ApiResponse, Pagination
from holy_travels.bookings.schemas import BookingRecord
from holy_travels.notifications.dispatcher import NotificationDispatcher, get_dispatcher
from holy_travels.payments.gateway import PaymentGateway, get_payment_gateway
from holy_travels.payments.schemas import (
    CreateOrderRequest, OrderResponse, PaymentHistory, PaymentHistoryEntry,
    PaymentVerifyRequest, RefundRequest, RefundResponse, VerifyResponse
)
from holy_travels.payments.service import PaymentService

router = APIRouter()

@router.post("/create-order", response_model=ApiResponse[OrderResponse])
def create_order(
    request: CreateOrderRequest,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Create a Razorpay order for a pending booking"""
    order = PaymentService(db, gateway).create_order(current_user, request.booking_id, request.amount)
    return ApiResponse(data=OrderResponse(**order))

@router.post("/verify", response_model=ApiResponse[VerifyResponse])
def verify_payment(
    request: PaymentVerifyRequest,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Verify the checkout signature and confirm the booking"""
    booking = PaymentService(db, gateway).verify_payment(current_user, request)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return ApiResponse(
        message="Payment verified successfully!",
        data=VerifyResponse(
            booking=BookingRecord.model_validate(booking),
            transaction_id=request.razorpay_payment_id
        )
    )

@router.post("/refund", response_model=ApiResponse[RefundResponse])
def refund_payment(
    request: RefundRequest,
    background_tasks: BackgroundTasks,
    current_user = Depends(require_admin),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Refund a booking's payment (admin)"""
    result = PaymentService(db, gateway).refund(request.booking_id, request.amount, request.reason)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return ApiResponse(message="Refund processed successfully", data=RefundResponse(**result))

@router.get("/history", response_model=ApiResponse[PaymentHistory])
def payment_history(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    current_user = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """Payments made by the current user"""
    bookings, total = PaymentService(db, gateway).payment_history(current_user.id, skip=skip, limit=limit)
    return ApiResponse(data=PaymentHistory(
        payments=[
            PaymentHistoryEntry(
                booking_id=booking.booking_id,
                transaction_id=booking.transaction_id,
                tour_name=booking.tour.title if booking.tour else None,
                amount=booking.total_amount,
                paid_amount=booking.paid_amount,
                status=booking.payment_status,
                date=booking.created_at
            )
            for booking in bookings
        ],
        pagination=Pagination.build(total, skip, limit)
    ))
