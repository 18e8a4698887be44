import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from holy_travels.errors import InvalidStateError, InventoryError, NotFoundError, ValidationError
from holy_travels.models import Booking, OutboxEvent, TourStartDate, Traveller
from holy_travels.bookings.booking_service import BookingService, generate_booking_id
from holy_travels.bookings.schemas import BookingCreateRequest, PassengerInfo
from holy_travels.payments.schemas import PaymentVerifyRequest
from holy_travels.payments.service import PaymentService
from holy_travels.payments.signature import expected_signature

TRAVEL_DAY = date(2025, 6, 1)
BOOKED_ON = date(2025, 5, 1)

def _request(tour, passengers=3, day=TRAVEL_DAY):
    return BookingCreateRequest(
        tour_id=tour.id,
        tour_date=day,
        passengers=[PassengerInfo(name=f"Pilgrim {index}", age=40 + index) for index in range(passengers)],
        contact_name="Asha",
        contact_email="asha@example.com"
    )

def _seats(session, tour, day=TRAVEL_DAY):
    session.expire_all()
    return session.query(TourStartDate).filter_by(tour_id=tour.id, date=day).one().available_seats

def _pay(session, gateway, user, booking, secret, amount=None, payment_id="pay_1"):
    service = PaymentService(session, gateway)
    order = service.create_order(user, booking.booking_id, amount)
    request = PaymentVerifyRequest(
        razorpay_order_id=order["order_id"],
        razorpay_payment_id=payment_id,
        razorpay_signature=expected_signature(order["order_id"], payment_id, secret),
        booking_id=booking.booking_id
    )
    return service.verify_payment(user, request)

@pytest.fixture(name="tour_x")
def tour_x_fixture(tour_factory):
    return tour_factory(title="Tour X", price=Decimal("1000"), departures={TRAVEL_DAY: 10})

def test_booking_id_format():
    booking_id = generate_booking_id()
    assert booking_id.startswith("HT")
    assert booking_id == booking_id.upper()
    assert booking_id[2:].isalnum()
    assert generate_booking_id() != booking_id

def test_tour_x_booking_payment_and_cancellation(session, gateway, user, tour_x, razorpay_secret):
    service = BookingService(session)

    booking = service.create_booking(user.id, _request(tour_x), today=BOOKED_ON)
    assert booking.base_price == Decimal("3000")
    assert booking.taxes == Decimal("150")
    assert booking.total_amount == Decimal("3150")
    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert [p.price for p in booking.passengers] == [Decimal("1000")] * 3
    assert _seats(session, tour_x) == 7

    booking = _pay(session, gateway, user, booking, razorpay_secret, amount=Decimal("3150"))
    assert booking.status == "confirmed"
    assert booking.payment_status == "completed"
    assert booking.paid_amount == Decimal("3150")
    assert booking.transaction_id == "pay_1"

    result = service.cancel_booking(
        booking.booking_id, user, reason="Change of plans",
        now=datetime(2025, 5, 22, tzinfo=timezone.utc)
    )
    assert result["days_until_tour"] == 10
    assert result["refund_percent"] == 50
    assert result["refund_amount"] == Decimal("1575")
    cancelled = result["booking"]
    assert cancelled.status == "cancelled"
    assert cancelled.refund_status == "pending"
    assert cancelled.cancellation_reason == "Change of plans"
    assert _seats(session, tour_x) == 10

    with pytest.raises(InvalidStateError, match="already cancelled"):
        service.cancel_booking(booking.booking_id, user, now=datetime(2025, 5, 23, tzinfo=timezone.utc))
    assert _seats(session, tour_x) == 10

def test_discounted_price_is_the_unit_price(session, user, tour_factory):
    tour = tour_factory(title="Kashi Yatra", price=Decimal("1000"), discounted=Decimal("800"), departures={TRAVEL_DAY: 5})
    booking = BookingService(session).create_booking(user.id, _request(tour, passengers=2), today=BOOKED_ON)

    assert booking.base_price == Decimal("1600")
    assert booking.taxes == Decimal("80")
    assert booking.total_amount == Decimal("1680")
    assert all(p.price == Decimal("800") for p in booking.passengers)

def test_taxes_round_half_up(session, user, tour_factory):
    tour = tour_factory(title="Odd Price", price=Decimal("999"), departures={TRAVEL_DAY: 5})
    booking = BookingService(session).create_booking(user.id, _request(tour, passengers=1), today=BOOKED_ON)

    # 5% of 999 is 49.95
    assert booking.taxes == Decimal("50")
    assert booking.total_amount == Decimal("1049")

def test_overbooking_is_rejected_without_side_effects(session, user, tour_x):
    with pytest.raises(InventoryError):
        BookingService(session).create_booking(user.id, _request(tour_x, passengers=11), today=BOOKED_ON)

    assert _seats(session, tour_x) == 10
    assert session.query(Booking).count() == 0
    assert session.query(OutboxEvent).count() == 0

def test_booking_unknown_date_is_rejected(session, user, tour_x):
    with pytest.raises(InventoryError, match="no departure"):
        BookingService(session).create_booking(user.id, _request(tour_x, day=date(2025, 6, 2)), today=BOOKED_ON)

def test_inactive_tour_cannot_be_booked(session, user, tour_x):
    tour_x.is_active = False
    session.commit()

    with pytest.raises(NotFoundError):
        BookingService(session).create_booking(user.id, _request(tour_x), today=BOOKED_ON)
    assert _seats(session, tour_x) == 10

def test_past_departure_cannot_be_booked(session, user, tour_x):
    with pytest.raises(ValidationError, match="past"):
        BookingService(session).create_booking(user.id, _request(tour_x), today=date(2025, 6, 2))

def test_closed_departure_cannot_be_booked(session, user, tour_x):
    entry = session.query(TourStartDate).filter_by(tour_id=tour_x.id).one()
    entry.status = "cancelled"
    session.commit()

    with pytest.raises(InventoryError, match="cancelled"):
        BookingService(session).create_booking(user.id, _request(tour_x), today=BOOKED_ON)

def test_cancelling_unpaid_booking_refunds_nothing(session, user, tour_x):
    service = BookingService(session)
    booking = service.create_booking(user.id, _request(tour_x, passengers=2), today=BOOKED_ON)

    result = service.cancel_booking(booking.id, user, now=datetime(2025, 5, 1, tzinfo=timezone.utc))
    assert result["refund_percent"] == 90
    assert result["refund_amount"] == Decimal("0")
    assert result["booking"].refund_status is None
    assert _seats(session, tour_x) == 10

def test_only_owner_or_admin_can_cancel(session, user, other_user, admin, tour_x):
    service = BookingService(session)
    booking = service.create_booking(user.id, _request(tour_x, passengers=1), today=BOOKED_ON)

    with pytest.raises(NotFoundError):
        service.cancel_booking(booking.booking_id, other_user, now=datetime(2025, 5, 2, tzinfo=timezone.utc))
    assert _seats(session, tour_x) == 9

    result = service.cancel_booking(booking.booking_id, admin, now=datetime(2025, 5, 2, tzinfo=timezone.utc))
    assert result["booking"].status == "cancelled"
    assert _seats(session, tour_x) == 10

def test_stale_cancellation_does_not_release_seats_twice(session_factory, user, other_user, tour_x):
    first = session_factory()
    second = session_factory()
    try:
        mine = BookingService(first).create_booking(user.id, _request(tour_x, passengers=2), today=BOOKED_ON)
        BookingService(first).create_booking(other_user.id, _request(tour_x, passengers=3), today=BOOKED_ON)

        stale = BookingService(second)
        assert stale.get_booking(mine.booking_id).status == "pending"

        BookingService(first).cancel_booking(mine.booking_id, user, now=datetime(2025, 5, 2, tzinfo=timezone.utc))

        with pytest.raises(InvalidStateError):
            stale.cancel_booking(mine.booking_id, user, now=datetime(2025, 5, 2, tzinfo=timezone.utc))

        first.expire_all()
        entry = first.query(TourStartDate).filter_by(tour_id=tour_x.id).one()
        assert entry.available_seats == 7
    finally:
        first.close()
        second.close()

def test_admin_confirmation_sets_current_trip(session, user, tour_x):
    service = BookingService(session)
    booking = service.create_booking(user.id, _request(tour_x, passengers=1), today=BOOKED_ON)

    service.confirm_booking(booking.booking_id)

    session.expire_all()
    traveller = session.query(Traveller).filter_by(user_id=user.id).one()
    assert traveller.current_booking_id == booking.id
    assert traveller.current_tour_id == tour_x.id

    with pytest.raises(InvalidStateError):
        service.confirm_booking(booking.booking_id)

def test_completion_records_history_and_loyalty(session, user, tour_x):
    service = BookingService(session)
    booking = service.create_booking(user.id, _request(tour_x, passengers=3), today=BOOKED_ON)
    service.confirm_booking(booking.booking_id)

    completed = service.complete_booking(booking.booking_id)
    assert completed.status == "completed"

    session.expire_all()
    traveller = session.query(Traveller).filter_by(user_id=user.id).one()
    assert traveller.total_trips == 1
    assert traveller.loyalty_points == 31
    assert traveller.membership_tier == "bronze"
    assert traveller.current_booking_id is None
    assert traveller.current_tour_id is None

    entry = traveller.travel_history[0]
    assert entry.booking_id == booking.id
    assert entry.start_date == TRAVEL_DAY
    assert entry.end_date == date(2025, 6, 6)
    assert entry.destinations == ["Kedarnath", "Badrinath"]

def test_pending_booking_cannot_be_completed(session, user, tour_x):
    service = BookingService(session)
    booking = service.create_booking(user.id, _request(tour_x, passengers=1), today=BOOKED_ON)

    with pytest.raises(InvalidStateError):
        service.complete_booking(booking.booking_id)

    session.expire_all()
    assert session.query(Traveller).filter_by(user_id=user.id).one().total_trips == 0

def test_fifth_completed_trip_reaches_silver(session, user, tour_x):
    service = BookingService(session)
    for _ in range(5):
        booking = service.create_booking(user.id, _request(tour_x, passengers=1), today=BOOKED_ON)
        service.confirm_booking(booking.booking_id)
        service.complete_booking(booking.booking_id)

    session.expire_all()
    traveller = session.query(Traveller).filter_by(user_id=user.id).one()
    assert traveller.total_trips == 5
    assert traveller.membership_tier == "silver"
    assert traveller.loyalty_points == 5 * 10

def test_state_changes_queue_notifications(session, user, tour_x):
    service = BookingService(session)
    booking = service.create_booking(user.id, _request(tour_x, passengers=1), today=BOOKED_ON)
    service.cancel_booking(booking.booking_id, user, now=datetime(2025, 5, 2, tzinfo=timezone.utc))

    events = session.query(OutboxEvent).order_by(OutboxEvent.id).all()
    assert [event.event_type for event in events] == ["booking_created", "booking_cancelled"]
    assert all(event.status == "PENDING" for event in events)
    assert events[1].payload["user_id"] == user.id

def test_list_all_bookings_reports_status_totals(session, user, other_user, tour_x):
    from holy_travels.bookings.schemas import BookingSearchFilters

    service = BookingService(session)
    first = service.create_booking(user.id, _request(tour_x, passengers=1), today=BOOKED_ON)
    service.create_booking(other_user.id, _request(tour_x, passengers=2), today=BOOKED_ON)
    service.cancel_booking(first.booking_id, user, now=datetime(2025, 5, 2, tzinfo=timezone.utc))

    bookings, total, stats = service.list_all_bookings(BookingSearchFilters(status="pending"))
    assert total == 1
    assert bookings[0].user_id == other_user.id
    assert stats["pending"] == {"count": 1, "total_amount": Decimal("2100")}
    assert stats["cancelled"]["count"] == 1

def test_tour_x_sold_out_departure(session, gateway, user, other_user, tour_x, razorpay_secret):
    entry = session.query(TourStartDate).filter_by(tour_id=tour_x.id, date=TRAVEL_DAY).one()
    entry.available_seats = 2
    session.commit()
    service = BookingService(session)

    booking = service.create_booking(user.id, _request(tour_x, passengers=2), today=BOOKED_ON)
    assert _seats(session, tour_x) == 0

    with pytest.raises(InventoryError):
        service.create_booking(other_user.id, _request(tour_x, passengers=1), today=BOOKED_ON)
    assert _seats(session, tour_x) == 0

    booking = _pay(session, gateway, user, booking, razorpay_secret, amount=Decimal("1000"))
    assert booking.status == "pending"
    assert booking.payment_status == "partial"
    assert booking.paid_amount == Decimal("1000")

    result = service.cancel_booking(
        booking.booking_id, user, reason="Unwell",
        now=datetime(2025, 5, 22, tzinfo=timezone.utc)
    )
    assert result["refund_percent"] == 50
    assert result["refund_amount"] == Decimal("500")
    assert _seats(session, tour_x) == 2

def test_cancellation_restores_only_its_own_seats(session, user, other_user, tour_x):
    service = BookingService(session)
    mine = service.create_booking(user.id, _request(tour_x, passengers=2), today=BOOKED_ON)
    service.create_booking(other_user.id, _request(tour_x, passengers=4), today=BOOKED_ON)
    assert _seats(session, tour_x) == 4

    service.cancel_booking(mine.booking_id, user, now=datetime(2025, 5, 2, tzinfo=timezone.utc))
    assert _seats(session, tour_x) == 6

def test_partial_payments_confirm_once_the_total_is_covered(session, gateway, user, tour_x, razorpay_secret):
    booking = BookingService(session).create_booking(user.id, _request(tour_x, passengers=1), today=BOOKED_ON)
    assert booking.total_amount == Decimal("1050")

    booking = _pay(session, gateway, user, booking, razorpay_secret, amount=Decimal("50"))
    assert booking.status == "pending"
    assert booking.payment_status == "partial"
    assert booking.paid_amount == Decimal("50")
    assert booking.order_amount is None

    # The second order defaults to the outstanding balance
    booking = _pay(session, gateway, user, booking, razorpay_secret, payment_id="pay_2")
    assert gateway.orders[1]["amount"] == 100000
    assert booking.status == "confirmed"
    assert booking.payment_status == "completed"
    assert booking.paid_amount == Decimal("1050")
    assert booking.transaction_id == "pay_2"

    with pytest.raises(InvalidStateError):
        PaymentService(session, gateway).create_order(user, booking.booking_id)
