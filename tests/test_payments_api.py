from decimal import Decimal

import pytest

from holy_travels.errors import PaymentGatewayError
from holy_travels.models import Booking, OutboxEvent
from holy_travels.payments.gateway import PaymentGateway, to_paise
from holy_travels.payments.signature import expected_signature, verify_signature

PAYMENTS = "/api/v1/payments"

def _book(client, headers, tour, day, passengers=3):
    response = client.post("/api/v1/bookings/", json={
        "tourId": tour.id,
        "tourDate": day.isoformat(),
        "passengers": [{"name": f"Pilgrim {index}"} for index in range(passengers)]
    }, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]

def _checkout(client, headers, booking, amount=None):
    body = {"bookingId": booking["bookingId"]}
    if amount is not None:
        body["amount"] = amount
    response = client.post(f"{PAYMENTS}/create-order", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]["orderId"]

def _verify_body(booking, secret, order_id="order_1", payment_id="pay_1", amount=None):
    body = {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": expected_signature(order_id, payment_id, secret),
        "bookingId": booking["bookingId"]
    }
    if amount is not None:
        body["amount"] = amount
    return body

def _stored(session, booking):
    session.expire_all()
    return session.query(Booking).filter_by(booking_id=booking["bookingId"]).one()

def test_signature_check():
    signature = expected_signature("order_A", "pay_B", "s3cret")
    assert verify_signature("order_A", "pay_B", signature, "s3cret")
    assert not verify_signature("order_A", "pay_C", signature, "s3cret")
    assert not verify_signature("order_A", "pay_B", signature, "other")
    assert not verify_signature("order_A", "pay_B", "", "s3cret")

def test_to_paise():
    assert to_paise(Decimal("3150")) == 315000
    assert to_paise(Decimal("10.505")) == 1051
    assert to_paise(99.99) == 9999

def test_gateway_without_keys_fails_cleanly():
    gateway = PaymentGateway(key_id="", key_secret="")
    with pytest.raises(PaymentGatewayError):
        gateway.create_order(Decimal("100"), receipt="booking_HT1")

def test_create_order_for_own_booking(client, session, gateway, user_headers, tour, departure_day):
    booking = _book(client, user_headers, tour, departure_day)

    response = client.post(f"{PAYMENTS}/create-order", json={"bookingId": booking["bookingId"]}, headers=user_headers)

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data == {
        "orderId": "order_1",
        "amount": 315000,
        "currency": "INR",
        "bookingId": booking["bookingId"],
        "key": "rzp_test_key"
    }
    assert gateway.orders[0]["receipt"] == f"booking_{booking['bookingId']}"

    stored = _stored(session, booking)
    assert stored.order_id == "order_1"
    assert stored.order_amount == Decimal("3150")

def test_create_order_for_someone_elses_booking(client, gateway, user_headers, other_headers, tour, departure_day):
    booking = _book(client, user_headers, tour, departure_day)

    response = client.post(f"{PAYMENTS}/create-order", json={"bookingId": booking["bookingId"], "amount": 10}, headers=other_headers)
    assert response.status_code == 404
    assert gateway.orders == []

def test_create_order_above_the_balance_is_rejected(client, gateway, user_headers, tour, departure_day):
    booking = _book(client, user_headers, tour, departure_day, passengers=1)

    response = client.post(f"{PAYMENTS}/create-order", json={"bookingId": booking["bookingId"], "amount": 5000}, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert gateway.orders == []

def test_verify_confirms_booking(client, session, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day)
    _checkout(client, user_headers, booking)

    response = client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret, amount=3150), headers=user_headers)

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["transactionId"] == "pay_1"
    assert data["booking"]["status"] == "confirmed"
    assert data["booking"]["paymentStatus"] == "completed"
    assert data["booking"]["paidAmount"] == 3150

    session.expire_all()
    assert session.query(OutboxEvent).filter_by(event_type="payment_success").one().status == "PUBLISHED"

def test_verify_records_the_order_amount(client, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day, passengers=1)
    _checkout(client, user_headers, booking)

    response = client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret), headers=user_headers)
    assert response.json()["data"]["booking"]["paidAmount"] == 1050

def test_small_order_only_records_what_was_paid(client, session, gateway, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day, passengers=1)
    _checkout(client, user_headers, booking, amount=1)
    assert gateway.orders[0]["amount"] == 100

    response = client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret), headers=user_headers)

    assert response.status_code == 200, response.text
    data = response.json()["data"]["booking"]
    assert data["status"] == "pending"
    assert data["paymentStatus"] == "partial"
    assert data["paidAmount"] == 1

    order_id = _checkout(client, user_headers, booking)
    assert gateway.orders[1]["amount"] == 104900
    response = client.post(
        f"{PAYMENTS}/verify",
        json=_verify_body(booking, razorpay_secret, order_id=order_id, payment_id="pay_2"),
        headers=user_headers
    )
    data = response.json()["data"]["booking"]
    assert data["status"] == "confirmed"
    assert data["paymentStatus"] == "completed"
    assert data["paidAmount"] == 1050

    session.expire_all()
    assert session.query(OutboxEvent).filter_by(event_type="payment_partial").count() == 1

def test_client_amount_cannot_inflate_the_refund(client, session, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day, passengers=1)
    _checkout(client, user_headers, booking)

    response = client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret, amount=1000000), headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_VERIFICATION_FAILED"
    stored = _stored(session, booking)
    assert stored.payment_status == "pending"
    assert stored.paid_amount == 0

    cancelled = client.put(f"/api/v1/bookings/{booking['bookingId']}/cancel", headers=user_headers)
    assert cancelled.json()["data"]["refundAmount"] == 0

def test_verify_without_an_order_is_rejected(client, session, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day)

    response = client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret), headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_VERIFICATION_FAILED"
    assert _stored(session, booking).status == "pending"

def test_order_pays_only_once(client, session, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day)
    _checkout(client, user_headers, booking, amount=100)
    assert client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret), headers=user_headers).status_code == 200

    second = client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret, payment_id="pay_2"), headers=user_headers)

    assert second.status_code == 400
    assert _stored(session, booking).paid_amount == Decimal("100")

def test_forged_signature_changes_nothing(client, session, user_headers, tour, departure_day):
    booking = _book(client, user_headers, tour, departure_day)
    _checkout(client, user_headers, booking)
    body = _verify_body(booking, "not-the-secret", amount=3150)

    response = client.post(f"{PAYMENTS}/verify", json=body, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_VERIFICATION_FAILED"
    stored = _stored(session, booking)
    assert stored.status == "pending"
    assert stored.payment_status == "pending"
    assert stored.paid_amount == 0
    assert stored.transaction_id is None

def test_verify_unknown_booking(client, user_headers, razorpay_secret):
    response = client.post(f"{PAYMENTS}/verify", json=_verify_body({"bookingId": "HTNOPE0000"}, razorpay_secret), headers=user_headers)
    assert response.status_code == 404

def test_verify_replay_is_idempotent(client, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day)
    _checkout(client, user_headers, booking)
    body = _verify_body(booking, razorpay_secret, amount=3150)

    assert client.post(f"{PAYMENTS}/verify", json=body, headers=user_headers).status_code == 200
    replay = client.post(f"{PAYMENTS}/verify", json=body, headers=user_headers)
    assert replay.status_code == 200
    assert replay.json()["data"]["booking"]["status"] == "confirmed"
    assert replay.json()["data"]["booking"]["paidAmount"] == 3150

def test_verify_for_cancelled_booking_is_rejected(client, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day)
    client.put(f"/api/v1/bookings/{booking['bookingId']}/cancel", headers=user_headers)

    response = client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret), headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_STATE"

def test_verify_rejects_order_of_another_checkout(client, user_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day)
    client.post(f"{PAYMENTS}/create-order", json={"bookingId": booking["bookingId"]}, headers=user_headers)

    body = _verify_body(booking, razorpay_secret, order_id="order_other")
    response = client.post(f"{PAYMENTS}/verify", json=body, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_VERIFICATION_FAILED"

def test_admin_refund(client, session, gateway, user_headers, admin_headers, tour, departure_day, razorpay_secret):
    booking = _book(client, user_headers, tour, departure_day)
    _checkout(client, user_headers, booking)
    client.post(f"{PAYMENTS}/verify", json=_verify_body(booking, razorpay_secret, amount=3150), headers=user_headers)
    client.put(f"/api/v1/bookings/{booking['bookingId']}/cancel", headers=user_headers)

    response = client.post(f"{PAYMENTS}/refund", json={"bookingId": booking["bookingId"], "reason": "Cancelled"}, headers=admin_headers)

    assert response.status_code == 200, response.text
    assert response.json()["data"] == {"refundId": "rfnd_1", "amount": 2835}
    assert gateway.refunds[0]["payment_id"] == "pay_1"
    assert gateway.refunds[0]["amount"] == 283500

    session.expire_all()
    stored = session.query(Booking).filter_by(booking_id=booking["bookingId"]).one()
    assert stored.refund_status == "processed"
    assert stored.payment_status == "refunded"

def test_refund_requires_a_payment(client, user_headers, admin_headers, tour, departure_day):
    booking = _book(client, user_headers, tour, departure_day)

    response = client.post(f"{PAYMENTS}/refund", json={"bookingId": booking["bookingId"], "amount": 100}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "No payment found for this booking"

def test_refund_is_admin_only(client, user_headers, tour, departure_day):
    booking = _book(client, user_headers, tour, departure_day)

    response = client.post(f"{PAYMENTS}/refund", json={"bookingId": booking["bookingId"], "amount": 100}, headers=user_headers)
    assert response.status_code == 403

def test_payment_history(client, user_headers, tour, departure_day, razorpay_secret):
    paid = _book(client, user_headers, tour, departure_day, passengers=1)
    _book(client, user_headers, tour, departure_day, passengers=2)
    _checkout(client, user_headers, paid)
    client.post(f"{PAYMENTS}/verify", json=_verify_body(paid, razorpay_secret), headers=user_headers)

    response = client.get(f"{PAYMENTS}/history", headers=user_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["payments"]) == 1
    entry = data["payments"][0]
    assert entry["bookingId"] == paid["bookingId"]
    assert entry["transactionId"] == "pay_1"
    assert entry["tourName"] == "Tour X"
    assert entry["paidAmount"] == 1050
    assert entry["status"] == "completed"
    assert data["pagination"]["total"] == 1
