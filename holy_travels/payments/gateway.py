from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from loguru import logger
import razorpay
import requests

from holy_travels.config import settings
from holy_travels.errors import PaymentGatewayError

GATEWAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.RequestException,
)

def to_paise(amount) -> int:
    """Razorpay takes amounts in the smallest currency unit"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

class PaymentGateway:
    """Thin wrapper over the Razorpay client for orders and refunds"""

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None, client=None):
        self.key_id = settings.RAZORPAY_KEY_ID if key_id is None else key_id
        self.key_secret = settings.RAZORPAY_KEY_SECRET if key_secret is None else key_secret
        self._client = client

    @property
    def client(self) -> razorpay.Client:
        if self._client is None:
            if not self.key_id or not self.key_secret:
                raise PaymentGatewayError(
                    "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
                )
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def create_order(self, amount, receipt: str, notes: Optional[dict] = None) -> dict:
        payload = {
            "amount": to_paise(amount),
            "currency": settings.PAYMENT_CURRENCY,
            "receipt": receipt,
            "notes": notes or {}
        }
        try:
            order = self.client.order.create(payload)
        except GATEWAY_ERRORS as exc:
            logger.bind(event="gateway_order").error("Order creation failed for {}: {}", receipt, exc)
            raise PaymentGatewayError("Failed to create payment order") from exc
        return order

    def refund(self, payment_id: str, amount, notes: Optional[dict] = None) -> dict:
        payload = {"amount": to_paise(amount), "notes": notes or {}}
        try:
            refund = self.client.payment.refund(payment_id, payload)
        except GATEWAY_ERRORS as exc:
            logger.bind(event="gateway_refund").error("Refund failed for payment {}: {}", payment_id, exc)
            raise PaymentGatewayError("Refund processing failed") from exc
        return refund

def get_payment_gateway() -> PaymentGateway:
    return PaymentGateway()
