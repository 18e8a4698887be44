import hashlib
import hmac

def expected_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()

def verify_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Check a Razorpay checkout signature in constant time"""
    if not signature:
        return False
    return hmac.compare_digest(expected_signature(order_id, payment_id, secret), signature)
