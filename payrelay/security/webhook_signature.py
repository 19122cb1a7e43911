import hashlib
import hmac


def compute_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes, signature: str, secret: str) -> bool:
    """HMAC-SHA256 of the raw request body, hex encoded."""
    if not secret or not signature:
        return False
    computed = compute_signature(secret, payload)
    return hmac.compare_digest(computed.encode(), signature.strip().lower().encode())
