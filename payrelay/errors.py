"""
Error taxonomy for the payment relay.

Services raise these; the FastAPI layer maps them to status codes through
``http_status`` (see payrelay/api/app.py).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PaymentRelayError(Exception):
    http_status: int = 500

    def __init__(self, message: str, *, details: Optional[str] = None, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.payload = payload or {}


class ValidationError(PaymentRelayError):
    """Missing or malformed client input."""

    http_status = 400


class EntitlementActiveError(ValidationError):
    """The user already holds a premium entitlement that has not expired."""

    http_status = 409


class AuthError(PaymentRelayError):
    """Missing, invalid or expired bearer token (or webhook signature)."""

    http_status = 401


class NotFoundError(PaymentRelayError):
    http_status = 404


class UpstreamError(PaymentRelayError):
    """The payment gateway call failed after retries."""

    http_status = 502


class GatewayAuthError(UpstreamError):
    """Client-credentials exchange with the gateway failed after all retries."""


class PartialFailureError(PaymentRelayError):
    """
    Transaction was marked COMPLETED but the entitlement write failed.

    Logged at CRITICAL and flagged on the reconciliation outcome. Never
    surfaced to webhook senders, to avoid redelivery loops.
    """

    http_status = 500

    def __init__(self, message: str, *, transaction_id: str, user_id: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.transaction_id = transaction_id
        self.user_id = user_id
