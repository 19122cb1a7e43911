from typing import Optional

from fastapi import Header, Request

from payrelay.services.payments import PaymentService
from payrelay.services.reconciliation import PaymentReconciler


def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    value = authorization.strip()
    if value.lower().startswith("bearer "):
        value = value[7:].strip()
    return value or None


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def get_reconciler(request: Request) -> PaymentReconciler:
    return request.app.state.reconciler
