import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from payrelay.api.dependencies import bearer_token, get_payment_service, get_reconciler
from payrelay.errors import AuthError, NotFoundError, ValidationError
from payrelay.services.payments import InitiatePaymentCommand, PaymentService
from payrelay.services.reconciliation import PaymentReconciler

logger = logging.getLogger(__name__)

api = APIRouter()
payments_api = api


class TokenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")


class PaymentInitiateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    phone: Optional[Union[str, int]] = None
    amount: Optional[Union[float, str]] = None
    method: Optional[str] = Field(default=None, description="MTN or OM (Orange Money)")
    customer_name: Optional[str] = Field(default=None, alias="customerName")
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")


@api.post("/token", tags=["Payments"])
@api.post("/generate-token", tags=["Payments"])
async def generate_token(body: TokenRequest, request: Request):
    """Issue a short-lived bearer token for the mobile app."""
    if not body.user_id:
        raise ValidationError("User ID required")

    issued = request.app.state.tokens.issue(body.user_id)
    return {"token": issued.token, "expiresAt": issued.expires_at_datetime.isoformat()}


@api.post("/initiate", tags=["Payments"])
async def initiate_payment(
    body: PaymentInitiateRequest,
    token: Optional[str] = Depends(bearer_token),
    service: PaymentService = Depends(get_payment_service),
):
    command = InitiatePaymentCommand(
        user_id=body.user_id,
        phone=body.phone,
        amount=body.amount,
        method=body.method,
        token=token,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
    )
    return await service.initiate(command)


@api.get("/status/{transaction_id}", tags=["Payments"])
async def payment_status(
    transaction_id: str,
    request: Request,
    token: Optional[str] = Depends(bearer_token),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    if not token:
        raise AuthError("Missing token")

    transaction = reconciler.store.get_transaction(transaction_id)
    if transaction is None:
        raise NotFoundError("Transaction not found")

    if not request.app.state.tokens.verify(transaction.user_id, token):
        raise AuthError("Invalid token")

    outcome = await reconciler.poll(transaction)
    if outcome.partial_failure:
        logger.critical("Transaction %s completed without premium grant; needs manual reconciliation", transaction_id)
    return outcome.to_dict()
