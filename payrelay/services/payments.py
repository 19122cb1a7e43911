from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from payrelay.errors import AuthError, EntitlementActiveError, NotFoundError, UpstreamError, ValidationError
from payrelay.integrations.contracts.interfaces import PaymentGateway, PaymentRequest
from payrelay.integrations.contracts.payments import (
    MIN_PHONE_DIGITS,
    clean_phone_number,
    normalize_payment_method,
    parse_amount,
    validate_payment_request,
)
from payrelay.security.tokens import TokenScheme
from payrelay.services.entitlement import has_active_entitlement

logger = logging.getLogger(__name__)


@dataclass
class InitiatePaymentCommand:
    user_id: str
    phone: str
    amount: Any
    method: str
    token: Optional[str]
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None


class PaymentService:
    """Premium payment initiation: checks the caller, starts the collection, records it PENDING."""

    def __init__(
        self,
        store,
        gateway: PaymentGateway,
        tokens: TokenScheme,
        currency: str = "XAF",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.tokens = tokens
        self.currency = currency
        self._clock = clock

    async def initiate(self, command: InitiatePaymentCommand) -> Dict[str, Any]:
        if not all([command.user_id, command.phone, command.amount, command.method, command.token]):
            raise ValidationError("Missing data: userId, phone, amount, method and a bearer token are required")

        if not self.tokens.verify(command.user_id, command.token):
            raise AuthError("Invalid token")

        user = self.store.get_user(command.user_id)
        if user is None:
            raise NotFoundError("User not found")

        phone = clean_phone_number(command.phone)
        if len(phone) < MIN_PHONE_DIGITS:
            raise ValidationError("Invalid phone number")

        try:
            amount = parse_amount(command.amount)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        now = self._clock()
        if has_active_entitlement(user.is_premium, user.premium_expires_at, now):
            raise EntitlementActiveError("Premium access is already active for this account")

        full_name = " ".join(part for part in (user.first_name, user.last_name) if part)
        request = PaymentRequest(
            service_number=phone,
            amount=amount,
            payment_method=normalize_payment_method(command.method),
            customer_name=command.customer_name or full_name or str(user.id),
            customer_email=command.customer_email or user.email,
        )
        errors = validate_payment_request(request)
        if errors:
            raise ValidationError("; ".join(errors))

        gateway_response = await self.gateway.initiate_payment(request)
        ptn = gateway_response.get("ptn")
        if not ptn:
            raise UpstreamError("Payment gateway did not return a PTN")

        transaction = self.store.create_transaction(
            user_id=user.id,
            gateway_reference=ptn,
            amount=amount,
            currency=self.currency,
            payment_method=request.payment_method,
            phone_number=phone,
            merchant_reference=gateway_response.get("merchantReference"),
        )
        logger.info("Transaction %s created for user %s (PTN %s)", transaction.id, user.id, ptn)

        return {
            "transactionId": transaction.id,
            "gatewayReference": ptn,
            "ptn": ptn,
            "message": "Payment initiated successfully",
            "timestamp": now.isoformat(),
        }
