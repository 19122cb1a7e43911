import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from payrelay.api.dependencies import get_reconciler
from payrelay.errors import AuthError, ValidationError
from payrelay.security.webhook_signature import verify_webhook_signature
from payrelay.services.reconciliation import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payment-gateway", tags=["Webhooks"])
@router.post("/maviance", tags=["Webhooks"])
async def payment_gateway_webhook(request: Request, reconciler: PaymentReconciler = Depends(get_reconciler)):
    """
    Final status push from the gateway.
    - Verifies the HMAC signature of the raw body when a webhook secret is configured.
    - Unknown references answer 404; replays of settled transactions answer 200 without changes.
    """
    raw_body = await request.body()

    webhook_cfg = request.app.state.config.webhook
    secret = webhook_cfg.secret()
    if secret:
        signature = request.headers.get(webhook_cfg.signature_header, "")
        if not verify_webhook_signature(raw_body, signature, secret):
            logger.warning("Rejected webhook with invalid signature")
            raise AuthError("Invalid webhook signature")

    try:
        payload: Dict[str, Any] = json.loads(raw_body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError("Invalid JSON") from e

    outcome = await reconciler.handle_webhook(payload)
    if outcome.partial_failure:
        logger.critical("Transaction %s completed without premium grant; needs manual reconciliation", outcome.transaction_id)
    return {"received": True}
