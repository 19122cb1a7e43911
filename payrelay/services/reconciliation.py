"""
Payment state reconciliation.

A transaction moves PENDING → COMPLETED or PENDING → FAILED, driven by either
a client status poll (which asks the gateway) or a gateway webhook. Both
triggers may run for the same transaction, in any order and more than once.
Safety rests on two rules:

- the terminal write is a compare-and-set on ``status = PENDING`` in the
  store; only the writer that wins it performs side effects;
- the premium entitlement is granted only by the writer that won the
  COMPLETED transition.

A failed entitlement write after a won COMPLETED transition is logged as a
PartialFailureError at CRITICAL and flagged on the outcome, but the trigger
still succeeds so the gateway does not redeliver forever.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from payrelay.errors import NotFoundError, PartialFailureError, ValidationError
from payrelay.integrations.contracts.interfaces import (
    GatewayResult,
    GatewayStatus,
    PaymentGateway,
    TransactionStatus,
)
from payrelay.integrations.contracts.payments import error_message_for, is_terminal_status
from payrelay.integrations.policy.response_wrappers import (
    IntegrationResponseError,
    first_gateway_result,
    normalize_webhook_notification,
    to_gateway_result,
)
from payrelay.services.entitlement import grant_premium

logger = logging.getLogger(__name__)

_CLIENT_STATUS = {
    TransactionStatus.PENDING: "pending",
    TransactionStatus.COMPLETED: "success",
    TransactionStatus.FAILED: "failed",
}


@dataclass
class ReconciliationOutcome:
    transaction_id: str
    status: TransactionStatus
    message: str
    transitioned: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    gateway_status: Optional[str] = None
    partial_failure: bool = False

    @property
    def client_status(self) -> str:
        return _CLIENT_STATUS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "status": self.client_status,
            "message": self.message,
            "transactionId": self.transaction_id,
        }
        if self.status == TransactionStatus.FAILED:
            body["errorCode"] = self.error_code
        return body


class PaymentReconciler:
    def __init__(
        self,
        store,
        gateway: PaymentGateway,
        premium_months: int = 12,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.premium_months = premium_months
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Triggers
    # ------------------------------------------------------------------ #
    async def poll(self, transaction) -> ReconciliationOutcome:
        """Client-initiated status check; asks the gateway only while PENDING."""
        if is_terminal_status(transaction.status):
            return self._settled_outcome(transaction)

        raw = await self.gateway.get_payment_status(transaction.gateway_reference)
        result = first_gateway_result(raw)
        if result is None:
            logger.info("No usable status for PTN %s yet: %s", transaction.gateway_reference, raw)
            return ReconciliationOutcome(
                transaction_id=transaction.id,
                status=TransactionStatus.PENDING,
                message="Waiting for the payment system to respond",
            )

        return self._apply(transaction, result, webhook_received_at=None)

    async def handle_webhook(self, payload: Dict[str, Any]) -> ReconciliationOutcome:
        """Gateway push notification. Replays of a settled transaction are acknowledged without changes."""
        try:
            notification = normalize_webhook_notification(payload)
        except IntegrationResponseError as e:
            raise ValidationError(f"Invalid webhook payload: {e}", payload=e.payload) from e

        logger.info("Webhook received for PTN %s: status=%s", notification.reference, notification.status)

        transaction = self.store.get_transaction_by_reference(notification.reference)
        if transaction is None:
            logger.error("No transaction for PTN %s", notification.reference)
            raise NotFoundError(f"Transaction not found for reference {notification.reference}")

        if is_terminal_status(transaction.status):
            logger.info("Transaction %s already %s; webhook replay ignored", transaction.id, transaction.status.value)
            return self._settled_outcome(transaction)

        return self._apply(transaction, to_gateway_result(notification), webhook_received_at=self._clock())

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #
    def _apply(self, transaction, result: GatewayResult, *, webhook_received_at: Optional[datetime]) -> ReconciliationOutcome:
        if result.status == GatewayStatus.SUCCESS.value:
            return self.to_completed(transaction, webhook_received_at=webhook_received_at)
        if result.status == GatewayStatus.FAILED.value:
            return self.to_failed(
                transaction,
                result.error_code,
                gateway_message=result.error_message,
                webhook_received_at=webhook_received_at,
            )

        observed = result.status or "UNKNOWN"
        self.store.record_gateway_status(transaction.id, observed, webhook_received_at=webhook_received_at)
        return ReconciliationOutcome(
            transaction_id=transaction.id,
            status=TransactionStatus.PENDING,
            message="Waiting for confirmation on your phone",
            gateway_status=observed,
        )

    def to_completed(self, transaction, *, webhook_received_at: Optional[datetime] = None) -> ReconciliationOutcome:
        now = self._clock()
        if not self.store.mark_completed(transaction.id, completed_at=now, webhook_received_at=webhook_received_at):
            return self._lost_race(transaction)

        logger.info("Transaction %s completed (PTN %s)", transaction.id, transaction.gateway_reference)

        partial_failure = False
        try:
            expires_at = grant_premium(now, self.premium_months)
            self.store.grant_premium(transaction.user_id, paid_at=now, expires_at=expires_at)
            logger.info("Premium granted to user %s until %s", transaction.user_id, expires_at.isoformat())
        except Exception as e:
            partial_failure = True
            error = PartialFailureError(
                f"Transaction {transaction.id} completed but premium grant failed for user {transaction.user_id}",
                transaction_id=transaction.id,
                user_id=transaction.user_id,
                details=str(e),
            )
            logger.critical("%s: %s", error, e, exc_info=True)

        return ReconciliationOutcome(
            transaction_id=transaction.id,
            status=TransactionStatus.COMPLETED,
            message="Payment confirmed! Premium access activated.",
            transitioned=True,
            partial_failure=partial_failure,
        )

    def to_failed(
        self,
        transaction,
        error_code: Optional[str],
        *,
        gateway_message: Optional[str] = None,
        webhook_received_at: Optional[datetime] = None,
    ) -> ReconciliationOutcome:
        if error_code:
            message = error_message_for(error_code)
        else:
            message = gateway_message or error_message_for(None)

        now = self._clock()
        if not self.store.mark_failed(
            transaction.id,
            completed_at=now,
            error_code=error_code,
            error_message=message,
            webhook_received_at=webhook_received_at,
        ):
            return self._lost_race(transaction)

        logger.info("Transaction %s failed (PTN %s): code=%s %s", transaction.id, transaction.gateway_reference, error_code, message)
        return ReconciliationOutcome(
            transaction_id=transaction.id,
            status=TransactionStatus.FAILED,
            message=message,
            transitioned=True,
            error_code=error_code,
            error_message=message,
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _lost_race(self, transaction) -> ReconciliationOutcome:
        current = self.store.get_transaction(transaction.id)
        if current is None:
            raise NotFoundError(f"Transaction {transaction.id} not found")
        logger.info("Transaction %s was already finalized as %s by another trigger", transaction.id, current.status.value)
        return self._settled_outcome(current)

    def _settled_outcome(self, transaction) -> ReconciliationOutcome:
        if transaction.status == TransactionStatus.COMPLETED:
            message = "Payment already confirmed"
        elif transaction.status == TransactionStatus.FAILED:
            message = transaction.error_message or error_message_for(transaction.error_code)
        else:
            message = "Waiting for confirmation on your phone"
        return ReconciliationOutcome(
            transaction_id=transaction.id,
            status=transaction.status,
            message=message,
            error_code=transaction.error_code,
            error_message=transaction.error_message,
            gateway_status=transaction.gateway_status,
        )
