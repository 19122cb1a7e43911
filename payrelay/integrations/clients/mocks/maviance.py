"""
Maviance payment gateway: MOCK client.

⚠️  This is a mock implementation for development and testing.
    Payments start PENDING; a status check settles them on the configured
    outcome, or tests drive them explicitly with ``set_status``.
"""

import logging
import random
import uuid
from typing import Any, Dict, List, Optional

from payrelay.integrations.contracts.interfaces import GatewayStatus, PaymentGateway, PaymentRequest
from payrelay.integrations.contracts.payments import error_message_for

logger = logging.getLogger(__name__)


class MockMavianceClient(PaymentGateway):
    """
    Mock Maviance client.

    Parameters
    ----------
    payment_success_rate : float
        Probability (0–1) that a payment settles as SUCCESS when
        ``auto_settle`` is on. Default 0.95.
    auto_settle : bool
        If True, the first status check settles a PENDING payment. If False,
        payments stay PENDING until ``set_status`` is called. Default True.
    """

    def __init__(self, payment_success_rate: float = 0.95, auto_settle: bool = True):
        self._success_rate = payment_success_rate
        self._auto_settle = auto_settle

        # In-memory stores (reset on restart)
        self._payments: Dict[str, Dict[str, Any]] = {}
        self.initiated: List[PaymentRequest] = []
        self.status_checks: List[str] = []

        logger.info("[MAVIANCE MOCK] Client initialised (success_rate=%.0f%%)", payment_success_rate * 100)

    def _new_ptn(self) -> str:
        return f"MOCK-{uuid.uuid4().hex[:16].upper()}"

    async def initiate_payment(self, request: PaymentRequest) -> Dict[str, Any]:
        ptn = self._new_ptn()
        self.initiated.append(request)
        self._payments[ptn] = {
            "ptn": ptn,
            "status": GatewayStatus.PENDING.value,
            "amount": float(request.amount),
            "serviceNumber": request.service_number,
            "paymentMethod": request.payment_method.value,
        }
        logger.info("[MAVIANCE MOCK] Payment initiated ptn=%s amount=%s method=%s",
                    ptn, request.amount, request.payment_method.value)
        return {"ptn": ptn, "status": GatewayStatus.PENDING.value}

    async def get_payment_status(self, ptn: str) -> Dict[str, Any]:
        self.status_checks.append(ptn)
        payment = self._payments.get(ptn)
        if payment is None:
            # Same shape the real client returns for a gateway 404.
            return {"responseData": [{"status": GatewayStatus.PENDING.value,
                                      "message": "Transaction not found; it may not have been processed yet"}]}

        if self._auto_settle and payment["status"] == GatewayStatus.PENDING.value:
            if random.random() < self._success_rate:
                payment["status"] = GatewayStatus.SUCCESS.value
            else:
                payment["status"] = GatewayStatus.FAILED.value
                payment["errorCode"] = "104"

        return {"responseData": [dict(payment)]}

    def set_status(self, ptn: str, status: str, error_code: Optional[str] = None) -> None:
        payment = self._payments.setdefault(ptn, {"ptn": ptn})
        payment["status"] = status
        if error_code is not None:
            payment["errorCode"] = error_code
        logger.info("[MAVIANCE MOCK] ptn=%s → %s", ptn, status)

    def get_error_message(self, error_code: Any) -> str:
        return error_message_for(error_code)
