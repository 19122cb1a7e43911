from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    MTN = "MTN"
    OM = "OM"       # Orange Money


class GatewayStatus(str, Enum):
    """Status values reported by the gateway in ``responseData[].status`` and webhooks."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


# ---------------------------------------------------------------------------
# Shared data models
# ---------------------------------------------------------------------------

@dataclass
class PaymentRequest:
    service_number: str                  # digits only
    amount: Decimal
    payment_method: PaymentMethod
    customer_name: str
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayResult:
    """First entry of a gateway status payload, or a webhook notification."""
    status: str
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Gateway interface
# ---------------------------------------------------------------------------

class PaymentGateway(ABC):
    """Every payment gateway client (real or mock) must implement this interface."""

    @abstractmethod
    async def initiate_payment(self, request: PaymentRequest) -> Dict[str, Any]:
        """Start a collection. The returned payload always carries ``ptn``."""

    @abstractmethod
    async def get_payment_status(self, ptn: str) -> Dict[str, Any]:
        """Raw status payload (``{"responseData": [...]}``) for a PTN."""

    @abstractmethod
    def get_error_message(self, error_code: Any) -> str:
        """Human readable reason for a gateway error code."""
