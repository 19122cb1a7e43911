"""
Integrations layer.

Everything that talks to the Maviance payment gateway lives here:
- contracts/: request/response shapes and the gateway interface
- clients/real_http/: the HTTP client used in production
- clients/mocks/: an in-process gateway for development and tests
- policy/: normalization of raw gateway payloads

Switching implementations happens in ONE place (payrelay/api/main.py).
"""

from .contracts.interfaces import (
    GatewayResult,
    GatewayStatus,
    PaymentGateway,
    PaymentMethod,
    PaymentRequest,
    TransactionStatus,
)
from .contracts.payments import (
    ERROR_MESSAGES,
    clean_phone_number,
    error_message_for,
    is_terminal_status,
    normalize_payment_method,
    parse_amount,
    validate_payment_request,
)

__all__ = [
    # interfaces
    "GatewayResult", "GatewayStatus", "PaymentGateway", "PaymentMethod",
    "PaymentRequest", "TransactionStatus",
    # payments
    "ERROR_MESSAGES", "clean_phone_number", "error_message_for",
    "is_terminal_status", "normalize_payment_method", "parse_amount",
    "validate_payment_request",
]
