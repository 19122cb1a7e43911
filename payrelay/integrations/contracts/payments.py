"""
Payment contract: error code table and input helpers specific to the
mobile money premium flow.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping

from .interfaces import PaymentMethod, PaymentRequest, TransactionStatus

MIN_PHONE_DIGITS = 9

# Gateway error codes → human readable reason.
ERROR_MESSAGES: Mapping[str, str] = {
    "100": "Transaction approved",
    "101": "Transaction failed",
    "102": "Transaction pending",
    "103": "Transaction cancelled",
    "104": "Insufficient funds",
    "105": "Invalid phone number",
    "106": "Service temporarily unavailable",
    "107": "Invalid amount",
    "108": "Unsupported operator",
    "109": "Transaction expired",
    "110": "Invalid parameters",
    "111": "Merchant account suspended",
    "112": "Transaction limit exceeded",
    "113": "Duplicate transaction",
    "114": "System maintenance",
    "115": "Network error",
    "116": "Transaction timed out",
    "117": "Declined by the user",
    "118": "Incorrect PIN",
    "119": "Account blocked",
    "120": "Service not available for this operator",
}


def error_message_for(error_code: Any) -> str:
    key = "" if error_code is None else str(error_code).strip()
    if key in ERROR_MESSAGES:
        return ERROR_MESSAGES[key]
    return f"Payment error (code: {key or 'unknown'})"


def normalize_payment_method(value: str) -> PaymentMethod:
    """Anything that is not MTN is collected through Orange Money."""
    return PaymentMethod.MTN if (value or "").strip().upper() == "MTN" else PaymentMethod.OM


def clean_phone_number(value: Any) -> str:
    return re.sub(r"\D", "", str(value or ""))


def parse_amount(value: Any) -> Decimal:
    """Return the amount as a Decimal, or raise ValueError if it is not a positive number."""
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValueError(f"Amount must be greater than zero; got {value!r}")
    return amount


def validate_payment_request(request: PaymentRequest) -> List[str]:
    """
    Return a list of validation errors.
    Empty list means the request is valid.
    """
    errors: List[str] = []

    if not request.service_number or not request.service_number.isdigit():
        errors.append("service_number must contain digits only")
    elif len(request.service_number) < MIN_PHONE_DIGITS:
        errors.append(f"service_number '{request.service_number}' does not look valid")
    if request.amount <= 0:
        errors.append("amount must be greater than zero")
    if not request.customer_name:
        errors.append("customer_name is required")

    return errors


def is_terminal_status(status: TransactionStatus) -> bool:
    """Return True if the transaction has reached a final, non-changeable state."""
    return status in {TransactionStatus.COMPLETED, TransactionStatus.FAILED}
