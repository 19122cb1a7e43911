"""
Client token scheme and webhook signature checks.
"""
from .tokens import IssuedToken, TimeWindowedTokenScheme, TokenScheme
from .webhook_signature import compute_signature, verify_webhook_signature

__all__ = [
    "IssuedToken",
    "TimeWindowedTokenScheme",
    "TokenScheme",
    "compute_signature",
    "verify_webhook_signature",
]
