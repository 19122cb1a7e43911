"""
Payment services: initiation and state reconciliation.
"""
from .payments import InitiatePaymentCommand, PaymentService
from .reconciliation import PaymentReconciler, ReconciliationOutcome

__all__ = [
    "InitiatePaymentCommand",
    "PaymentReconciler",
    "PaymentService",
    "ReconciliationOutcome",
]
