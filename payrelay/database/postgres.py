"""
Lightweight in-memory transaction store for local development and tests.

Implements the same interface as payrelay.database.postgres_real so the API
can run without a real database. It is NOT intended for
production use.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from payrelay.errors import NotFoundError
from payrelay.integrations.contracts.interfaces import PaymentMethod, TransactionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_premium: bool = False
    premium_expires_at: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass
class Transaction:
    id: str
    user_id: str
    gateway_reference: str
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    phone_number: str
    status: TransactionStatus = TransactionStatus.PENDING
    merchant_reference: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    gateway_status: Optional[str] = None
    webhook_received: Optional[bool] = None
    webhook_received_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None


class TransactionStore:
    """
    In-memory stand-in for the Postgres-backed transaction store.

    Records handed out are copies; every mutation goes through the store so
    the PENDING → terminal compare-and-set stays under the lock.
    """

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._transactions: Dict[str, Transaction] = {}
        self._by_reference: Dict[str, str] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Schema / lifecycle
    # ------------------------------------------------------------------ #
    def create_tables(self) -> None:
        return None

    def ping(self) -> bool:
        return True

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #
    def create_user(
        self,
        *,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        user = User(id=user_id or str(uuid.uuid4()), email=email, first_name=first_name, last_name=last_name)
        with self._lock:
            self._users[user.id] = user
        return replace(user)

    def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(str(user_id))
        return replace(user) if user else None

    def grant_premium(self, user_id: str, *, paid_at: datetime, expires_at: datetime) -> User:
        with self._lock:
            user = self._users.get(str(user_id))
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            user.is_premium = True
            user.last_payment_date = paid_at
            user.premium_expires_at = expires_at
            user.updated_at = _utcnow()
            return replace(user)

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def create_transaction(
        self,
        *,
        user_id: str,
        gateway_reference: str,
        amount: Decimal,
        currency: str,
        payment_method: PaymentMethod,
        phone_number: str,
        merchant_reference: Optional[str] = None,
    ) -> Transaction:
        if not gateway_reference:
            raise ValueError("gateway_reference is required")

        with self._lock:
            if gateway_reference in self._by_reference:
                raise ValueError(f"Duplicate gateway reference {gateway_reference}")
            txn = Transaction(
                id=str(uuid.uuid4()),
                user_id=str(user_id),
                gateway_reference=gateway_reference,
                amount=amount,
                currency=currency,
                payment_method=payment_method,
                phone_number=phone_number,
                merchant_reference=merchant_reference,
            )
            self._transactions[txn.id] = txn
            self._by_reference[gateway_reference] = txn.id
            return replace(txn)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        txn = self._transactions.get(str(transaction_id))
        return replace(txn) if txn else None

    def get_transaction_by_reference(self, gateway_reference: str) -> Optional[Transaction]:
        txn_id = self._by_reference.get(gateway_reference)
        if not txn_id:
            return None
        return self.get_transaction(txn_id)

    def _finalize(self, transaction_id: str, status: TransactionStatus, **changes) -> bool:
        with self._lock:
            txn = self._transactions.get(str(transaction_id))
            if txn is None or txn.status != TransactionStatus.PENDING:
                return False
            txn.status = status
            for key, value in changes.items():
                setattr(txn, key, value)
            return True

    def mark_completed(
        self,
        transaction_id: str,
        *,
        completed_at: datetime,
        webhook_received_at: Optional[datetime] = None,
    ) -> bool:
        """Compare-and-set PENDING → COMPLETED. False if another writer finalized first."""
        return self._finalize(
            transaction_id,
            TransactionStatus.COMPLETED,
            completed_at=completed_at,
            **_webhook_stamp(webhook_received_at),
        )

    def mark_failed(
        self,
        transaction_id: str,
        *,
        completed_at: datetime,
        error_code: Optional[str],
        error_message: Optional[str],
        webhook_received_at: Optional[datetime] = None,
    ) -> bool:
        """Compare-and-set PENDING → FAILED. False if another writer finalized first."""
        return self._finalize(
            transaction_id,
            TransactionStatus.FAILED,
            completed_at=completed_at,
            error_code=error_code,
            error_message=error_message,
            **_webhook_stamp(webhook_received_at),
        )

    def record_gateway_status(
        self,
        transaction_id: str,
        gateway_status: str,
        *,
        webhook_received_at: Optional[datetime] = None,
    ) -> bool:
        with self._lock:
            txn = self._transactions.get(str(transaction_id))
            if txn is None or txn.status != TransactionStatus.PENDING:
                return False
            txn.gateway_status = gateway_status
            for key, value in _webhook_stamp(webhook_received_at).items():
                setattr(txn, key, value)
            return True


def _webhook_stamp(received_at: Optional[datetime]) -> Dict[str, object]:
    if received_at is None:
        return {}
    return {"webhook_received": True, "webhook_received_at": received_at}
