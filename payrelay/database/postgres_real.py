"""
Real Postgres-backed transaction store for production when
USE_POSTGRES_TRANSACTIONS and DATABASE_URL are set.
Implements the same interface as payrelay.database.postgres (in-memory stub).
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import create_engine, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payrelay.database.models import Base, Transaction, User
from payrelay.errors import NotFoundError
from payrelay.integrations.contracts.interfaces import PaymentMethod, TransactionStatus

logger = logging.getLogger(__name__)


def _normalize_connection_string(s: str) -> str:
    """Strip common mistakes: 'psql \'...\'', extra quotes, whitespace."""
    s = s.strip()
    if re.match(r"^psql\s+", s, re.IGNORECASE):
        s = re.sub(r"^psql\s+", "", s, flags=re.IGNORECASE).strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    if s.startswith("postgres://"):
        s = "postgresql+psycopg://" + s[len("postgres://"):]
    elif s.startswith("postgresql://"):
        s = "postgresql+psycopg://" + s[len("postgresql://"):]
    return s


class TransactionStore:
    """
    Transaction store using SQLAlchemy.

    Terminal transitions are conditional updates (``WHERE status = 'PENDING'``)
    and report whether this writer won, so a poll and a webhook racing on the
    same transaction cannot both grant the entitlement.
    """

    def __init__(self, connection_string: str) -> None:
        connection_string = _normalize_connection_string(connection_string)
        engine_kwargs: Dict[str, Any] = {"pool_pre_ping": True}
        if not connection_string.startswith("sqlite"):
            engine_kwargs.update(pool_size=5, max_overflow=10)
        self.engine = create_engine(connection_string, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def ping(self) -> bool:
        try:
            with self._session() as s:
                s.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error("Database connection check failed: %s", e)
            return False

    @contextmanager
    def _session(self) -> Session:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

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
        with self._session() as s:
            u = User(id=user_id or str(uuid4()), email=email, first_name=first_name, last_name=last_name, is_premium=False)
            s.add(u)
            s.flush()
            s.refresh(u)
            return u

    def get_user(self, user_id: str) -> Optional[User]:
        with self._session() as s:
            stmt = select(User).where(User.id == str(user_id))
            return s.execute(stmt).scalar_one_or_none()

    def grant_premium(self, user_id: str, *, paid_at: datetime, expires_at: datetime) -> User:
        with self._session() as s:
            stmt = select(User).where(User.id == str(user_id))
            u = s.execute(stmt).scalar_one_or_none()
            if u is None:
                raise NotFoundError(f"User {user_id} not found")
            u.is_premium = True
            u.last_payment_date = paid_at
            u.premium_expires_at = expires_at
            u.updated_at = datetime.now(timezone.utc)
            s.flush()
            s.refresh(u)
            return u

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

        try:
            with self._session() as s:
                t = Transaction(
                    id=str(uuid4()),
                    user_id=str(user_id),
                    gateway_reference=gateway_reference,
                    merchant_reference=merchant_reference,
                    amount=amount,
                    currency=currency,
                    status=TransactionStatus.PENDING,
                    payment_method=payment_method,
                    phone_number=phone_number,
                    created_at=datetime.now(timezone.utc),
                )
                s.add(t)
                s.flush()
                s.refresh(t)
                return t
        except IntegrityError as e:
            raise ValueError(f"Could not create transaction for gateway reference {gateway_reference}: {e.orig}") from e

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._session() as s:
            stmt = select(Transaction).where(Transaction.id == str(transaction_id))
            return s.execute(stmt).scalar_one_or_none()

    def get_transaction_by_reference(self, gateway_reference: str) -> Optional[Transaction]:
        with self._session() as s:
            stmt = select(Transaction).where(Transaction.gateway_reference == gateway_reference)
            return s.execute(stmt).scalar_one_or_none()

    def _update_if_pending(self, transaction_id: str, values: Dict[str, Any]) -> bool:
        with self._session() as s:
            stmt = (
                update(Transaction)
                .where(Transaction.id == str(transaction_id))
                .where(Transaction.status == TransactionStatus.PENDING)
                .values(**values)
            )
            result = s.execute(stmt)
            return result.rowcount == 1

    def mark_completed(
        self,
        transaction_id: str,
        *,
        completed_at: datetime,
        webhook_received_at: Optional[datetime] = None,
    ) -> bool:
        values: Dict[str, Any] = {"status": TransactionStatus.COMPLETED, "completed_at": completed_at}
        values.update(_webhook_stamp(webhook_received_at))
        return self._update_if_pending(transaction_id, values)

    def mark_failed(
        self,
        transaction_id: str,
        *,
        completed_at: datetime,
        error_code: Optional[str],
        error_message: Optional[str],
        webhook_received_at: Optional[datetime] = None,
    ) -> bool:
        values: Dict[str, Any] = {
            "status": TransactionStatus.FAILED,
            "completed_at": completed_at,
            "error_code": error_code,
            "error_message": error_message,
        }
        values.update(_webhook_stamp(webhook_received_at))
        return self._update_if_pending(transaction_id, values)

    def record_gateway_status(
        self,
        transaction_id: str,
        gateway_status: str,
        *,
        webhook_received_at: Optional[datetime] = None,
    ) -> bool:
        values: Dict[str, Any] = {"gateway_status": gateway_status}
        values.update(_webhook_stamp(webhook_received_at))
        return self._update_if_pending(transaction_id, values)


def _webhook_stamp(received_at: Optional[datetime]) -> Dict[str, Any]:
    if received_at is None:
        return {}
    return {"webhook_received": True, "webhook_received_at": received_at}
