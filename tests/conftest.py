"""Pytest fixtures for the payment relay tests."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from payrelay.database.postgres import TransactionStore
from payrelay.integrations.contracts.interfaces import PaymentMethod
from payrelay.security.tokens import TimeWindowedTokenScheme

FIXED_NOW = datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable unix-seconds clock for the token scheme and gateway client."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """Gateway double returning canned payloads and counting calls."""

    def __init__(self, status_payload=None, ptn="PTN123"):
        self.status_payload = status_payload if status_payload is not None else {"responseData": [{"status": "PENDING"}]}
        self.ptn = ptn
        self.initiated = []
        self.status_calls = []

    async def initiate_payment(self, request):
        self.initiated.append(request)
        return {"ptn": self.ptn, "merchantReference": "CULTURES-1-abc"}

    async def get_payment_status(self, ptn):
        self.status_calls.append(ptn)
        return self.status_payload

    def get_error_message(self, error_code):
        from payrelay.integrations.contracts.payments import error_message_for

        return error_message_for(error_code)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tokens(clock):
    return TimeWindowedTokenScheme("test-secret", clock=clock)


@pytest.fixture
def store():
    """In-memory transaction store."""
    return TransactionStore()


@pytest.fixture
def user(store):
    return store.create_user(user_id="user-1", email="awa@example.com", first_name="Awa", last_name="Ngono")


@pytest.fixture
def pending_txn(store, user):
    return store.create_transaction(
        user_id=user.id,
        gateway_reference="PTN123",
        amount=Decimal("5000"),
        currency="XAF",
        payment_method=PaymentMethod.MTN,
        phone_number="677123456",
    )
