"""
Tests for payment reconciliation: polls and webhooks converging on one
terminal state with exactly one premium grant.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone

import pytest

from conftest import FIXED_NOW, FakeGateway
from payrelay.errors import NotFoundError, ValidationError
from payrelay.integrations.contracts.interfaces import TransactionStatus
from payrelay.services.reconciliation import PaymentReconciler


class GrantCounter:
    """Wraps store.grant_premium to count calls."""

    def __init__(self, store):
        self.calls = 0
        self._grant = store.grant_premium
        store.grant_premium = self

    def __call__(self, *args, **kwargs):
        self.calls += 1
        return self._grant(*args, **kwargs)


def make_reconciler(store, gateway):
    return PaymentReconciler(store, gateway, premium_months=12, clock=lambda: FIXED_NOW)


def success_payload():
    return {"responseData": [{"status": "SUCCESS", "ptn": "PTN123"}]}


@pytest.mark.asyncio
async def test_poll_success_completes_and_grants_one_year(store, pending_txn):
    gateway = FakeGateway(success_payload())
    outcome = await make_reconciler(store, gateway).poll(pending_txn)

    assert outcome.transitioned is True
    assert outcome.to_dict() == {
        "status": "success",
        "message": "Payment confirmed! Premium access activated.",
        "transactionId": pending_txn.id,
    }
    assert store.get_transaction(pending_txn.id).status == TransactionStatus.COMPLETED
    assert store.get_transaction(pending_txn.id).completed_at == FIXED_NOW

    user = store.get_user(pending_txn.user_id)
    assert user.is_premium is True
    assert user.last_payment_date == FIXED_NOW
    # Granted on Feb 29: one calendar year later clamps to Feb 28.
    assert user.premium_expires_at == datetime(2025, 2, 28, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_poll_on_settled_transaction_does_not_call_gateway(store, pending_txn):
    store.mark_completed(pending_txn.id, completed_at=FIXED_NOW)
    gateway = FakeGateway(success_payload())

    outcome = await make_reconciler(store, gateway).poll(store.get_transaction(pending_txn.id))

    assert gateway.status_calls == []
    assert outcome.transitioned is False
    assert outcome.client_status == "success"
    assert outcome.message == "Payment already confirmed"


@pytest.mark.asyncio
async def test_poll_failed_with_known_code(store, pending_txn):
    gateway = FakeGateway({"responseData": [{"status": "FAILED", "errorCode": "104"}]})
    outcome = await make_reconciler(store, gateway).poll(pending_txn)

    assert outcome.to_dict() == {
        "status": "failed",
        "message": "Insufficient funds",
        "transactionId": pending_txn.id,
        "errorCode": "104",
    }
    stored = store.get_transaction(pending_txn.id)
    assert stored.status == TransactionStatus.FAILED
    assert stored.error_code == "104"
    assert stored.error_message == "Insufficient funds"
    assert store.get_user(pending_txn.user_id).is_premium is False


@pytest.mark.asyncio
async def test_poll_failed_without_code_keeps_gateway_message(store, pending_txn):
    gateway = FakeGateway({"responseData": [{"status": "FAILED", "errorMessage": "Declined by issuer"}]})
    outcome = await make_reconciler(store, gateway).poll(pending_txn)

    assert outcome.status == TransactionStatus.FAILED
    assert outcome.message == "Declined by issuer"
    assert outcome.to_dict()["errorCode"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [{}, {"responseData": []}, {"responseData": None}, {"responseData": "SUCCESS"}],
)
async def test_poll_malformed_payload_changes_nothing(store, pending_txn, payload):
    outcome = await make_reconciler(store, FakeGateway(payload)).poll(pending_txn)

    assert outcome.client_status == "pending"
    stored = store.get_transaction(pending_txn.id)
    assert stored.status == TransactionStatus.PENDING
    assert stored.gateway_status is None


@pytest.mark.asyncio
async def test_poll_intermediate_status_is_recorded(store, pending_txn):
    gateway = FakeGateway({"responseData": [{"status": "INPROCESS"}]})
    outcome = await make_reconciler(store, gateway).poll(pending_txn)

    assert outcome.client_status == "pending"
    assert outcome.message == "Waiting for confirmation on your phone"
    assert outcome.gateway_status == "INPROCESS"
    stored = store.get_transaction(pending_txn.id)
    assert stored.status == TransactionStatus.PENDING
    assert stored.gateway_status == "INPROCESS"


@pytest.mark.asyncio
async def test_gateway_not_found_never_fails_the_transaction(store, pending_txn):
    # Shape the client returns when the gateway answers 404.
    gateway = FakeGateway(
        {"responseData": [{"status": "PENDING", "message": "Transaction not found; it may not have been processed yet"}]}
    )
    outcome = await make_reconciler(store, gateway).poll(pending_txn)

    assert outcome.client_status == "pending"
    assert store.get_transaction(pending_txn.id).status == TransactionStatus.PENDING


def test_completed_transition_grants_once(store, pending_txn):
    grants = GrantCounter(store)
    reconciler = make_reconciler(store, FakeGateway())

    first = reconciler.to_completed(pending_txn)
    second = reconciler.to_completed(pending_txn)

    assert first.transitioned is True
    assert second.transitioned is False
    assert second.client_status == "success"
    assert second.message == "Payment already confirmed"
    assert grants.calls == 1


def test_failed_after_completed_is_a_no_op(store, pending_txn):
    reconciler = make_reconciler(store, FakeGateway())
    reconciler.to_completed(pending_txn)

    outcome = reconciler.to_failed(pending_txn, "104")

    assert outcome.transitioned is False
    assert outcome.status == TransactionStatus.COMPLETED
    assert store.get_transaction(pending_txn.id).error_code is None


@pytest.mark.asyncio
async def test_webhook_success_and_redelivery(store, pending_txn):
    grants = GrantCounter(store)
    reconciler = make_reconciler(store, FakeGateway())

    first = await reconciler.handle_webhook({"reference": "PTN123", "status": "SUCCESS"})
    replay = await reconciler.handle_webhook({"reference": "PTN123", "status": "SUCCESS"})

    assert first.transitioned is True
    assert replay.transitioned is False
    assert replay.status == TransactionStatus.COMPLETED
    assert grants.calls == 1

    stored = store.get_transaction(pending_txn.id)
    assert stored.webhook_received is True
    assert stored.webhook_received_at == FIXED_NOW


@pytest.mark.asyncio
async def test_webhook_failed_records_code(store, pending_txn):
    reconciler = make_reconciler(store, FakeGateway())
    outcome = await reconciler.handle_webhook({"reference": "PTN123", "status": "FAILED", "errorCode": "118"})

    assert outcome.status == TransactionStatus.FAILED
    assert outcome.message == "Incorrect PIN"
    stored = store.get_transaction(pending_txn.id)
    assert stored.error_code == "118"
    assert stored.webhook_received_at == FIXED_NOW


@pytest.mark.asyncio
async def test_webhook_accepts_ptn_field(store, pending_txn):
    outcome = await make_reconciler(store, FakeGateway()).handle_webhook({"ptn": "PTN123", "status": "success"})
    assert outcome.status == TransactionStatus.COMPLETED


@pytest.mark.asyncio
async def test_webhook_for_unknown_reference(store, pending_txn):
    with pytest.raises(NotFoundError):
        await make_reconciler(store, FakeGateway()).handle_webhook({"reference": "PTN999", "status": "SUCCESS"})
    assert store.get_transaction(pending_txn.id).status == TransactionStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"status": "SUCCESS"}, {"reference": "PTN123"}, ["PTN123"]])
async def test_malformed_webhook_is_rejected(store, pending_txn, payload):
    with pytest.raises(ValidationError):
        await make_reconciler(store, FakeGateway()).handle_webhook(payload)


@pytest.mark.asyncio
async def test_failed_premium_grant_is_reported_but_acknowledged(store, pending_txn, caplog):
    def broken_grant(*args, **kwargs):
        raise RuntimeError("profiles table unavailable")

    store.grant_premium = broken_grant
    reconciler = make_reconciler(store, FakeGateway())

    with caplog.at_level(logging.CRITICAL, logger="payrelay.services.reconciliation"):
        outcome = await reconciler.handle_webhook({"reference": "PTN123", "status": "SUCCESS"})

    assert outcome.status == TransactionStatus.COMPLETED
    assert outcome.partial_failure is True
    assert store.get_transaction(pending_txn.id).status == TransactionStatus.COMPLETED
    assert any(r.levelno == logging.CRITICAL and "premium grant failed" in r.getMessage() for r in caplog.records)


class SlowGateway(FakeGateway):
    """Holds the status response until released, so a webhook can land first."""

    def __init__(self, status_payload):
        super().__init__(status_payload)
        self.called = asyncio.Event()
        self.release = asyncio.Event()

    async def get_payment_status(self, ptn):
        self.status_calls.append(ptn)
        self.called.set()
        await self.release.wait()
        return self.status_payload


@pytest.mark.asyncio
async def test_webhook_wins_race_against_slow_poll(store, pending_txn):
    grants = GrantCounter(store)
    gateway = SlowGateway(success_payload())
    reconciler = make_reconciler(store, gateway)

    poll_task = asyncio.create_task(reconciler.poll(pending_txn))
    await gateway.called.wait()

    webhook_outcome = await reconciler.handle_webhook({"reference": "PTN123", "status": "SUCCESS"})
    gateway.release.set()
    poll_outcome = await poll_task

    assert webhook_outcome.transitioned is True
    assert poll_outcome.transitioned is False
    assert poll_outcome.client_status == "success"
    assert grants.calls == 1


@pytest.mark.asyncio
async def test_conflicting_triggers_keep_first_terminal_state(store, pending_txn):
    grants = GrantCounter(store)
    gateway = SlowGateway(success_payload())
    reconciler = make_reconciler(store, gateway)

    poll_task = asyncio.create_task(reconciler.poll(pending_txn))
    await gateway.called.wait()
    await reconciler.handle_webhook({"reference": "PTN123", "status": "FAILED", "errorCode": "104"})
    gateway.release.set()
    poll_outcome = await poll_task

    assert poll_outcome.status == TransactionStatus.FAILED
    assert poll_outcome.error_code == "104"
    assert store.get_transaction(pending_txn.id).status == TransactionStatus.FAILED
    assert grants.calls == 0
    assert store.get_user(pending_txn.user_id).is_premium is False


def test_threaded_completions_grant_once(store, pending_txn):
    grants = GrantCounter(store)
    reconciler = make_reconciler(store, FakeGateway())
    barrier = threading.Barrier(10)
    outcomes = []

    def worker():
        barrier.wait()
        outcomes.append(reconciler.to_completed(pending_txn))

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(o.transitioned for o in outcomes) == 1
    assert all(o.status == TransactionStatus.COMPLETED for o in outcomes)
    assert grants.calls == 1
