"""Tests for payment contract helpers and gateway payload normalization."""

from decimal import Decimal

import pytest

from payrelay.integrations.contracts.interfaces import PaymentMethod, PaymentRequest, TransactionStatus
from payrelay.integrations.contracts.payments import (
    ERROR_MESSAGES,
    clean_phone_number,
    error_message_for,
    is_terminal_status,
    normalize_payment_method,
    parse_amount,
    validate_payment_request,
)
from payrelay.integrations.policy.response_wrappers import (
    IntegrationResponseError,
    extract_ptn,
    first_gateway_result,
    normalize_webhook_notification,
)


def test_error_message_for_known_codes():
    assert error_message_for("104") == "Insufficient funds"
    assert error_message_for(118) == "Incorrect PIN"
    assert len(ERROR_MESSAGES) == 21


def test_error_message_for_unknown_codes():
    assert error_message_for("999") == "Payment error (code: 999)"
    assert error_message_for(None) == "Payment error (code: unknown)"
    assert error_message_for("") == "Payment error (code: unknown)"


def test_normalize_payment_method():
    assert normalize_payment_method("mtn") == PaymentMethod.MTN
    assert normalize_payment_method(" MTN ") == PaymentMethod.MTN
    assert normalize_payment_method("orange") == PaymentMethod.OM
    assert normalize_payment_method("OM") == PaymentMethod.OM


def test_clean_phone_number():
    assert clean_phone_number("+237 677-12-34-56") == "237677123456"
    assert clean_phone_number(677123456) == "677123456"
    assert clean_phone_number(None) == ""


def test_parse_amount():
    assert parse_amount(5000) == Decimal("5000")
    assert parse_amount("2500.50") == Decimal("2500.50")
    for bad in ("abc", "0", -10, "NaN", None):
        with pytest.raises(ValueError):
            parse_amount(bad)


def test_validate_payment_request():
    ok = PaymentRequest(service_number="677123456", amount=Decimal("5000"), payment_method=PaymentMethod.MTN, customer_name="Awa")
    assert validate_payment_request(ok) == []

    bad = PaymentRequest(service_number="6771", amount=Decimal("0"), payment_method=PaymentMethod.OM, customer_name="")
    errors = validate_payment_request(bad)
    assert len(errors) == 3


def test_terminal_statuses():
    assert is_terminal_status(TransactionStatus.COMPLETED)
    assert is_terminal_status(TransactionStatus.FAILED)
    assert not is_terminal_status(TransactionStatus.PENDING)


def test_first_gateway_result_reads_first_entry():
    result = first_gateway_result({"responseData": [{"status": "failed", "errorCode": 104}, {"status": "SUCCESS"}]})
    assert result.status == "FAILED"
    assert result.error_code == "104"


@pytest.mark.parametrize(
    "payload",
    [{}, {"responseData": None}, {"responseData": []}, {"responseData": "SUCCESS"}, {"responseData": ["x"]}, None],
)
def test_first_gateway_result_malformed(payload):
    assert first_gateway_result(payload) is None


def test_webhook_notification_accepts_ptn_alias():
    n = normalize_webhook_notification({"ptn": "PTN123", "status": "success", "errorCode": None})
    assert n.reference == "PTN123"
    assert n.status == "SUCCESS"
    assert n.error_code is None


def test_webhook_notification_requires_reference_and_status():
    with pytest.raises(IntegrationResponseError):
        normalize_webhook_notification({"status": "SUCCESS"})
    with pytest.raises(IntegrationResponseError):
        normalize_webhook_notification({"reference": "PTN123"})


def test_extract_ptn():
    assert extract_ptn({"ptn": " PTN123 "}) == "PTN123"
    with pytest.raises(IntegrationResponseError):
        extract_ptn({"status": "ok"})
    with pytest.raises(IntegrationResponseError):
        extract_ptn([])
