from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from payrelay.integrations.contracts.interfaces import GatewayResult


class IntegrationResponseError(ValueError):
    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.payload = payload or {}


class WebhookNotificationModel(BaseModel):
    reference: str
    status: str
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


def extract_ptn(raw: Any) -> str:
    """The PTN is the only success criterion for an initiation response."""
    if not isinstance(raw, dict):
        raise IntegrationResponseError("PTN not received in gateway response", payload={"body": raw})
    ptn = raw.get("ptn")
    if ptn is None or not str(ptn).strip():
        raise IntegrationResponseError("PTN not received in gateway response", payload=raw)
    return str(ptn).strip()


def first_gateway_result(raw: Any) -> Optional[GatewayResult]:
    """
    First entry of ``responseData`` from a status payload.

    Returns None when the payload has no usable result list; callers treat
    that as "still pending" and must not mutate anything.
    """
    if not isinstance(raw, dict):
        return None
    results = raw.get("responseData")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        return None

    first = results[0]
    return GatewayResult(
        status=_normalize_status(first.get("status")),
        error_code=_optional_str(first.get("errorCode")),
        error_message=_optional_str(first.get("errorMessage") or first.get("message")),
        raw=first,
    )


def normalize_webhook_notification(raw: Dict[str, Any]) -> WebhookNotificationModel:
    if not isinstance(raw, dict):
        raise IntegrationResponseError("Webhook body must be a JSON object.")

    reference = _first_non_empty(raw, "reference", "ptn")
    status = _first_non_empty(raw, "status")

    return _build_model(
        WebhookNotificationModel,
        {
            "reference": str(reference).strip(),
            "status": _normalize_status(status),
            "error_code": _optional_str(raw.get("errorCode", raw.get("error_code"))),
            "error_message": _optional_str(raw.get("errorMessage", raw.get("error_message"))),
            "raw": raw,
        },
        raw,
    )


def to_gateway_result(notification: WebhookNotificationModel) -> GatewayResult:
    return GatewayResult(
        status=notification.status,
        error_code=notification.error_code,
        error_message=notification.error_message,
        raw=notification.raw,
    )


def _normalize_status(value: Any) -> str:
    return str(value or "").strip().upper()


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_non_empty(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    if default is not None:
        return default
    raise IntegrationResponseError(f"Missing required field. Checked keys: {', '.join(keys)}", payload=data)


def _build_model(model_type, payload: Dict[str, Any], raw: Dict[str, Any]):
    try:
        return model_type(**payload)
    except ValidationError as exc:
        raise IntegrationResponseError(f"Payload validation failed: {exc}", payload=raw) from exc
