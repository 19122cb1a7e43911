"""
Maviance (Smobilpay) payment gateway HTTP client.

Owns the gateway access token: it is cached on the instance and refreshed
before every call when it is missing or about to expire. Refresh is a plain
check-then-act; two concurrent refreshes only cost an extra token request.
"""

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from payrelay.errors import GatewayAuthError, UpstreamError, ValidationError
from payrelay.integrations.contracts.interfaces import PaymentGateway, PaymentRequest
from payrelay.integrations.contracts.payments import error_message_for
from payrelay.integrations.policy.response_wrappers import IntegrationResponseError, extract_ptn
from payrelay.utils.config_loader import GatewayConfig

logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES = {401, 403, 408, 429}


def _is_retryable(status_code: int) -> bool:
    return status_code in _RETRYABLE_STATUSES or status_code >= 500


def _gateway_reason(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    return body.get("message") or body.get("error_description")


class MavianceClient(PaymentGateway):
    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        config: Optional[GatewayConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or GatewayConfig()
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

        self.access_token: Optional[str] = None
        self.token_expiry: Optional[float] = None

        if not client_id or not client_secret:
            logger.warning("Maviance client credentials are not set.")

    @classmethod
    def from_config(cls, config: GatewayConfig, **kwargs: Any) -> "MavianceClient":
        return cls(
            base_url=config.resolved_base_url(),
            client_id=config.client_id(),
            client_secret=config.client_secret(),
            config=config,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def authenticate(self) -> str:
        url = f"{self.base_url}/oauth/v2/token"
        attempts = self.config.auth_max_retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                logger.info("Authenticating with Maviance (attempt %d/%d)", attempt, attempts)
                async with httpx.AsyncClient(timeout=self.config.auth_timeout_seconds, transport=self._transport) as client:
                    response = await client.post(
                        url,
                        params={
                            "client_id": self.client_id,
                            "client_secret": self.client_secret,
                            "grant_type": "client_credentials",
                        },
                        headers={
                            "Content-Type": "application/x-www-form-urlencoded",
                            "Accept": "application/json",
                        },
                    )
                    response.raise_for_status()
                    data = response.json()

                token = data.get("access_token") if isinstance(data, dict) else None
                if not token:
                    raise IntegrationResponseError("Access token not received in gateway response")

                expires_in = float(data.get("expires_in") or 0)
                self.access_token = token
                self.token_expiry = self._clock() + expires_in
                logger.info("Maviance authentication succeeded; token expires in %ss", int(expires_in))
                return token
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
                logger.error("Maviance authentication failed (attempt %d/%d, status=%s): %s", attempt, attempts, status, e)
                if attempt < attempts:
                    await self._sleep(self.config.auth_retry_delay_seconds)

        raise GatewayAuthError(
            "Maviance authentication failed after multiple attempts",
            details=str(last_error) if last_error else None,
        )

    def invalidate_token(self) -> None:
        self.access_token = None
        self.token_expiry = None

    async def ensure_token(self) -> str:
        margin = self.config.token_refresh_margin_seconds
        if not self.access_token or self.token_expiry is None or self._clock() >= self.token_expiry - margin:
            logger.info("Refreshing Maviance access token")
            await self.authenticate()
        return self.access_token

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _request_with_retry(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Authenticated request with exponential backoff.

        401/403 drop the cached token so the next attempt re-authenticates.
        Other 4xx answers are deterministic and are raised immediately.
        """
        max_attempts = self.config.request_max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            await self.ensure_token()
            try:
                logger.info("Attempt %d/%d: %s %s", attempt, max_attempts, method, url)
                async with httpx.AsyncClient(timeout=self.config.request_timeout_seconds, transport=self._transport) as client:
                    response = await client.request(
                        method,
                        url,
                        json=payload,
                        headers={
                            "Authorization": f"Bearer {self.access_token}",
                            "Content-Type": "application/json",
                            "Accept": "application/json",
                        },
                    )
                    response.raise_for_status()
                    data = response.json() if response.content else {}
                logger.info("Response %s %s: status=%s", method, url, response.status_code)
                return data
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.error("Attempt %d/%d failed: %s %s -> %s", attempt, max_attempts, method, url, status)
                if status in (401, 403):
                    logger.info("Gateway rejected the access token; re-authenticating on next attempt")
                    self.invalidate_token()
                elif not _is_retryable(status):
                    raise
                last_error = e
            except (httpx.RequestError, ValueError) as e:
                logger.error("Attempt %d/%d failed: %s %s -> %s", attempt, max_attempts, method, url, e)
                last_error = e

            if attempt < max_attempts:
                delay = min(self.config.backoff_base_seconds * (2 ** (attempt - 1)), self.config.backoff_cap_seconds)
                logger.info("Waiting %.1fs before retrying", delay)
                await self._sleep(delay)

        raise last_error

    def _merchant_reference(self) -> str:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        return f"{self.config.merchant_reference_prefix}-{int(self._clock() * 1000)}-{suffix}"

    async def initiate_payment(self, request: PaymentRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "amount": float(request.amount),
            "serviceNumber": request.service_number,
            "customerName": request.customer_name,
            "customerEmailaddress": request.customer_email,
            "customerAddress": request.customer_address or self.config.default_customer_address,
            "paymentMethod": request.payment_method.value,
            "description": self.config.description_template.format(customer_name=request.customer_name),
            "currency": self.config.currency,
            "merchantReference": self._merchant_reference(),
        }
        logger.info(
            "Initiating Maviance payment ref=%s amount=%s %s method=%s",
            payload["merchantReference"], payload["amount"], payload["currency"], payload["paymentMethod"],
        )

        try:
            data = await self._request_with_retry("POST", f"{self.base_url}/api/v2/payment", payload)
            ptn = extract_ptn(data)
        except httpx.HTTPStatusError as e:
            reason = _gateway_reason(e.response) or str(e)
            logger.error("Maviance payment initiation rejected: status=%s reason=%s", e.response.status_code, reason)
            raise UpstreamError(f"Maviance: {reason}", details=e.response.text) from e
        except IntegrationResponseError as e:
            logger.error("Maviance payment initiation returned no PTN: %s", e.payload)
            raise UpstreamError(f"Maviance: {e}", payload=e.payload) from e
        except (httpx.RequestError, ValueError) as e:
            logger.error("Maviance payment initiation failed: %s", e)
            raise UpstreamError(f"Maviance: {e or 'payment initiation failed'}") from e

        logger.info("Payment initiated, PTN=%s", ptn)
        return {**data, "ptn": ptn, "merchantReference": data.get("merchantReference") or payload["merchantReference"]}

    async def get_payment_status(self, ptn: str) -> Dict[str, Any]:
        if not ptn:
            raise ValidationError("PTN is required")

        logger.info("Checking payment status for PTN %s", ptn)
        try:
            return await self._request_with_retry("GET", f"{self.base_url}/api/v2/payment/{ptn}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                # Very recent transactions may not be indexed yet.
                logger.warning("PTN %s not found at gateway; reporting PENDING", ptn)
                return {
                    "responseData": [
                        {"status": "PENDING", "message": "Transaction not found; it may not have been processed yet"}
                    ]
                }
            raise UpstreamError(f"Payment status check failed: {_gateway_reason(e.response) or e}") from e
        except (httpx.RequestError, ValueError) as e:
            raise UpstreamError(f"Payment status check failed: {e}") from e

    def get_error_message(self, error_code: Any) -> str:
        return error_message_for(error_code)
