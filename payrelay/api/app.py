"""
FastAPI application factory.

Collaborators (store, gateway client, token scheme) are passed in so the
entry point in payrelay/api/main.py picks real or in-memory implementations
in one place and tests can build the app around fakes.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from payrelay import __version__
from payrelay.api.endpoints.payments import api as payments_api
from payrelay.api.endpoints.webhooks import router as webhooks_router
from payrelay.errors import PaymentRelayError, UpstreamError
from payrelay.integrations.contracts.interfaces import PaymentGateway
from payrelay.security.tokens import TimeWindowedTokenScheme, TokenScheme
from payrelay.services.payments import PaymentService
from payrelay.services.reconciliation import PaymentReconciler
from payrelay.utils.config_loader import RelayConfig

logger = logging.getLogger(__name__)


def create_app(
    config: RelayConfig,
    store,
    gateway: PaymentGateway,
    tokens: Optional[TokenScheme] = None,
) -> FastAPI:
    if tokens is None:
        tokens = TimeWindowedTokenScheme(
            config.token.secret(),
            validity_seconds=config.token.validity_seconds,
            granularity_seconds=config.token.granularity_seconds,
        )

    app = FastAPI(
        title="Premium Payment Relay API",
        description="Relays premium subscription payments to the Maviance mobile-money gateway",
        version=__version__,
    )

    app.state.config = config
    app.state.store = store
    app.state.gateway = gateway
    app.state.tokens = tokens
    app.state.payment_service = PaymentService(store, gateway, tokens, currency=config.gateway.currency)
    app.state.reconciler = PaymentReconciler(store, gateway, premium_months=config.premium.duration_months)

    app.include_router(payments_api, prefix="/api/payment", tags=["Payments"])
    app.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])

    @app.exception_handler(PaymentRelayError)
    async def relay_error_handler(request: Request, exc: PaymentRelayError):
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)

        body = {"error": exc.message}
        if config.is_production:
            if exc.http_status >= 500:
                body = {"error": "Payment gateway error" if isinstance(exc, UpstreamError) else "Internal server error"}
        elif exc.details:
            body["details"] = exc.details
        return JSONResponse(status_code=exc.http_status, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = {"error": "Internal server error"}
        if not config.is_production:
            body["details"] = str(exc)
        return JSONResponse(status_code=500, content=body)

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": "connected" if store.ping() else "unavailable",
        }

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting Premium Payment Relay API (environment=%s)...", config.environment)
        try:
            store.create_tables()
            logger.info("Database tables initialized")
        except Exception as e:
            logger.error(f"Error initializing database: {str(e)}")

    return app
