"""
Relay configuration loader (token scheme, gateway, webhook, premium policy).

Non-secret settings live in config/relay_config.yml. Secrets are never stored
in the file: each section names the environment variable that holds them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class TokenConfig(BaseModel):
    secret_env: str = "TOKEN_SECRET"
    validity_seconds: int = Field(default=3600, ge=60, le=86400)
    granularity_seconds: int = Field(default=60, ge=1, le=3600)

    def secret(self) -> str:
        return os.getenv(self.secret_env, "")


class GatewayConfig(BaseModel):
    base_url: str = "https://api.sandbox.maviance.com/v2"
    base_url_env: str = "MAVIANCE_BASE_URL"
    client_id_env: str = "MAVIANCE_CLIENT_ID"
    client_secret_env: str = "MAVIANCE_CLIENT_SECRET"
    currency: str = "XAF"
    merchant_reference_prefix: str = "CULTURES"
    default_customer_address: str = "Douala, Cameroun"
    description_template: str = "Cultures News Premium - {customer_name}"
    auth_timeout_seconds: float = Field(default=10.0, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    auth_max_retries: int = Field(default=3, ge=0, le=10)
    auth_retry_delay_seconds: float = Field(default=2.0, ge=0.0)
    request_max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    backoff_cap_seconds: float = Field(default=10.0, ge=0.0)
    token_refresh_margin_seconds: int = Field(default=60, ge=0)

    def resolved_base_url(self) -> str:
        return (os.getenv(self.base_url_env) or self.base_url).rstrip("/")

    def client_id(self) -> str:
        return os.getenv(self.client_id_env, "")

    def client_secret(self) -> str:
        return os.getenv(self.client_secret_env, "")


class WebhookConfig(BaseModel):
    secret_env: str = "MAVIANCE_WEBHOOK_SECRET"
    signature_header: str = "X-Webhook-Signature"

    def secret(self) -> str:
        return os.getenv(self.secret_env, "")


class PremiumConfig(BaseModel):
    duration_months: int = Field(default=12, ge=1, le=120)


class RelayConfig(BaseModel):
    environment: Literal["development", "staging", "production", "test"] = "development"
    token: TokenConfig = Field(default_factory=TokenConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    premium: PremiumConfig = Field(default_factory=PremiumConfig)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_relay_config(config_path: Optional[Path] = None) -> RelayConfig:
    """
    Load and validate the relay configuration from YAML.

    ``APP_ENV`` overrides the ``environment`` key so the same file can be
    shipped to every deployment.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValidationError: If the config doesn't match the schema
    """
    if config_path is None:
        config_path = Path(__file__).parent.parent.parent / "config" / "relay_config.yml"

    if not config_path.exists():
        raise FileNotFoundError(f"Relay config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    app_env = os.getenv("APP_ENV", "").strip().lower()
    if app_env:
        data["environment"] = app_env

    try:
        cfg = RelayConfig(**data)
        logger.info("Successfully loaded relay config from %s (environment=%s)", config_path, cfg.environment)
        return cfg
    except ValidationError as e:
        logger.error("Relay config validation failed: %s", e)
        raise
