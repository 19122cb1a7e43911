"""
FastAPI application - Main entry point

    uvicorn payrelay.api.main:app --host 0.0.0.0 --port 3000
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os

from payrelay.api.app import create_app
from payrelay.utils.config_loader import load_relay_config

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

config = load_relay_config()


def _should_use_real_integrations() -> bool:
    mode = os.getenv("INTEGRATIONS_MODE", "").strip().lower()
    if mode in {"real", "live"}:
        return True
    if mode in {"mock", "test"}:
        return False
    return bool(config.gateway.client_id() and config.gateway.client_secret())


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================

# Use real Postgres when env is set, else the in-memory store
if os.getenv("DATABASE_URL") and os.getenv("USE_POSTGRES_TRANSACTIONS", "").lower() in ("1", "true", "yes"):
    from payrelay.database.postgres_real import TransactionStore

    store = TransactionStore(connection_string=os.environ["DATABASE_URL"])
else:
    from payrelay.database.postgres import TransactionStore

    logger.warning("DATABASE_URL not configured; using the in-memory transaction store")
    store = TransactionStore()

if _should_use_real_integrations():
    from payrelay.integrations.clients.real_http.maviance import MavianceClient

    gateway = MavianceClient.from_config(config.gateway)
else:
    from payrelay.integrations.clients.mocks.maviance import MockMavianceClient

    logger.warning("Maviance credentials not configured; using the mock gateway")
    gateway = MockMavianceClient()

app = create_app(config, store, gateway)
