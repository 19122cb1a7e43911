"""
Bearer tokens for the mobile client, verified without a session store.

The token is an HMAC over ``user_id``, the minute-aligned issue time and the
expiry. The issue time is never sent back by the client, so verification
walks back over every minute bucket of the validity window and recomputes
the digest for each candidate. That costs ``validity / granularity + 1``
HMACs per check (61 with the defaults), which is fine for this relay.

Callers only depend on ``TokenScheme`` so the scheme can be swapped for a
self-contained signed token later.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: int  # unix seconds

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


class TokenScheme(ABC):
    @abstractmethod
    def issue(self, user_id: str) -> IssuedToken:
        """Create a token for ``user_id``."""

    @abstractmethod
    def verify(self, user_id: str, token: str) -> bool:
        """Return True if ``token`` was issued for ``user_id`` and has not expired."""


class TimeWindowedTokenScheme(TokenScheme):
    def __init__(
        self,
        secret: str,
        validity_seconds: int = 3600,
        granularity_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Token secret is not configured; refusing to issue or verify tokens.")
        if granularity_seconds <= 0 or validity_seconds <= 0:
            raise ValueError("Token validity and granularity must be positive.")
        self._secret = secret.encode("utf-8")
        self.validity_seconds = validity_seconds
        self.granularity_seconds = granularity_seconds
        self._clock = clock

    def _bucket(self, ts: float) -> int:
        return int(ts) - int(ts) % self.granularity_seconds

    def _digest(self, user_id: str, issued_at: int, expires_at: int) -> str:
        message = f"{user_id}:{issued_at}:{expires_at}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def issue(self, user_id: str) -> IssuedToken:
        issued_at = self._bucket(self._clock())
        expires_at = issued_at + self.validity_seconds
        return IssuedToken(token=self._digest(user_id, issued_at, expires_at), expires_at=expires_at)

    def verify(self, user_id: str, token: str) -> bool:
        if not user_id or not token:
            return False

        presented = token.encode("utf-8")
        now = self._clock()
        newest = self._bucket(now)
        steps = self.validity_seconds // self.granularity_seconds

        for i in range(steps + 1):
            candidate = newest - i * self.granularity_seconds
            expires_at = candidate + self.validity_seconds
            if expires_at <= now:
                continue
            if hmac.compare_digest(self._digest(user_id, candidate, expires_at).encode("utf-8"), presented):
                return True

        logger.debug("Token rejected for user %s", user_id)
        return False
