"""Premium entitlement dates."""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import Optional


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-month offset; the day is clamped to the end of shorter months (Feb 29 -> Feb 28)."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def grant_premium(now: datetime, months: int = 12) -> datetime:
    """Expiry of a premium grant starting at ``now``: one calendar year by default."""
    return add_months(now, months)


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)


def has_active_entitlement(is_premium: bool, expires_at: Optional[datetime], now: datetime) -> bool:
    """A premium flag without an expiry date counts as active."""
    if not is_premium:
        return False
    expires_at = as_utc(expires_at)
    return expires_at is None or expires_at > now
