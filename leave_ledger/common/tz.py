"""Timezone-normalised 'today' for date-based leave rules."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from leave_ledger.config import settings


def local_today(tz_name: Optional[str] = None) -> date:
    """Return today's date in *tz_name* (defaults to ``settings.TIMEZONE``)."""
    return datetime.now(ZoneInfo(tz_name or settings.TIMEZONE)).date()
