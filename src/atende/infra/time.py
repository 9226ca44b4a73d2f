"""Time utilities for consistent timestamp handling."""

import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Sao_Paulo"


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def epoch_ms_now() -> int:
    return int(utc_now().timestamp() * 1000)


def viewer_timezone(name: str | None = None) -> ZoneInfo:
    """Timezone used for date labels; ATENDE_TIMEZONE unless overridden."""
    return ZoneInfo(name or os.environ.get("ATENDE_TIMEZONE") or DEFAULT_TIMEZONE)
