"""Effective timestamp resolution for messages.

Provider-delivered rows carry the original send time in `timestamp` (epoch
seconds). Rows written by this system only set `date_time` / `created_at`.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any

from atende.domain.models import Message

_SHORT_OFFSET = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)([+-]\d{2})$")


def _parse_epoch_seconds(value: str | None) -> float | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_instant_ms(value: Any) -> int | None:
    """Parse a calendar date-time into epoch milliseconds.

    Accepts datetime objects (naive = UTC) and ISO-8601 strings, including the
    `Z` suffix and Postgres' short `+00` offsets. Returns None when invalid.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        text = _SHORT_OFFSET.sub(r"\1\2:00", text)
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000))


def effective_timestamp_ms(message: Message) -> int:
    """Resolve one comparable instant: timestamp, then date_time, then created_at, then 0."""
    seconds = _parse_epoch_seconds(message.timestamp)
    if seconds is not None:
        return int(round(seconds * 1000))

    for candidate in (message.date_time, message.created_at):
        ms = parse_instant_ms(candidate)
        if ms is not None:
            return ms

    return 0


def to_iso(ms: int) -> str:
    """ISO-8601 UTC with milliseconds; empty string for the zero instant."""
    if not ms:
        return ""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
