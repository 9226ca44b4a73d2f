"""Redaction helpers for safe logging.

Customer phone numbers, WhatsApp JIDs, e-mails and message bodies must never
reach the logs in clear. Everything passed as structured log context goes
through `safe_log_context`.
"""

import hashlib
import re
from typing import Any

# JIDs first: "5511999998888@s.whatsapp.net" would otherwise half-match as e-mail
_JID_PATTERN = re.compile(r"\b[\w.+-]+@(?:s\.whatsapp\.net|g\.us|c\.us|lid|broadcast)\b")
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"


def redact_string(value: str) -> str:
    """Redact JID, phone and e-mail patterns from a string."""
    result = _JID_PATTERN.sub(_REDACTED, value)
    result = _PHONE_PATTERN.sub(_REDACTED, result)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # Structure only, never values
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple, set)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}


def hash_identifier(value: str | None) -> str:
    """Non-reversible short hash so a phone key can be correlated across log lines."""
    if not value:
        return ""
    return hashlib.sha256(value.encode()).hexdigest()[:12]
