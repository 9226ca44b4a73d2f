"""Outbound delivery webhook relay.

Every dispatched message is POSTed as JSON to ATENDE_WEBHOOK_URL, which
forwards it to the WhatsApp gateway. Fire-and-forget: one attempt, no retry,
failures are logged and reported as False, never raised.

Security: NEVER log the phone number or message body. Only hashes and lengths.
"""

import os
from typing import Any

import requests

from atende.observability.logging import get_logger
from atende.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 5.0


def _get_config() -> dict[str, Any]:
    """Webhook config from environment.

    - ATENDE_WEBHOOK_URL: endpoint; relay is skipped when unset
    - ATENDE_WEBHOOK_TIMEOUT: seconds (default 5)
    """
    timeout_raw = os.environ.get("ATENDE_WEBHOOK_TIMEOUT", "")
    try:
        timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
    except ValueError:
        timeout = DEFAULT_TIMEOUT

    return {
        "url": os.environ.get("ATENDE_WEBHOOK_URL", ""),
        "timeout": timeout,
    }


def _do_request(url: str, payload: dict[str, Any], timeout: float) -> int:
    """POST JSON and return the HTTP status code. Raises on network errors."""
    resp = requests.post(url, json=payload, timeout=timeout)
    return resp.status_code


def relay_message(payload: dict[str, Any], correlation_id: str | None = None) -> bool:
    """Relay one dispatched message to the delivery webhook.

    Returns:
        True on a 2xx response; False when unconfigured, on non-2xx or on
        network errors.
    """
    config = _get_config()

    log_ctx = safe_log_context(
        correlationId=correlation_id or "",
        to_hash=hash_identifier(payload.get("numero")),
        idmessage=payload.get("idmessage"),
        text_len=len(payload.get("message") or ""),
        tipomessage=payload.get("tipomessage"),
    )

    if not config["url"]:
        logger.warning("webhook relay skipped: ATENDE_WEBHOOK_URL not set", extra={"extra_fields": log_ctx})
        return False

    try:
        status = _do_request(config["url"], payload, config["timeout"])
    except requests.RequestException as e:
        logger.error(
            "webhook relay failed",
            extra={"extra_fields": {**log_ctx, **safe_log_context(error_type=type(e).__name__)}},
        )
        return False

    if not 200 <= status < 300:
        logger.error(
            "webhook relay rejected",
            extra={"extra_fields": {**log_ctx, **safe_log_context(status=status)}},
        )
        return False

    logger.info("webhook relay delivered", extra={"extra_fields": {**log_ctx, **safe_log_context(status=status)}})
    return True
