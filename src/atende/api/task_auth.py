"""Authentication for internal task endpoints (APP_ROLE=worker).

Schedulers call the worker with the shared secret in X-Internal-Task-Secret.
Fail-closed: with INTERNAL_TASK_SECRET unset every request is rejected.
"""

from __future__ import annotations

import hmac
import os

from fastapi import Request

from atende.observability.logging import get_logger
from atende.observability.redaction import safe_log_context

logger = get_logger(__name__)

TASK_SECRET_HEADER = "X-Internal-Task-Secret"


def verify_task_auth(request: Request) -> bool:
    """True if the request carries the configured internal secret."""
    internal_secret = os.environ.get("INTERNAL_TASK_SECRET", "")
    if not internal_secret:
        logger.error(
            "INTERNAL_TASK_SECRET not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_secret_env")},
        )
        return False

    request_secret = request.headers.get(TASK_SECRET_HEADER, "")
    if not request_secret:
        logger.warning(
            "task auth failed: missing secret header",
            extra={"extra_fields": safe_log_context(reason="missing_header")},
        )
        return False

    if not hmac.compare_digest(request_secret.encode(), internal_secret.encode()):
        logger.warning(
            "task auth failed: secret mismatch",
            extra={"extra_fields": safe_log_context(reason="secret_mismatch")},
        )
        return False

    return True

