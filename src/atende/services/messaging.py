"""Send a message: persist to sent_messages, then relay to the delivery webhook."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import psycopg2

from atende.domain.dispatch import (
    DispatchError,
    MessageDraft,
    OutboundMessage,
    build_webhook_payload,
    persist_outbound,
)
from atende.domain.models import Attendant, Company, ReferenceData
from atende.domain.phone import normalize_phone
from atende.domain.scope import Scope
from atende.infra.db import txn
from atende.infra.repositories import reference_repository
from atende.infra.webhook import relay_message
from atende.observability.correlation import get_correlation_id
from atende.observability.logging import get_logger
from atende.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

Relay = Callable[..., bool]


@dataclass(frozen=True)
class SendResult:
    message: OutboundMessage
    relayed: bool


def _reference_for(company_id: str) -> ReferenceData:
    """Names for the webhook payload; empty when they cannot be loaded."""
    try:
        with txn() as cur:
            return reference_repository.load_reference_data(cur, company_id)
    except psycopg2.Error:
        logger.warning("reference data unavailable for webhook relay", exc_info=True)
        return ReferenceData()


def send_message(
    company: Company,
    attendant: Attendant | None,
    phone: str,
    draft: MessageDraft,
    *,
    scope: Scope | None = None,
    relay: Relay = relay_message,
) -> SendResult:
    """Persist one outbound message and relay it.

    The row is committed before the relay is attempted; a relay failure is
    logged by the relay and reported as `relayed=False`, never raised.

    Raises:
        ValueError: if the phone has no digits.
        ConversationNotVisibleError: if `scope` does not cover the phone.
        DispatchError: if lookup, insert or commit fails.
    """
    phone_key = normalize_phone(phone)
    if not phone_key:
        raise ValueError("invalid phone")

    correlation_id = get_correlation_id()
    try:
        with txn() as cur:
            outbound = persist_outbound(
                cur,
                company=company,
                attendant=attendant,
                phone_key=phone_key,
                draft=draft,
                scope=scope,
            )
    except psycopg2.Error as e:
        raise DispatchError("failed to commit outbound message") from e

    logger.info(
        "outbound message persisted",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                to_hash=hash_identifier(phone_key),
                idmessage=outbound.row["idmessage"],
                tipomessage=outbound.row["tipomessage"],
                sender_type=outbound.sender_type,
            )
        },
    )

    payload: dict[str, Any] = build_webhook_payload(outbound, company, _reference_for(company.id))
    relayed = relay(payload, correlation_id=correlation_id)
    return SendResult(message=outbound, relayed=relayed)
