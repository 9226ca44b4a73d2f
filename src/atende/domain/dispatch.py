"""Outbound message construction and persistence.

A reply inherits the provider instance and the department/sector/tag of the
newest inbound message from the same phone, so it stays attributed to the
same desk. Without history, the sender's own department/sector and the
company name are used instead.

`persist_outbound` runs inside the caller's transaction; relaying to the
delivery webhook happens after commit (see atende.services.messaging).
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from atende.domain.attachments import TEXT_KIND, Attachment
from atende.domain.models import OUTBOUND_MARKER, Attendant, Company, ReferenceData
from atende.domain.scope import Scope, is_visible
from atende.infra.repositories import messages_repository
from atende.infra.time import utc_now

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LEN = 9


class DispatchError(Exception):
    """Raised when the history lookup or the insert fails. Nothing was persisted."""


class EmptyMessageError(ValueError):
    """Raised when neither text nor an attachment was provided."""


class ConversationNotVisibleError(Exception):
    """Raised when the sender may not write to the target conversation."""


@dataclass(frozen=True)
class MessageDraft:
    """Content of a message about to be sent."""

    tipomessage: str = TEXT_KIND
    message: str = ""
    caption: str | None = None
    mimetype: str | None = None
    base64: str | None = None
    urlimagem: str | None = None
    urlpdf: str | None = None


@dataclass(frozen=True)
class OutboundMessage:
    """A persisted sent_messages row plus the context needed for the webhook."""

    id: str
    phone_key: str
    row: dict[str, Any]
    sender_type: str
    attendant: Attendant | None = None


def build_draft(
    text: str | None,
    attachment: Attachment | None = None,
    caption: str | None = None,
) -> MessageDraft:
    """Derive kind and body from text and/or one attachment.

    Images use caption or text as the body, audio falls back to "Áudio",
    documents to the file name.

    Raises:
        EmptyMessageError: if text is blank and there is no attachment.
    """
    text = (text or "").strip()
    caption = (caption or "").strip() or None

    if attachment is None:
        if not text:
            raise EmptyMessageError("message text is empty")
        return MessageDraft(tipomessage=TEXT_KIND, message=text)

    kind = attachment.media_kind
    if kind == "image":
        body = caption or text or "Imagem"
    elif kind == "audio":
        body = text or "Áudio"
        caption = None
    else:
        body = text or attachment.filename
        caption = None

    return MessageDraft(
        tipomessage=attachment.tipomessage,
        message=body,
        caption=caption,
        mimetype=attachment.mimetype,
        base64=attachment.base64,
    )


def generate_message_id(now: datetime | None = None) -> str:
    """Time-based prefix plus a random base36 suffix. Uniqueness is best-effort."""
    now = now or utc_now()
    prefix = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LEN))
    return f"{prefix}_{suffix}"


def build_outbound_row(
    *,
    company: Company,
    attendant: Attendant | None,
    phone_key: str,
    draft: MessageDraft,
    history: dict | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Column values for a new sent_messages row."""
    now = now or utc_now()
    now_iso = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    if history:
        instancia = history.get("instancia") or company.name
        department_id = history.get("department_id")
        sector_id = history.get("sector_id")
        tag_id = history.get("tag_id")
    else:
        instancia = company.name
        department_id = attendant.department_id if attendant else None
        sector_id = attendant.sector_id if attendant else None
        tag_id = None

    return {
        "numero": phone_key,
        "sender": phone_key,
        "minha?": OUTBOUND_MARKER,
        "pushname": company.name,
        "apikey_instancia": company.api_key,
        "date_time": now_iso,
        "created_at": now,
        "instancia": instancia,
        "idmessage": generate_message_id(now),
        "company_id": company.id,
        "department_id": department_id,
        "sector_id": sector_id,
        "tag_id": tag_id,
        "tipomessage": draft.tipomessage or TEXT_KIND,
        "message": draft.message or "",
        "caption": draft.caption,
        "mimetype": draft.mimetype,
        "base64": draft.base64,
        "urlpdf": draft.urlpdf,
        "urlimagem": draft.urlimagem,
    }


def persist_outbound(
    cur: PgCursor,
    *,
    company: Company,
    attendant: Attendant | None,
    phone_key: str,
    draft: MessageDraft,
    scope: Scope | None = None,
    now: datetime | None = None,
) -> OutboundMessage:
    """Look up reply context, build the row and insert it into sent_messages.

    With a scope, the reply context must be visible to it: an attendant
    cannot write into another desk's conversation, and an attendant without
    a department or sector cannot send at all.

    Raises:
        ConversationNotVisibleError: the scope does not cover the conversation.
        DispatchError: on any database error during lookup or insert.
    """
    if not company.api_key:
        raise DispatchError("company has no routing key")
    if scope is not None and not scope.is_fully_configured:
        raise ConversationNotVisibleError("sender has no department or sector")

    try:
        history = messages_repository.find_latest_inbound_context(cur, company.api_key, phone_key)
    except psycopg2.Error as e:
        raise DispatchError("failed to persist outbound message") from e

    if scope is not None and history is not None and not is_visible(scope, history):
        raise ConversationNotVisibleError("conversation outside sender scope")

    try:
        row = build_outbound_row(
            company=company,
            attendant=attendant,
            phone_key=phone_key,
            draft=draft,
            history=history,
            now=now,
        )
        row_id = messages_repository.insert_sent_message(cur, row)
    except psycopg2.Error as e:
        raise DispatchError("failed to persist outbound message") from e

    return OutboundMessage(
        id=row_id,
        phone_key=phone_key,
        row=row,
        sender_type="attendant" if attendant else "company",
        attendant=attendant,
    )


def build_webhook_payload(
    outbound: OutboundMessage,
    company: Company,
    reference: ReferenceData,
) -> dict[str, Any]:
    """Normalized payload for the delivery webhook."""
    row = outbound.row
    payload: dict[str, Any] = {
        "numero": outbound.phone_key,
        "message": row["message"],
        "tipomessage": row["tipomessage"],
        "base64": row["base64"],
        "urlimagem": row["urlimagem"],
        "urlpdf": row["urlpdf"],
        "caption": row["caption"],
        "mimetype": row["mimetype"],
        "idmessage": row["idmessage"],
        "pushname": row["pushname"],
        "timestamp": row["date_time"],
        "instancia": row["instancia"],
        "apikey_instancia": row["apikey_instancia"],
        "sender_type": outbound.sender_type,
        "department_id": row["department_id"],
        "department_name": reference.department_name(row["department_id"]),
        "sector_id": row["sector_id"],
        "sector_name": reference.sector_name(row["sector_id"]),
        "company_id": company.id,
        "company_name": company.name,
    }
    if outbound.attendant is not None:
        payload["attendant_id"] = outbound.attendant.id
        payload["attendant_name"] = outbound.attendant.name
    return payload
