"""Conversations (inbox) endpoints for the dashboard.

GET   /conversations?q=...                 → aggregated list (company actor)
GET   /conversations/{phone}               → one thread grouped by date
POST  /conversations/{phone}/messages      → send (201)
PUT   /conversations/{phone}/tags          → replace the contact's tags
PATCH /conversations/{phone}               → move contact to a department/sector (company admin)

Attendants only see conversations of their own department and sector.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from atende.api.session import SessionContext, require_company_actor, require_company_admin
from atende.domain.attachments import (
    InvalidAttachmentError,
    detect_base64_kind,
    make_attachment,
    media_kind_for_tipomessage,
    to_data_url,
)
from atende.domain.contacts import ContactNotFoundError, UnknownSectorError, UnknownTagError, update_contact_routing
from atende.domain.conversations import format_time, group_by_date, search
from atende.domain.dispatch import ConversationNotVisibleError, EmptyMessageError, build_draft
from atende.domain.models import Conversation, Message, ReferenceData
from atende.domain.phone import format_phone, normalize_phone
from atende.domain.scope import is_visible
from atende.domain.tags import MAX_TAGS_PER_CONTACT, replace_contact_tags
from atende.domain.timestamps import effective_timestamp_ms, to_iso
from atende.infra.db import txn
from atende.infra.repositories import contacts_repository, reference_repository
from atende.infra.time import viewer_timezone
from atende.observability.correlation import get_correlation_id
from atende.observability.logging import get_logger
from atende.observability.redaction import hash_identifier, safe_log_context
from atende.services import inbox, messaging

logger = get_logger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


# ── Schemas ───────────────────────────────────────────────────────────────────


class AttachmentIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    filename: str = Field(..., min_length=1)
    mimetype: str | None = None
    base64: str = Field(..., min_length=1)


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str | None = None
    caption: str | None = None
    attachment: AttachmentIn | None = None


class ReplaceTagsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tag_ids: list[str] = Field(default_factory=list)


class UpdateContactRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    department_id: str | None = None
    sector_id: str | None = None
    tag_ids: list[str] | None = None


# ── Helpers ───────────────────────────────────────────────────────────────────


def _phone_key_or_400(phone: str) -> str:
    key = normalize_phone(phone)
    if not key:
        raise HTTPException(status_code=400, detail="Invalid phone")
    return key


def _summary(conversation: Conversation, reference: ReferenceData) -> dict:
    return {
        "phone_number": conversation.phone_number,
        "display_phone": format_phone(conversation.phone_number),
        "name": conversation.name,
        "last_message": conversation.last_message,
        "last_message_time": conversation.last_message_time,
        "message_count": len(conversation.messages),
        "contact_id": conversation.contact_id,
        "department_id": conversation.department_id,
        "department_name": reference.department_name(conversation.department_id),
        "sector_id": conversation.sector_id,
        "sector_name": reference.sector_name(conversation.sector_id),
        "tag_ids": list(conversation.tag_ids),
    }


def _message_to_dict(message: Message, tz) -> dict:
    ms = effective_timestamp_ms(message)
    kind = media_kind_for_tipomessage(message.tipomessage) or detect_base64_kind(message.base64)
    media_url = message.urlimagem or message.urlpdf
    if message.base64 and kind:
        media_url = to_data_url(message.base64, kind)

    return {
        "id": message.id,
        "idmessage": message.idmessage,
        "source": message.source,
        "is_outbound": message.is_outbound,
        "pushname": message.pushname,
        "tipomessage": message.tipomessage,
        "media_kind": kind,
        "message": message.message,
        "caption": message.caption,
        "mimetype": message.mimetype,
        "media_url": media_url,
        "timestamp": to_iso(ms),
        "time": format_time(ms, tz),
        "department_id": message.department_id,
        "sector_id": message.sector_id,
    }


def _find_visible_contact(session: SessionContext, phone_key: str):
    with txn() as cur:
        contact = contacts_repository.find_contact_by_phone(cur, session.company.id, phone_key)
    if contact is None or not is_visible(session.scope, contact):
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.get("")
def list_conversations(
    q: str | None = Query(None, description="Search by name or phone"),
    session: SessionContext = Depends(require_company_actor),
) -> dict:
    """Aggregated conversations visible to the caller, most recent first."""
    snapshot = inbox.load_inbox(session.scope)
    conversations = search(snapshot.conversations, q)
    return {
        "conversations": [_summary(c, snapshot.reference) for c in conversations],
        "departments": [{"id": d.id, "name": d.name} for d in snapshot.reference.departments],
        "sectors": [
            {"id": s.id, "name": s.name, "department_id": s.department_id} for s in snapshot.reference.sectors
        ],
        "tags": [{"id": t.id, "name": t.name, "color": t.color} for t in snapshot.reference.tags],
    }


@router.get("/{phone}")
def get_conversation(
    phone: str = Path(..., description="Phone number or JID"),
    tz: str | None = Query(None, description="IANA timezone for date labels"),
    session: SessionContext = Depends(require_company_actor),
) -> dict:
    """One thread with messages grouped by day (Hoje / Ontem / DD/MM/YYYY)."""
    phone_key = _phone_key_or_400(phone)
    try:
        zone = viewer_timezone(tz)
    except (KeyError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid timezone")

    conversation = inbox.load_conversation(session.scope, phone_key)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    reference = inbox.load_reference_data(session.scope)
    return {
        **_summary(conversation, reference),
        "groups": [
            {"label": label, "messages": [_message_to_dict(m, zone) for m in messages]}
            for label, messages in group_by_date(conversation.messages, tz=zone)
        ],
    }


@router.post("/{phone}/messages", status_code=201)
def send_message(
    body: SendMessageRequest,
    phone: str = Path(..., description="Phone number or JID"),
    session: SessionContext = Depends(require_company_actor),
) -> dict:
    """Persist and relay a message to the phone.

    The message is stored even when the delivery webhook fails; `relayed`
    tells whether the relay was accepted.
    """
    phone_key = _phone_key_or_400(phone)
    if not session.scope.is_fully_configured:
        raise HTTPException(status_code=403, detail="Attendant has no department or sector")

    try:
        attachment = None
        if body.attachment is not None:
            attachment = make_attachment(body.attachment.filename, body.attachment.mimetype, body.attachment.base64)
        draft = build_draft(body.text, attachment, body.caption)
    except (EmptyMessageError, InvalidAttachmentError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        result = messaging.send_message(session.company, session.attendant, phone_key, draft, scope=session.scope)
    except ConversationNotVisibleError:
        raise HTTPException(status_code=404, detail="Conversation not found")

    logger.info(
        "message sent",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                to_hash=hash_identifier(phone_key),
                relayed=result.relayed,
            )
        },
    )
    return {
        "id": result.message.id,
        "idmessage": result.message.row["idmessage"],
        "relayed": result.relayed,
    }


@router.put("/{phone}/tags")
def replace_tags(
    body: ReplaceTagsRequest,
    phone: str = Path(..., description="Phone number or JID"),
    session: SessionContext = Depends(require_company_actor),
) -> dict:
    """Replace the contact's tag set (at most 5; extra ids are dropped)."""
    phone_key = _phone_key_or_400(phone)
    contact = _find_visible_contact(session, phone_key)
    wanted = body.tag_ids[:MAX_TAGS_PER_CONTACT]

    with txn() as cur:
        known = reference_repository.company_tag_ids(cur, session.company.id, wanted)
        unknown = [t for t in wanted if t not in known]
        if unknown:
            raise HTTPException(status_code=400, detail="Unknown tag")
        outcome = replace_contact_tags(cur, contact.id, contact.tag_ids, wanted)

    return {"outcome": outcome.value}


@router.patch("/{phone}")
def update_contact(
    body: UpdateContactRequest,
    phone: str = Path(..., description="Phone number or JID"),
    session: SessionContext = Depends(require_company_admin),
) -> dict:
    """Reassign department/sector (contact and its messages) and optionally tags."""
    phone_key = _phone_key_or_400(phone)
    company = session.company

    try:
        with txn() as cur:
            if body.department_id is not None and not reference_repository.department_exists(
                cur, company.id, body.department_id
            ):
                raise HTTPException(status_code=400, detail="Unknown department")
            outcome = update_contact_routing(
                cur,
                company,
                phone_key,
                department_id=body.department_id,
                sector_id=body.sector_id,
                tag_ids=body.tag_ids[:MAX_TAGS_PER_CONTACT] if body.tag_ids is not None else None,
            )
    except ContactNotFoundError:
        raise HTTPException(status_code=404, detail="Contact not found")
    except UnknownSectorError:
        raise HTTPException(status_code=400, detail="Unknown sector")
    except UnknownTagError:
        raise HTTPException(status_code=400, detail="Unknown tag")

    return {"outcome": outcome.value}
