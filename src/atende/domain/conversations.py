"""Conversation aggregation.

Merges the scoped inbound and outbound message rows with the contact
directory into per-phone conversation threads. Pure and deterministic:
callers recompute the whole list whenever messages or contacts change.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, Sequence

from atende.domain.models import Contact, Conversation, Message
from atende.domain.phone import normalize_phone
from atende.domain.timestamps import effective_timestamp_ms, parse_instant_ms, to_iso
from atende.infra.time import utc_now, viewer_timezone

TODAY_LABEL = "Hoje"
YESTERDAY_LABEL = "Ontem"


def message_phone_key(message: Message) -> str:
    return normalize_phone(message.numero or message.sender or "")


def preview_text(message: Message | None) -> str:
    """Sidebar preview for a message: body, else a label for its media."""
    if message is None:
        return ""
    if message.message:
        return message.message
    if message.urlimagem:
        return "Imagem"
    if message.urlpdf:
        return "Documento"
    if message.base64:
        return "Arquivo"
    return "Mensagem"


def index_contacts(contacts: Iterable[Contact]) -> dict[str, Contact]:
    """Directory keyed by canonical phone; the first row wins on duplicates."""
    index: dict[str, Contact] = {}
    for contact in contacts:
        key = normalize_phone(contact.phone_number)
        if key and key not in index:
            index[key] = contact
    return index


def aggregate(messages: Sequence[Message], contacts: Iterable[Contact]) -> list[Conversation]:
    """Build ordered conversations from scoped messages and contacts.

    Conversations are message-driven: a directory row with no messages does
    not produce one. Each thread is ordered by effective timestamp ascending
    (ties keep input order); the list is ordered by last activity descending.
    """
    directory = index_contacts(contacts)
    threads: dict[str, Conversation] = {}

    for message in messages:
        key = message_phone_key(message)
        if not key:
            continue

        conversation = threads.get(key)
        if conversation is None:
            entry = directory.get(key)
            conversation = Conversation(
                phone_number=key,
                name=(entry.name if entry else None) or message.pushname or key,
                department_id=entry.department_id if entry else None,
                sector_id=entry.sector_id if entry else None,
                tag_ids=tuple(entry.tag_ids) if entry else (),
                contact_id=entry.id if entry else None,
            )
            threads[key] = conversation
        conversation.messages.append(message)

    for conversation in threads.values():
        conversation.messages.sort(key=effective_timestamp_ms)
        last = conversation.messages[-1]
        entry = directory.get(conversation.phone_number)

        conversation.last_message = preview_text(last)
        conversation.last_message_ms = effective_timestamp_ms(last)
        conversation.last_message_time = to_iso(conversation.last_message_ms)
        conversation.name = (entry.name if entry else None) or last.pushname or conversation.name

    return sorted(threads.values(), key=lambda c: c.last_message_ms, reverse=True)


def search(conversations: Iterable[Conversation], term: str | None) -> list[Conversation]:
    """Case-insensitive match on the display name, substring match on the phone key."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(conversations)
    return [c for c in conversations if needle in c.name.lower() or needle in c.phone_number]


def date_label(instant: datetime, today: date) -> str:
    day = instant.date()
    if day == today:
        return TODAY_LABEL
    if day == today - timedelta(days=1):
        return YESTERDAY_LABEL
    return day.strftime("%d/%m/%Y")


def _message_instant(message: Message, tz: tzinfo) -> datetime:
    ms = effective_timestamp_ms(message) or parse_instant_ms(message.created_at)
    if not ms:
        return utc_now().astimezone(tz)
    return datetime.fromtimestamp(ms / 1000, tz=tz)


def group_by_date(
    messages: Sequence[Message],
    tz: tzinfo | None = None,
    today: date | None = None,
) -> list[tuple[str, list[Message]]]:
    """Partition an ordered thread into (label, messages) groups.

    Groups keep first-occurrence order, so for a time-ascending thread they
    come out chronologically. Labels are computed in the viewer's timezone.
    """
    tz = tz or viewer_timezone()
    today = today or utc_now().astimezone(tz).date()

    groups: dict[str, list[Message]] = {}
    for message in messages:
        label = date_label(_message_instant(message, tz), today)
        groups.setdefault(label, []).append(message)
    return list(groups.items())


def format_time(ms: int, tz: tzinfo | None = None) -> str:
    """`HH:MM` in the viewer's timezone; empty for the zero instant."""
    if not ms:
        return ""
    return datetime.fromtimestamp(ms / 1000, tz=tz or viewer_timezone()).strftime("%H:%M")
