"""Tag assignment editor for a contact."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Sequence

import psycopg2
from psycopg2.extensions import cursor as PgCursor

from atende.infra.repositories import contacts_repository
from atende.observability.logging import get_logger
from atende.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

MAX_TAGS_PER_CONTACT = 5


class TagEditOutcome(str, Enum):
    NO_CHANGES = "no_changes"
    UPDATED = "updated"


class TagEditError(Exception):
    """Raised when deleting or inserting tag associations fails."""


def normalize_tag_ids(tag_ids: Iterable[str]) -> list[str]:
    """Deduplicate keeping first occurrence, drop blanks, cap at MAX_TAGS_PER_CONTACT."""
    result: list[str] = []
    for tag_id in tag_ids:
        tag_id = str(tag_id).strip() if tag_id is not None else ""
        if tag_id and tag_id not in result:
            result.append(tag_id)
    return result[:MAX_TAGS_PER_CONTACT]


def replace_contact_tags(
    cur: PgCursor,
    contact_id: str,
    current: Sequence[str],
    proposed: Sequence[str],
) -> TagEditOutcome:
    """Rewrite the tag set of a contact.

    Identical sets (order-insensitive) are a no-op: nothing is deleted or
    inserted. Otherwise every association is deleted and the first
    MAX_TAGS_PER_CONTACT proposed ids are inserted.

    Raises:
        TagEditError: if the delete or the insert fails. The delete is not
            compensated here; callers run this inside a transaction.
    """
    new_ids = normalize_tag_ids(proposed)
    if set(new_ids) == {str(t) for t in current}:
        return TagEditOutcome.NO_CHANGES

    try:
        contacts_repository.delete_contact_tags(cur, contact_id)
    except psycopg2.Error as e:
        raise TagEditError("Erro ao remover tags antigas") from e

    try:
        contacts_repository.insert_contact_tags(cur, contact_id, new_ids)
    except psycopg2.Error as e:
        raise TagEditError("Erro ao adicionar novas tags") from e

    logger.info(
        "contact tags replaced",
        extra={
            "extra_fields": safe_log_context(
                contact_hash=hash_identifier(contact_id),
                tag_count=len(new_ids),
            )
        },
    )
    return TagEditOutcome.UPDATED
