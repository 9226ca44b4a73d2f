"""Contact routing editor: department/sector reassignment plus tags."""

from __future__ import annotations

from typing import Sequence

from psycopg2.extensions import cursor as PgCursor

from atende.domain.models import Company
from atende.domain.tags import TagEditOutcome, replace_contact_tags
from atende.infra.repositories import contacts_repository, messages_repository, reference_repository
from atende.infra.repositories.messages_repository import MESSAGE_TABLES
from atende.observability.logging import get_logger
from atende.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)


class ContactNotFoundError(Exception):
    pass


class UnknownTagError(ValueError):
    pass


class UnknownSectorError(ValueError):
    """The sector is not the company's, or not under the target department."""


def update_contact_routing(
    cur: PgCursor,
    company: Company,
    phone_key: str,
    *,
    department_id: str | None = None,
    sector_id: str | None = None,
    tag_ids: Sequence[str] | None = None,
) -> TagEditOutcome:
    """Move a contact to another department/sector and/or rewrite its tags.

    Routing changes are applied to the contact row and to the phone's rows in
    both message tables so that attendant scoping follows the contact.
    Fields left as None are not touched.

    Raises:
        ContactNotFoundError: no directory row for the phone in the company.
        UnknownSectorError: the sector is not the company's or sits under
            another department.
        UnknownTagError: a tag id does not belong to the company.
        TagEditError: the tag rewrite failed.
    """
    contact = contacts_repository.find_contact_by_phone(cur, company.id, phone_key)
    if contact is None:
        raise ContactNotFoundError(phone_key)

    if sector_id is not None:
        target_department = department_id if department_id is not None else contact.department_id
        if not reference_repository.sector_exists(cur, company.id, sector_id, target_department):
            raise UnknownSectorError(sector_id)

    updates: dict[str, str] = {}
    if department_id is not None and department_id != contact.department_id:
        updates["department_id"] = department_id
    if sector_id is not None and sector_id != contact.sector_id:
        updates["sector_id"] = sector_id

    changed = False
    if updates:
        contacts_repository.update_contact_routing(cur, contact.id, updates)
        touched = 0
        if company.api_key:
            for table in MESSAGE_TABLES:
                touched += messages_repository.update_routing(cur, table, company.api_key, phone_key, updates)
        changed = True
        logger.info(
            "contact routing updated",
            extra={
                "extra_fields": safe_log_context(
                    contact_hash=hash_identifier(contact.id),
                    fields=sorted(updates),
                    messages_touched=touched,
                )
            },
        )

    if tag_ids is not None:
        wanted = [str(t) for t in tag_ids]
        known = reference_repository.company_tag_ids(cur, company.id, wanted)
        unknown = [t for t in wanted if t not in known]
        if unknown:
            raise UnknownTagError(f"Unknown tag ids: {', '.join(unknown)}")
        outcome = replace_contact_tags(cur, contact.id, contact.tag_ids, wanted)
        changed = changed or outcome is TagEditOutcome.UPDATED

    return TagEditOutcome.UPDATED if changed else TagEditOutcome.NO_CHANGES
