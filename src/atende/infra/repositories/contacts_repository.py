"""Contact directory repository - contacts and their tag associations.

Uses raw SQL with psycopg2 (no ORM). Tag ids are aggregated from the
`contact_tags` join table in the same query.
"""

from __future__ import annotations

from typing import Any, Sequence

from psycopg2.extensions import cursor as PgCursor

from atende.domain.models import Contact
from atende.domain.scope import Scope

_SELECT = """
    SELECT c.id, c.company_id, c.phone_number, c.name, c.department_id,
           c.sector_id, c.tag_id, c.last_message, c.last_message_time,
           COALESCE(
               ARRAY(SELECT ct.tag_id::text FROM contact_tags ct
                     WHERE ct.contact_id = c.id ORDER BY ct.created_at, ct.tag_id),
               ARRAY[]::text[]
           ) AS tag_ids
    FROM contacts c
"""

_PHONE_KEY_SQL = "regexp_replace(split_part(c.phone_number, '@', 1), '\\D', '', 'g')"


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _row_to_contact(row: tuple) -> Contact:
    return Contact(
        id=str(row[0]),
        company_id=str(row[1]),
        phone_number=row[2],
        name=row[3],
        department_id=_opt_str(row[4]),
        sector_id=_opt_str(row[5]),
        tag_id=_opt_str(row[6]),
        last_message=row[7],
        last_message_time=row[8],
        tag_ids=tuple(row[9] or ()),
    )


def list_contacts(cur: PgCursor, scope: Scope) -> list[Contact]:
    """Directory rows of the scope's company, most recent activity first."""
    query = _SELECT + " WHERE c.company_id = %s"
    params: list[Any] = [scope.company_id]

    if scope.is_restricted:
        query += " AND c.department_id = %s AND c.sector_id = %s"
        params.extend([scope.department_id, scope.sector_id])

    query += " ORDER BY c.last_message_time DESC NULLS LAST, c.id"
    cur.execute(query, params)
    return [_row_to_contact(row) for row in cur.fetchall()]


def find_contact_by_phone(cur: PgCursor, company_id: str, phone_key: str) -> Contact | None:
    cur.execute(
        _SELECT + f" WHERE c.company_id = %s AND {_PHONE_KEY_SQL} = %s ORDER BY c.created_at LIMIT 1",
        (company_id, phone_key),
    )
    row = cur.fetchone()
    return _row_to_contact(row) if row else None


def update_contact_routing(cur: PgCursor, contact_id: str, updates: dict[str, str]) -> None:
    allowed = [k for k in ("department_id", "sector_id") if k in updates]
    if not allowed:
        return
    sets = ", ".join(f"{k} = %s" for k in allowed)
    params: list[Any] = [updates[k] for k in allowed]
    params.append(contact_id)
    cur.execute(
        f"UPDATE contacts SET {sets}, updated_at = now() WHERE id = %s",  # noqa: S608
        params,
    )


def delete_contact_tags(cur: PgCursor, contact_id: str) -> int:
    cur.execute("DELETE FROM contact_tags WHERE contact_id = %s", (contact_id,))
    return cur.rowcount


def insert_contact_tags(cur: PgCursor, contact_id: str, tag_ids: Sequence[str]) -> None:
    for tag_id in tag_ids:
        cur.execute(
            "INSERT INTO contact_tags (contact_id, tag_id) VALUES (%s, %s)",
            (contact_id, tag_id),
        )
