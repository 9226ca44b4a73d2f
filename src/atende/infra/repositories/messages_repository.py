"""Messages repository - inbound `messages` and outbound `sent_messages`.

Uses raw SQL with psycopg2 (no ORM). Both tables share one column layout.
Phone matching is done on the canonical key computed in SQL, so rows stored
with a JID suffix match a bare phone key.
"""

from __future__ import annotations

from typing import Any, Literal

from psycopg2.extensions import cursor as PgCursor

from atende.domain.models import Message
from atende.domain.scope import Scope

MessageTable = Literal["messages", "sent_messages"]

MESSAGE_TABLES: tuple[MessageTable, ...] = ("messages", "sent_messages")

_COLUMNS = (
    "id", "numero", "sender", "pushname", "tipomessage", "message", "caption",
    "mimetype", "base64", "urlimagem", "urlpdf", "instancia", "idmessage",
    "apikey_instancia", "company_id", "department_id", "sector_id", "tag_id",
    '"minha?"', '"timestamp"', "date_time", "created_at",
)

_SELECT_LIST = ", ".join(_COLUMNS)

# Same rule as atende.domain.conversations.message_phone_key: an empty numero falls back to sender
_PHONE_KEY_SQL = "regexp_replace(split_part(coalesce(nullif(numero, ''), sender, ''), '@', 1), '\\D', '', 'g')"


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _row_to_message(row: tuple, table: MessageTable) -> Message:
    return Message(
        id=_opt_str(row[0]),
        numero=row[1],
        sender=row[2],
        pushname=row[3],
        tipomessage=row[4],
        message=row[5],
        caption=row[6],
        mimetype=row[7],
        base64=row[8],
        urlimagem=row[9],
        urlpdf=row[10],
        instancia=row[11],
        idmessage=row[12],
        apikey_instancia=row[13],
        company_id=_opt_str(row[14]),
        department_id=_opt_str(row[15]),
        sector_id=_opt_str(row[16]),
        tag_id=_opt_str(row[17]),
        minha=row[18],
        timestamp=_opt_str(row[19]),
        date_time=_opt_str(row[20]),
        created_at=row[21],
        source=table,
    )


def _check_table(table: str) -> MessageTable:
    if table not in MESSAGE_TABLES:
        raise ValueError(f"Unknown message table: {table}")
    return table  # type: ignore[return-value]


def list_messages(cur: PgCursor, table: MessageTable, scope: Scope) -> list[Message]:
    """All rows of one table under the scope's routing key, in insertion order.

    Attendant scopes add the department/sector equality filter. Callers are
    expected to short-circuit scopes that are not fully configured.
    """
    _check_table(table)
    query = f"SELECT {_SELECT_LIST} FROM {table} WHERE apikey_instancia = %s"  # noqa: S608
    params: list[Any] = [scope.api_key]

    if scope.is_restricted:
        query += " AND department_id = %s AND sector_id = %s"
        params.extend([scope.department_id, scope.sector_id])

    query += " ORDER BY created_at ASC, id ASC"
    cur.execute(query, params)
    return [_row_to_message(row, table) for row in cur.fetchall()]


def list_conversation_messages(
    cur: PgCursor,
    table: MessageTable,
    scope: Scope,
    phone_key: str,
) -> list[Message]:
    """Rows of one table for a single canonical phone key."""
    _check_table(table)
    query = (
        f"SELECT {_SELECT_LIST} FROM {table} "  # noqa: S608
        f"WHERE apikey_instancia = %s AND {_PHONE_KEY_SQL} = %s"
    )
    params: list[Any] = [scope.api_key, phone_key]

    if scope.is_restricted:
        query += " AND department_id = %s AND sector_id = %s"
        params.extend([scope.department_id, scope.sector_id])

    query += " ORDER BY created_at ASC, id ASC"
    cur.execute(query, params)
    return [_row_to_message(row, table) for row in cur.fetchall()]


def find_latest_inbound_context(cur: PgCursor, api_key: str, phone_key: str) -> dict | None:
    """Instance and routing of the newest inbound message for a phone, if any."""
    cur.execute(
        f"""
        SELECT instancia, department_id, sector_id, tag_id
        FROM messages
        WHERE apikey_instancia = %s AND {_PHONE_KEY_SQL} = %s
        ORDER BY created_at DESC
        LIMIT 1
        """,  # noqa: S608
        (api_key, phone_key),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "instancia": row[0],
        "department_id": _opt_str(row[1]),
        "sector_id": _opt_str(row[2]),
        "tag_id": _opt_str(row[3]),
    }


def insert_sent_message(cur: PgCursor, row: dict[str, Any]) -> str:
    """Insert an outbound row into sent_messages and return its id.

    `row` uses column names; the outbound flag is passed under "minha?".
    """
    columns = [c for c in _COLUMNS if c != "id" and c.strip('"') in row]
    values = [row[c.strip('"')] for c in columns]
    placeholders = ", ".join(["%s"] * len(columns))

    cur.execute(
        f"INSERT INTO sent_messages ({', '.join(columns)}) VALUES ({placeholders}) RETURNING id",  # noqa: S608
        values,
    )
    return str(cur.fetchone()[0])


def update_routing(
    cur: PgCursor,
    table: MessageTable,
    api_key: str,
    phone_key: str,
    updates: dict[str, str],
) -> int:
    """Set department_id/sector_id on every row of a phone. Returns rows touched."""
    _check_table(table)
    allowed = [k for k in ("department_id", "sector_id") if k in updates]
    if not allowed:
        return 0

    sets = ", ".join(f"{k} = %s" for k in allowed)
    params: list[Any] = [updates[k] for k in allowed]
    params.extend([api_key, phone_key])

    cur.execute(
        f"UPDATE {table} SET {sets} WHERE apikey_instancia = %s AND {_PHONE_KEY_SQL} = %s",  # noqa: S608
        params,
    )
    return cur.rowcount
