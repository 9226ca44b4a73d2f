"""Companies and attendants repository - tenant and identity lookups.

Uses raw SQL with psycopg2 (no ORM). `user_id` columns hold the identity
provider's subject (the JWT `sub` claim).
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from atende.domain.models import Attendant, Company

_COMPANY_COLUMNS = (
    "id, api_key, name, phone_number, email, user_id, is_super_admin, "
    "max_attendants, payment_notification_day"
)

_ATTENDANT_COLUMNS = "id, company_id, name, department_id, sector_id, email, phone, is_active, user_id"

_COMPANY_WRITABLE = ("name", "phone_number", "api_key", "email", "max_attendants", "payment_notification_day")
_ATTENDANT_WRITABLE = ("name", "email", "phone", "department_id", "sector_id", "is_active")


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _row_to_company(row: tuple) -> Company:
    return Company(
        id=str(row[0]),
        api_key=row[1],
        name=row[2],
        phone_number=row[3],
        email=row[4],
        user_id=_opt_str(row[5]),
        is_super_admin=bool(row[6]),
        max_attendants=row[7],
        payment_notification_day=row[8],
    )


def _row_to_attendant(row: tuple) -> Attendant:
    return Attendant(
        id=str(row[0]),
        company_id=str(row[1]),
        name=row[2],
        department_id=_opt_str(row[3]),
        sector_id=_opt_str(row[4]),
        email=row[5],
        phone=row[6],
        is_active=bool(row[7]),
        user_id=_opt_str(row[8]),
    )


# ── Identity lookups ──────────────────────────────────────────────────────────


def find_attendant_by_user(cur: PgCursor, user_id: str) -> tuple[Attendant, Company] | None:
    """Attendant row of a user together with its company."""
    cur.execute(
        """
        SELECT a.id, a.company_id, a.name, a.department_id, a.sector_id,
               a.email, a.phone, a.is_active, a.user_id,
               co.id, co.api_key, co.name, co.phone_number, co.email, co.user_id,
               co.is_super_admin, co.max_attendants, co.payment_notification_day
        FROM attendants a
        JOIN companies co ON co.id = a.company_id
        WHERE a.user_id = %s
        LIMIT 1
        """,
        (user_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_attendant(row[:9]), _row_to_company(row[9:])


def find_company_by_user(cur: PgCursor, user_id: str) -> Company | None:
    cur.execute(
        f"SELECT {_COMPANY_COLUMNS} FROM companies WHERE user_id = %s LIMIT 1",  # noqa: S608
        (user_id,),
    )
    row = cur.fetchone()
    return _row_to_company(row) if row else None


def is_super_admin(cur: PgCursor, user_id: str) -> bool:
    cur.execute("SELECT 1 FROM super_admins WHERE user_id = %s", (user_id,))
    return cur.fetchone() is not None


# ── Companies ─────────────────────────────────────────────────────────────────


def get_company(cur: PgCursor, company_id: str) -> Company | None:
    cur.execute(
        f"SELECT {_COMPANY_COLUMNS} FROM companies WHERE id = %s",  # noqa: S608
        (company_id,),
    )
    row = cur.fetchone()
    return _row_to_company(row) if row else None


def list_companies(cur: PgCursor) -> list[Company]:
    cur.execute(
        f"SELECT {_COMPANY_COLUMNS} FROM companies ORDER BY created_at DESC",  # noqa: S608
    )
    return [_row_to_company(row) for row in cur.fetchall()]


def create_company(cur: PgCursor, fields: dict[str, Any]) -> Company:
    columns = [c for c in (*_COMPANY_WRITABLE, "user_id") if c in fields]
    cur.execute(
        f"""
        INSERT INTO companies ({", ".join(columns)}, is_super_admin)
        VALUES ({", ".join(["%s"] * len(columns))}, false)
        RETURNING {_COMPANY_COLUMNS}
        """,  # noqa: S608 - columns come from the whitelist
        [fields[c] for c in columns],
    )
    return _row_to_company(cur.fetchone())


def update_company(cur: PgCursor, company_id: str, fields: dict[str, Any]) -> Company | None:
    columns = [c for c in _COMPANY_WRITABLE if c in fields]
    if not columns:
        raise ValueError("No fields to update")
    cur.execute(
        f"""
        UPDATE companies SET {", ".join(f"{c} = %s" for c in columns)}
        WHERE id = %s
        RETURNING {_COMPANY_COLUMNS}
        """,  # noqa: S608 - columns come from the whitelist
        [*(fields[c] for c in columns), company_id],
    )
    row = cur.fetchone()
    return _row_to_company(row) if row else None


# ── Attendants ────────────────────────────────────────────────────────────────


def list_attendants(cur: PgCursor, company_id: str) -> list[Attendant]:
    cur.execute(
        f"SELECT {_ATTENDANT_COLUMNS} FROM attendants WHERE company_id = %s ORDER BY name",  # noqa: S608
        (company_id,),
    )
    return [_row_to_attendant(row) for row in cur.fetchall()]


def count_attendants(cur: PgCursor, company_id: str) -> int:
    cur.execute("SELECT count(*) FROM attendants WHERE company_id = %s", (company_id,))
    return int(cur.fetchone()[0])


def create_attendant(cur: PgCursor, company: Company, user_id: str, fields: dict[str, Any]) -> Attendant:
    columns = [c for c in _ATTENDANT_WRITABLE if c in fields]
    cur.execute(
        f"""
        INSERT INTO attendants (company_id, user_id, api_key, {", ".join(columns)})
        VALUES (%s, %s, %s, {", ".join(["%s"] * len(columns))})
        RETURNING {_ATTENDANT_COLUMNS}
        """,  # noqa: S608 - columns come from the whitelist
        [company.id, user_id, company.api_key, *(fields[c] for c in columns)],
    )
    return _row_to_attendant(cur.fetchone())


def update_attendant(
    cur: PgCursor, company_id: str, attendant_id: str, fields: dict[str, Any]
) -> Attendant | None:
    columns = [c for c in _ATTENDANT_WRITABLE if c in fields]
    if not columns:
        raise ValueError("No fields to update")
    cur.execute(
        f"""
        UPDATE attendants SET {", ".join(f"{c} = %s" for c in columns)}
        WHERE company_id = %s AND id = %s
        RETURNING {_ATTENDANT_COLUMNS}
        """,  # noqa: S608 - columns come from the whitelist
        [*(fields[c] for c in columns), company_id, attendant_id],
    )
    row = cur.fetchone()
    return _row_to_attendant(row) if row else None


def delete_attendant(cur: PgCursor, company_id: str, attendant_id: str) -> bool:
    cur.execute(
        "DELETE FROM attendants WHERE company_id = %s AND id = %s",
        (company_id, attendant_id),
    )
    return cur.rowcount > 0
