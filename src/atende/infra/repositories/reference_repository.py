"""Reference data repository - departments, sectors and tags of a company.

Uses raw SQL with psycopg2 (no ORM). All reads and writes are scoped by
company_id; a row of another company is treated as missing.
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from atende.domain.models import Department, ReferenceData, Sector, Tag

# Writable columns per table (whitelist for the dynamic SET clause)
_WRITABLE: dict[str, tuple[str, ...]] = {
    "departments": ("name", "description"),
    "sectors": ("name", "description", "department_id"),
    "tags": ("name", "color"),
}

_RETURNING: dict[str, str] = {
    "departments": "id, company_id, name, description",
    "sectors": "id, company_id, name, department_id, description",
    "tags": "id, company_id, name, color",
}


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _row_to_department(row: tuple) -> Department:
    return Department(id=str(row[0]), company_id=str(row[1]), name=row[2], description=row[3])


def _row_to_sector(row: tuple) -> Sector:
    return Sector(
        id=str(row[0]),
        company_id=str(row[1]),
        name=row[2],
        department_id=_opt_str(row[3]),
        description=row[4],
    )


def _row_to_tag(row: tuple) -> Tag:
    return Tag(id=str(row[0]), company_id=str(row[1]), name=row[2], color=row[3])


_MAPPERS = {
    "departments": _row_to_department,
    "sectors": _row_to_sector,
    "tags": _row_to_tag,
}


def _check_table(table: str) -> None:
    if table not in _WRITABLE:
        raise ValueError(f"Unknown reference table: {table}")


def list_items(cur: PgCursor, table: str, company_id: str) -> list:
    """Rows of one reference table ordered by name."""
    _check_table(table)
    cur.execute(
        f"SELECT {_RETURNING[table]} FROM {table} WHERE company_id = %s ORDER BY name",  # noqa: S608
        (company_id,),
    )
    mapper = _MAPPERS[table]
    return [mapper(row) for row in cur.fetchall()]


def load_reference_data(cur: PgCursor, company_id: str) -> ReferenceData:
    return ReferenceData(
        departments=tuple(list_items(cur, "departments", company_id)),
        sectors=tuple(list_items(cur, "sectors", company_id)),
        tags=tuple(list_items(cur, "tags", company_id)),
    )


def create_item(cur: PgCursor, table: str, company_id: str, fields: dict[str, Any]):
    _check_table(table)
    columns = [c for c in _WRITABLE[table] if c in fields]
    values = [fields[c] for c in columns]
    placeholders = ", ".join(["%s"] * (len(columns) + 1))

    cur.execute(
        f"""
        INSERT INTO {table} (company_id, {", ".join(columns)})
        VALUES ({placeholders})
        RETURNING {_RETURNING[table]}
        """,  # noqa: S608 - table and columns come from the whitelist
        [company_id, *values],
    )
    return _MAPPERS[table](cur.fetchone())


def update_item(cur: PgCursor, table: str, company_id: str, item_id: str, fields: dict[str, Any]):
    """Partial update. Returns the updated entity, or None when not found."""
    _check_table(table)
    columns = [c for c in _WRITABLE[table] if c in fields]
    if not columns:
        raise ValueError("No fields to update")

    sets = ", ".join(f"{c} = %s" for c in columns)
    params: list[Any] = [fields[c] for c in columns]
    params.extend([company_id, item_id])

    cur.execute(
        f"""
        UPDATE {table} SET {sets}
        WHERE company_id = %s AND id = %s
        RETURNING {_RETURNING[table]}
        """,  # noqa: S608 - table and columns come from the whitelist
        params,
    )
    row = cur.fetchone()
    return _MAPPERS[table](row) if row else None


def delete_item(cur: PgCursor, table: str, company_id: str, item_id: str) -> bool:
    _check_table(table)
    cur.execute(
        f"DELETE FROM {table} WHERE company_id = %s AND id = %s",  # noqa: S608
        (company_id, item_id),
    )
    return cur.rowcount > 0


def department_exists(cur: PgCursor, company_id: str, department_id: str) -> bool:
    cur.execute(
        "SELECT 1 FROM departments WHERE company_id = %s AND id = %s",
        (company_id, department_id),
    )
    return cur.fetchone() is not None


def sector_exists(cur: PgCursor, company_id: str, sector_id: str, department_id: str | None = None) -> bool:
    """True when the sector belongs to the company and, if given, to department_id."""
    query = "SELECT 1 FROM sectors WHERE company_id = %s AND id = %s"
    params: list[str] = [company_id, sector_id]
    if department_id is not None:
        query += " AND department_id = %s"
        params.append(department_id)
    cur.execute(query, params)
    return cur.fetchone() is not None


def company_tag_ids(cur: PgCursor, company_id: str, tag_ids: list[str]) -> set[str]:
    """Subset of tag_ids that belong to the company."""
    if not tag_ids:
        return set()
    cur.execute(
        "SELECT id::text FROM tags WHERE company_id = %s AND id::text = ANY(%s)",
        (company_id, list(tag_ids)),
    )
    return {row[0] for row in cur.fetchall()}
