"""Notifications repository - in-app notices shown to a company (payment reminders).

Uses raw SQL with psycopg2 (no ORM).
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor


def delete_notifications(cur: PgCursor, company_id: str, notification_type: str) -> int:
    cur.execute(
        "DELETE FROM notifications WHERE company_id = %s AND type = %s",
        (company_id, notification_type),
    )
    return cur.rowcount


def exists_between(
    cur: PgCursor,
    company_id: str,
    notification_type: str,
    start: datetime,
    end: datetime,
) -> bool:
    """True if a notification of that type was created in [start, end)."""
    cur.execute(
        """
        SELECT 1 FROM notifications
        WHERE company_id = %s AND type = %s
          AND created_at >= %s AND created_at < %s
        LIMIT 1
        """,
        (company_id, notification_type, start, end),
    )
    return cur.fetchone() is not None


def insert_notification(
    cur: PgCursor,
    *,
    company_id: str,
    title: str,
    message: str,
    notification_type: str,
) -> str:
    cur.execute(
        """
        INSERT INTO notifications (company_id, title, message, type, is_read)
        VALUES (%s, %s, %s, %s, false)
        RETURNING id
        """,
        (company_id, title, message, notification_type),
    )
    return str(cur.fetchone()[0])


def list_notifications(cur: PgCursor, company_id: str, limit: int = 50) -> list[dict]:
    cur.execute(
        """
        SELECT id, title, message, type, is_read, created_at
        FROM notifications
        WHERE company_id = %s
        ORDER BY created_at DESC
        LIMIT %s
        """,
        (company_id, limit),
    )
    return [
        {
            "id": str(row[0]),
            "title": row[1],
            "message": row[2],
            "type": row[3],
            "is_read": bool(row[4]),
            "created_at": row[5].isoformat() if hasattr(row[5], "isoformat") else row[5],
        }
        for row in cur.fetchall()
    ]
