"""Payment reminder notifications.

A company is reminded during the 5 days up to and including its payment
day. When that window starts before the 1st, it spills into the tail of the
previous month. At most one reminder is created per company per day, and on
the 27th old reminders are cleared for the next cycle.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from psycopg2.extensions import cursor as PgCursor

from atende.domain.models import Company
from atende.infra.repositories import notifications_repository
from atende.infra.time import viewer_timezone
from atende.observability.logging import get_logger
from atende.observability.redaction import safe_log_context

logger = get_logger(__name__)

PAYMENT_NOTIFICATION_TYPE = "payment"
DEFAULT_PAYMENT_DAY = 5
REMINDER_WINDOW_DAYS = 5
CLEANUP_DAY = 27


@dataclass(frozen=True)
class PaymentReminder:
    days_until_payment: int
    title: str
    message: str


def _days_until_payment(today: date, payment_day: int) -> int | None:
    start_day = payment_day - REMINDER_WINDOW_DAYS + 1

    if start_day > 0:
        if start_day <= today.day <= payment_day:
            return payment_day - today.day
        return None

    # Window starts in the month before the payment month
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    if today.day >= days_in_month + start_day:
        return days_in_month - today.day + payment_day
    if today.day <= payment_day:
        return payment_day - today.day
    return None


def payment_reminder(today: date, payment_day: int | None) -> PaymentReminder | None:
    """Reminder to show on `today`, or None outside the window."""
    payment_day = payment_day or DEFAULT_PAYMENT_DAY
    days = _days_until_payment(today, payment_day)
    if days is None:
        return None

    if days == 0:
        return PaymentReminder(
            days_until_payment=0,
            title="🚨 AVISO FINAL - Pagamento Vence Hoje!",
            message=(
                f"Hoje é o último dia para realizar o pagamento! Dia {payment_day}. "
                "Por favor, efetue o pagamento para evitar interrupções no serviço."
            ),
        )
    if days == 1:
        return PaymentReminder(
            days_until_payment=1,
            title="⚠️ Lembrete de Pagamento - Vence Amanhã",
            message=(
                f"Seu pagamento vence amanhã, dia {payment_day}. Faltam apenas 1 dia. "
                "Não esqueça de efetuar o pagamento."
            ),
        )
    return PaymentReminder(
        days_until_payment=days,
        title="💰 Lembrete de Pagamento",
        message=(
            f"Seu pagamento vence no dia {payment_day}. Faltam {days} dias. "
            "Lembre-se de efetuar o pagamento em dia."
        ),
    )


def check_payment_notifications(
    cur: PgCursor,
    company: Company,
    today: date | None = None,
    tz: ZoneInfo | None = None,
) -> dict:
    """Create today's payment reminder for a company if due and not yet created.

    Returns a summary with the keys current_day, payment_day,
    in_notification_period, created and cleared.
    """
    tz = tz or viewer_timezone()
    today = today or datetime.now(tz).date()
    payment_day = company.payment_notification_day or DEFAULT_PAYMENT_DAY

    cleared = 0
    if today.day == CLEANUP_DAY:
        cleared = notifications_repository.delete_notifications(cur, company.id, PAYMENT_NOTIFICATION_TYPE)

    reminder = payment_reminder(today, payment_day)
    created = False

    if reminder is not None:
        day_start = datetime.combine(today, time.min, tzinfo=tz)
        day_end = day_start + timedelta(days=1)
        if not notifications_repository.exists_between(
            cur, company.id, PAYMENT_NOTIFICATION_TYPE, day_start, day_end
        ):
            notifications_repository.insert_notification(
                cur,
                company_id=company.id,
                title=reminder.title,
                message=reminder.message,
                notification_type=PAYMENT_NOTIFICATION_TYPE,
            )
            created = True

    logger.info(
        "payment notifications checked",
        extra={
            "extra_fields": safe_log_context(
                company_id=company.id,
                current_day=today.day,
                payment_day=payment_day,
                in_period=reminder is not None,
                created=created,
                cleared=cleared,
            )
        },
    )

    return {
        "current_day": today.day,
        "payment_day": payment_day,
        "in_notification_period": reminder is not None,
        "created": created,
        "cleared": cleared,
    }
