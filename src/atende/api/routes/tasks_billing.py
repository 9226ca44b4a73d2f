"""Worker routes for billing tasks."""

import psycopg2
from fastapi import APIRouter, HTTPException, Request

from atende.api.task_auth import verify_task_auth
from atende.domain.billing import check_payment_notifications
from atende.infra.db import txn
from atende.infra.repositories import companies_repository
from atende.observability.correlation import get_correlation_id
from atende.observability.logging import get_logger
from atende.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/billing", tags=["tasks"])

logger = get_logger(__name__)


@router.post("/check-payment-notifications")
def handle_check_payment_notifications(request: Request) -> dict:
    """Run the payment reminder check for every company.

    One transaction per company, so a failing company does not block the
    others. Returns counts only.
    """
    correlation_id = get_correlation_id()

    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    with txn() as cur:
        companies = companies_repository.list_companies(cur)

    created = 0
    failed = 0
    for company in companies:
        try:
            with txn() as cur:
                summary = check_payment_notifications(cur, company)
        except psycopg2.Error:
            failed += 1
            logger.exception(
                "payment notification check failed",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id, company_id=company.id)},
            )
            continue
        if summary["created"]:
            created += 1

    logger.info(
        "payment notification sweep done",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                companies=len(companies),
                created=created,
                failed=failed,
            )
        },
    )
    return {"ok": True, "companies": len(companies), "created": created, "failed": failed}
