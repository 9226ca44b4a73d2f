"""In-app notifications of the caller's company (company admin)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from atende.api.session import SessionContext, require_company_admin
from atende.domain.billing import check_payment_notifications
from atende.infra.db import txn
from atende.infra.repositories import notifications_repository

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    session: SessionContext = Depends(require_company_admin),
) -> list[dict]:
    with txn() as cur:
        return notifications_repository.list_notifications(cur, session.company.id, limit)


@router.post("/check")
def check_notifications(session: SessionContext = Depends(require_company_admin)) -> dict:
    """Create today's payment reminder if due (called by the dashboard on load)."""
    with txn() as cur:
        summary = check_payment_notifications(cur, session.company)
    return {"ok": True, **summary}
