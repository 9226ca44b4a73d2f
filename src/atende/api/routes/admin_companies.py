"""Company directory for super admins.

GET   /admin/companies          → list, newest first
POST  /admin/companies          → create (201); links an identity user as owner
PATCH /admin/companies/{id}     → partial update
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path
from psycopg2 import errors as pg_errors
from pydantic import BaseModel, ConfigDict, Field

from atende.api.routes.me import company_to_dict
from atende.api.session import SessionContext, require_super_admin
from atende.infra.db import txn
from atende.infra.repositories import companies_repository
from atende.observability.correlation import get_correlation_id
from atende.observability.logging import get_logger
from atende.observability.redaction import safe_log_context

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/companies", tags=["admin"])


# ── Schemas ───────────────────────────────────────────────────────────────────


class CreateCompanyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)
    api_key: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    user_id: str = Field(..., min_length=1, description="Identity provider subject of the owner")
    max_attendants: int | None = Field(None, ge=0)
    payment_notification_day: int | None = Field(None, ge=1, le=31)


class UpdateCompanyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1)
    phone_number: str | None = None
    api_key: str | None = Field(None, min_length=1)
    max_attendants: int | None = Field(None, ge=0)
    payment_notification_day: int | None = Field(None, ge=1, le=31)


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.get("")
def list_companies(session: SessionContext = Depends(require_super_admin)) -> list[dict]:
    with txn() as cur:
        companies = companies_repository.list_companies(cur)
    return [company_to_dict(c) for c in companies]


@router.post("", status_code=201)
def create_company(
    body: CreateCompanyRequest,
    session: SessionContext = Depends(require_super_admin),
) -> dict:
    """Create a company. 409 if the routing key or the owner is already taken."""
    fields = body.model_dump(exclude_none=True)
    fields["email"] = body.email.strip().lower()

    try:
        with txn() as cur:
            company = companies_repository.create_company(cur, fields)
    except pg_errors.UniqueViolation:
        raise HTTPException(status_code=409, detail="Company already exists")

    logger.info(
        "company created",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                company_id=company.id,
            )
        },
    )
    return company_to_dict(company)


@router.patch("/{company_id}")
def update_company(
    body: UpdateCompanyRequest,
    company_id: str = Path(..., description="Company id"),
    session: SessionContext = Depends(require_super_admin),
) -> dict:
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        with txn() as cur:
            company = companies_repository.update_company(cur, company_id, fields)
    except pg_errors.UniqueViolation:
        raise HTTPException(status_code=409, detail="api_key already in use")

    if company is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return company_to_dict(company)
