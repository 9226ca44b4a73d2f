"""Attendants of the caller's company (company admin only).

GET    /attendants          → list
POST   /attendants          → link an identity user as attendant (201; 409 over quota)
PATCH  /attendants/{id}     → update
DELETE /attendants/{id}     → delete (204)

Identity users are provisioned in the identity provider; this API only links
their `user_id` (the token `sub`) to the company.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path
from psycopg2 import errors as pg_errors
from pydantic import BaseModel, ConfigDict, Field

from atende.api.routes.me import attendant_to_dict
from atende.api.session import SessionContext, require_company_admin
from atende.infra.db import txn
from atende.infra.repositories import companies_repository, reference_repository
from atende.observability.correlation import get_correlation_id
from atende.observability.logging import get_logger
from atende.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

router = APIRouter(prefix="/attendants", tags=["attendants"])


# ── Schemas ───────────────────────────────────────────────────────────────────


class CreateAttendantRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: str = ""
    department_id: str | None = None
    sector_id: str | None = None
    is_active: bool = True


class UpdateAttendantRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1)
    email: str | None = Field(None, min_length=3)
    phone: str | None = None
    department_id: str | None = None
    sector_id: str | None = None
    is_active: bool | None = None


# ── Helpers ───────────────────────────────────────────────────────────────────


def _check_routing(cur, company_id: str, department_id: str | None, sector_id: str | None) -> None:
    if department_id and not reference_repository.department_exists(cur, company_id, department_id):
        raise HTTPException(status_code=422, detail="department_id not found for this company")
    if sector_id and not reference_repository.sector_exists(cur, company_id, sector_id, department_id or None):
        raise HTTPException(status_code=422, detail="sector_id not found for this company or department")


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.get("")
def list_attendants(session: SessionContext = Depends(require_company_admin)) -> list[dict]:
    with txn() as cur:
        attendants = companies_repository.list_attendants(cur, session.company.id)
    return [attendant_to_dict(a) for a in attendants]


@router.post("", status_code=201)
def create_attendant(
    body: CreateAttendantRequest,
    session: SessionContext = Depends(require_company_admin),
) -> dict:
    """Link an identity user to the company as attendant.

    Fails with 409 when the company already has `max_attendants` attendants
    or the user is already linked.
    """
    company = session.company
    fields = body.model_dump(exclude={"user_id"})

    with txn() as cur:
        if company.max_attendants is not None:
            if companies_repository.count_attendants(cur, company.id) >= company.max_attendants:
                raise HTTPException(status_code=409, detail="Attendant limit reached")

        _check_routing(cur, company.id, body.department_id, body.sector_id)

        try:
            attendant = companies_repository.create_attendant(cur, company, body.user_id, fields)
        except pg_errors.UniqueViolation:
            raise HTTPException(status_code=409, detail="User is already an attendant")

    logger.info(
        "attendant created",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                company_id=company.id,
                attendant_id=attendant.id,
                user_hash=hash_identifier(body.user_id),
            )
        },
    )
    return attendant_to_dict(attendant)


@router.patch("/{attendant_id}")
def update_attendant(
    body: UpdateAttendantRequest,
    attendant_id: str = Path(..., description="Attendant id"),
    session: SessionContext = Depends(require_company_admin),
) -> dict:
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")

    with txn() as cur:
        _check_routing(cur, session.company.id, fields.get("department_id"), fields.get("sector_id"))
        attendant = companies_repository.update_attendant(cur, session.company.id, attendant_id, fields)
    if attendant is None:
        raise HTTPException(status_code=404, detail="Attendant not found")
    return attendant_to_dict(attendant)


@router.delete("/{attendant_id}", status_code=204)
def delete_attendant(
    attendant_id: str = Path(..., description="Attendant id"),
    session: SessionContext = Depends(require_company_admin),
) -> None:
    with txn() as cur:
        deleted = companies_repository.delete_attendant(cur, session.company.id, attendant_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Attendant not found")
