"""Departments, sectors and tags of the caller's company.

GET    /{kind}          → list   (company actor)
POST   /{kind}          → create (company admin, 201)
PATCH  /{kind}/{id}     → update (company admin)
DELETE /{kind}/{id}     → delete (company admin, 204)

for kind in departments, sectors, tags.
"""

from dataclasses import asdict
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Path
from psycopg2 import errors as pg_errors
from pydantic import BaseModel, ConfigDict, Field

from atende.api.session import SessionContext, require_company_actor, require_company_admin
from atende.infra.db import txn
from atende.infra.repositories import reference_repository
from atende.observability.correlation import get_correlation_id
from atende.observability.logging import get_logger
from atende.observability.redaction import safe_log_context

logger = get_logger(__name__)

_HEX_COLOR = r"^#[0-9a-fA-F]{6}$"


# ── Schemas ───────────────────────────────────────────────────────────────────


class CreateDepartmentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    description: str | None = None


class UpdateDepartmentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1)
    description: str | None = None


class CreateSectorRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    department_id: str | None = None
    description: str | None = None


class UpdateSectorRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1)
    department_id: str | None = None
    description: str | None = None


class CreateTagRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    color: str = Field("#3B82F6", pattern=_HEX_COLOR)


class UpdateTagRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1)
    color: str | None = Field(None, pattern=_HEX_COLOR)


# ── Router builder ────────────────────────────────────────────────────────────


def _check_department(session: SessionContext, fields: dict) -> None:
    department_id = fields.get("department_id")
    if department_id is None:
        return
    with txn() as cur:
        if not reference_repository.department_exists(cur, session.company.id, department_id):
            raise HTTPException(status_code=422, detail="department_id not found for this company")


def _build_router(
    table: str,
    label: str,
    create_model: type[BaseModel],
    update_model: type[BaseModel],
    validate: Callable[[SessionContext, dict], None] | None = None,
) -> APIRouter:
    router = APIRouter(prefix=f"/{table}", tags=[table])

    @router.get("", name=f"list_{table}")
    def list_items(session: SessionContext = Depends(require_company_actor)) -> list[dict]:
        with txn() as cur:
            items = reference_repository.list_items(cur, table, session.company.id)
        return [asdict(item) for item in items]

    @router.post("", status_code=201, name=f"create_{table}")
    def create_item(
        body: create_model,  # type: ignore[valid-type]
        session: SessionContext = Depends(require_company_admin),
    ) -> dict:
        fields = body.model_dump()
        if validate is not None:
            validate(session, fields)
        with txn() as cur:
            item = reference_repository.create_item(cur, table, session.company.id, fields)

        logger.info(
            f"{label} created",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(),
                    company_id=session.company.id,
                    id=item.id,
                )
            },
        )
        return asdict(item)

    @router.patch("/{item_id}", name=f"update_{table}")
    def update_item(
        body: update_model,  # type: ignore[valid-type]
        item_id: str = Path(..., description=f"{label} id"),
        session: SessionContext = Depends(require_company_admin),
    ) -> dict:
        fields = body.model_dump(exclude_unset=True)
        if not fields:
            raise HTTPException(status_code=400, detail="No fields to update")
        if validate is not None:
            validate(session, fields)
        with txn() as cur:
            item = reference_repository.update_item(cur, table, session.company.id, item_id, fields)
        if item is None:
            raise HTTPException(status_code=404, detail=f"{label.capitalize()} not found")
        return asdict(item)

    @router.delete("/{item_id}", status_code=204, name=f"delete_{table}")
    def delete_item(
        item_id: str = Path(..., description=f"{label} id"),
        session: SessionContext = Depends(require_company_admin),
    ) -> None:
        try:
            with txn() as cur:
                deleted = reference_repository.delete_item(cur, table, session.company.id, item_id)
        except pg_errors.ForeignKeyViolation:
            raise HTTPException(status_code=409, detail=f"{label.capitalize()} is in use and cannot be deleted")
        if not deleted:
            raise HTTPException(status_code=404, detail=f"{label.capitalize()} not found")

    return router


departments_router = _build_router("departments", "department", CreateDepartmentRequest, UpdateDepartmentRequest)
sectors_router = _build_router("sectors", "sector", CreateSectorRequest, UpdateSectorRequest, _check_department)
tags_router = _build_router("tags", "tag", CreateTagRequest, UpdateTagRequest)
