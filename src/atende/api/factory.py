"""FastAPI application factory with role-based route mounting."""

import os
from typing import Literal

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from atende.domain.dispatch import DispatchError
from atende.domain.tags import TagEditError
from atende.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from atende.observability.logging import get_logger
from atende.observability.redaction import safe_log_context

from .routers import public, worker

logger = get_logger(__name__)

AppRole = Literal["public", "worker"]


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app = FastAPI(
        title="Atende",
        docs_url=None,
        redoc_url=None,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
        logger.error(
            "message dispatch failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(),
                    error_type=type(exc.__cause__ or exc).__name__,
                )
            },
        )
        return JSONResponse(status_code=502, content={"detail": "Erro ao enviar mensagem"})

    @app.exception_handler(TagEditError)
    async def tag_edit_error_handler(request: Request, exc: TagEditError) -> JSONResponse:
        logger.error(
            "tag edit failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    app.include_router(public.router)

    # Worker routes only for worker role
    if role == "worker":
        app.include_router(worker.router)

    return app
