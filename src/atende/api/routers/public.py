"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from atende.api.routes import (
    admin_companies,
    attendants,
    conversations,
    me,
    notifications,
    reference,
)

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(me.router)
router.include_router(conversations.router)
router.include_router(reference.departments_router)
router.include_router(reference.sectors_router)
router.include_router(reference.tags_router)
router.include_router(attendants.router)
router.include_router(notifications.router)
router.include_router(admin_companies.router)
