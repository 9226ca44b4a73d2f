"""Session resolution and role guards.

Provides:
- SessionContext: the authenticated identity mapped to its company/attendant
- get_session(): FastAPI dependency resolving the session from the database
- require_company_actor / require_company_admin / require_super_admin: role guards

Resolution order: an attendant row for the user wins (the user is then an
attendant of that company); otherwise the company owned by the user, if
any. Super admin status comes from the super_admins table.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException

from atende.api.auth import CurrentUser, get_current_user
from atende.domain.models import Attendant, Company
from atende.domain.scope import Scope


class SessionRole(str, Enum):
    ATTENDANT = "attendant"
    COMPANY_ADMIN = "company_admin"
    SUPER_ADMIN = "super_admin"


@dataclass
class SessionContext:
    """Who is calling, on behalf of which company."""

    user: CurrentUser
    company: Company | None = None
    attendant: Attendant | None = None
    is_super_admin: bool = False

    @property
    def role(self) -> SessionRole:
        if self.attendant is not None:
            return SessionRole.ATTENDANT
        if self.company is not None:
            return SessionRole.COMPANY_ADMIN
        return SessionRole.SUPER_ADMIN

    @property
    def scope(self) -> Scope:
        """Visibility policy: attendants are confined to their department and sector."""
        if self.company is None:
            raise HTTPException(status_code=403, detail="No company for this user")
        if self.attendant is not None:
            return Scope.for_attendant(
                self.company.id,
                self.company.api_key,
                self.attendant.department_id,
                self.attendant.sector_id,
            )
        return Scope.company_wide(self.company.id, self.company.api_key)


def _load_session(user: CurrentUser) -> SessionContext:
    from atende.infra.db import txn
    from atende.infra.repositories import companies_repository

    with txn() as cur:
        found = companies_repository.find_attendant_by_user(cur, user.id)
        if found is not None:
            attendant, company = found
            return SessionContext(user=user, company=company, attendant=attendant)

        company = companies_repository.find_company_by_user(cur, user.id)
        super_admin = companies_repository.is_super_admin(cur, user.id)
        return SessionContext(user=user, company=company, is_super_admin=super_admin)


def get_session(user: CurrentUser = Depends(get_current_user)) -> SessionContext:
    """FastAPI dependency: resolved session.

    Raises:
        HTTPException: 403 if the identity maps to no company, attendant or
            super admin, or the attendant is inactive.
    """
    session = _load_session(user)

    if session.attendant is not None and not session.attendant.is_active:
        raise HTTPException(status_code=403, detail="Attendant inactive")
    if session.company is None and not session.is_super_admin:
        raise HTTPException(status_code=403, detail="User not linked to a company")

    return session


def require_company_actor(session: SessionContext = Depends(get_session)) -> SessionContext:
    """Any user acting for a company (admin or attendant)."""
    if session.company is None:
        raise HTTPException(status_code=403, detail="No company for this user")
    return session


def require_company_admin(session: SessionContext = Depends(get_session)) -> SessionContext:
    if session.company is None or session.attendant is not None:
        raise HTTPException(status_code=403, detail="Company admin required")
    return session


def require_super_admin(session: SessionContext = Depends(get_session)) -> SessionContext:
    if not session.is_super_admin:
        raise HTTPException(status_code=403, detail="Super admin required")
    return session


SessionDep = Depends(get_session)
CompanyActorDep = Depends(require_company_actor)
CompanyAdminDep = Depends(require_company_admin)
SuperAdminDep = Depends(require_super_admin)
