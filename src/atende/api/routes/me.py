"""Session endpoint: who am I and which company do I act for."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from atende.api.session import SessionContext, get_session
from atende.domain.models import Attendant, Company

router = APIRouter(tags=["me"])


def company_to_dict(company: Company) -> dict:
    return {
        "id": company.id,
        "name": company.name,
        "api_key": company.api_key,
        "phone_number": company.phone_number,
        "email": company.email,
        "max_attendants": company.max_attendants,
        "payment_notification_day": company.payment_notification_day,
    }


def attendant_to_dict(attendant: Attendant) -> dict:
    return {
        "id": attendant.id,
        "company_id": attendant.company_id,
        "name": attendant.name,
        "email": attendant.email,
        "phone": attendant.phone,
        "department_id": attendant.department_id,
        "sector_id": attendant.sector_id,
        "is_active": attendant.is_active,
        "user_id": attendant.user_id,
    }


@router.get("/me")
def get_me(session: SessionContext = Depends(get_session)) -> dict:
    """Resolved session: identity, role, company and attendant record."""
    return {
        "id": session.user.id,
        "email": session.user.email,
        "name": session.user.name,
        "role": session.role.value,
        "is_super_admin": session.is_super_admin,
        "company": company_to_dict(session.company) if session.company else None,
        "attendant": attendant_to_dict(session.attendant) if session.attendant else None,
    }
