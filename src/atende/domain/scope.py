"""Visibility scoping for messages and contacts.

Two policies:
- attendant (strict, fail-closed): a record is visible only when the
  attendant has both a department and a sector, the record has both, and
  both match exactly. Any null on either side hides the record, so an
  attendant with incomplete configuration sees nothing.
- company_admin: everything under the company's routing key is visible.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Protocol, TypeVar


class ScopeRole(str, Enum):
    ATTENDANT = "attendant"
    COMPANY_ADMIN = "company_admin"


class _Routed(Protocol):
    department_id: str | None
    sector_id: str | None


T = TypeVar("T", bound=_Routed)


@dataclass(frozen=True)
class Scope:
    """Which slice of a company's records an actor may see."""

    role: ScopeRole
    company_id: str
    api_key: str | None = None
    department_id: str | None = None
    sector_id: str | None = None

    @property
    def is_restricted(self) -> bool:
        return self.role is ScopeRole.ATTENDANT

    @property
    def is_fully_configured(self) -> bool:
        """False for an attendant missing a department or a sector."""
        if not self.is_restricted:
            return True
        return self.department_id is not None and self.sector_id is not None

    @classmethod
    def company_wide(cls, company_id: str, api_key: str | None) -> Scope:
        return cls(role=ScopeRole.COMPANY_ADMIN, company_id=company_id, api_key=api_key)

    @classmethod
    def for_attendant(
        cls,
        company_id: str,
        api_key: str | None,
        department_id: str | None,
        sector_id: str | None,
    ) -> Scope:
        return cls(
            role=ScopeRole.ATTENDANT,
            company_id=company_id,
            api_key=api_key,
            department_id=department_id,
            sector_id=sector_id,
        )


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def is_visible(scope: Scope, record: Any) -> bool:
    """Apply the scope policy to a single message/contact (object or dict)."""
    if not scope.is_restricted:
        return True
    if not scope.is_fully_configured:
        return False

    department_id = _field(record, "department_id")
    sector_id = _field(record, "sector_id")
    if department_id is None or sector_id is None:
        return False
    return department_id == scope.department_id and sector_id == scope.sector_id


def filter_visible(scope: Scope, records: Iterable[T]) -> list[T]:
    """Visible records, input order preserved."""
    return [r for r in records if is_visible(scope, r)]
