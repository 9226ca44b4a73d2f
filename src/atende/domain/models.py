"""Canonical entities shared by the attendant and company views.

One Message shape covers both `messages` (inbound) and `sent_messages`
(outbound); `source` tells them apart. Column names follow the provider's
webhook payload, which is why some are Portuguese (`numero`, `tipomessage`).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

MessageSource = Literal["messages", "sent_messages"]

OUTBOUND_MARKER = "true"


@dataclass(frozen=True)
class Message:
    """A single inbound or outbound message row.

    Up to three timestamp sources may be set; see
    `atende.domain.timestamps.effective_timestamp_ms` for the precedence.
    """

    id: str | None = None
    numero: str | None = None
    sender: str | None = None
    pushname: str | None = None
    tipomessage: str | None = None
    message: str | None = None
    caption: str | None = None
    mimetype: str | None = None
    base64: str | None = None
    urlimagem: str | None = None
    urlpdf: str | None = None
    instancia: str | None = None
    idmessage: str | None = None
    apikey_instancia: str | None = None
    company_id: str | None = None
    department_id: str | None = None
    sector_id: str | None = None
    tag_id: str | None = None
    minha: str | None = None  # the "minha?" column
    timestamp: str | None = None
    date_time: str | None = None
    created_at: datetime | str | None = None
    source: MessageSource = "messages"

    @property
    def is_outbound(self) -> bool:
        return self.minha == OUTBOUND_MARKER


@dataclass(frozen=True)
class Contact:
    """Persisted contact directory row (one per phone number within a company)."""

    id: str
    company_id: str
    phone_number: str
    name: str | None = None
    department_id: str | None = None
    sector_id: str | None = None
    tag_id: str | None = None
    tag_ids: tuple[str, ...] = ()
    last_message: str | None = None
    last_message_time: datetime | str | None = None


@dataclass
class Conversation:
    """Derived, in-memory thread for one canonical phone key. Never persisted."""

    phone_number: str
    name: str
    messages: list[Message] = field(default_factory=list)
    last_message: str = ""
    last_message_time: str = ""
    last_message_ms: int = 0
    department_id: str | None = None
    sector_id: str | None = None
    tag_ids: tuple[str, ...] = ()
    contact_id: str | None = None


@dataclass(frozen=True)
class Department:
    id: str
    company_id: str
    name: str
    description: str | None = None


@dataclass(frozen=True)
class Sector:
    id: str
    company_id: str
    name: str
    department_id: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Tag:
    id: str
    company_id: str
    name: str
    color: str | None = None


@dataclass(frozen=True)
class Company:
    id: str
    api_key: str | None
    name: str
    phone_number: str | None = None
    email: str | None = None
    user_id: str | None = None
    is_super_admin: bool = False
    max_attendants: int | None = None
    payment_notification_day: int | None = None


@dataclass(frozen=True)
class Attendant:
    """Company user scoped to at most one department and one sector."""

    id: str
    company_id: str
    name: str
    department_id: str | None = None
    sector_id: str | None = None
    email: str | None = None
    phone: str | None = None
    is_active: bool = True
    user_id: str | None = None


@dataclass(frozen=True)
class ReferenceData:
    """Departments, sectors and tags of one company, used to label conversations."""

    departments: tuple[Department, ...] = ()
    sectors: tuple[Sector, ...] = ()
    tags: tuple[Tag, ...] = ()

    def department_name(self, department_id: str | None) -> str | None:
        for d in self.departments:
            if d.id == department_id:
                return d.name
        return None

    def sector_name(self, sector_id: str | None) -> str | None:
        for s in self.sectors:
            if s.id == sector_id:
                return s.name
        return None
