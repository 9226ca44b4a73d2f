"""Inbox service: scoped loaders, aggregation and the live (auto-refreshing) inbox.

Each loader runs in its own short transaction so that one failing fetch does
not abort the others. Fetch errors are logged and degrade to an empty
collection; `LiveInbox` keeps its previous snapshot instead.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import psycopg2

from atende.domain.conversations import aggregate
from atende.domain.models import Contact, Conversation, Message, ReferenceData
from atende.domain.phone import normalize_phone
from atende.domain.scope import Scope, filter_visible
from atende.infra.db import txn
from atende.infra.realtime import ChangeEvent, RealtimeListener, Subscription
from atende.infra.repositories import contacts_repository, messages_repository, reference_repository
from atende.infra.repositories.messages_repository import MESSAGE_TABLES
from atende.observability.logging import get_logger
from atende.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class Inbox:
    """Aggregated view of one scope at one point in time."""

    conversations: list[Conversation] = field(default_factory=list)
    reference: ReferenceData = field(default_factory=ReferenceData)
    loaded_at: float = 0.0


def _fetch(what: str, scope: Scope, default: R, fn: Callable, strict: bool) -> R:
    try:
        with txn() as cur:
            return fn(cur)
    except psycopg2.Error:
        if strict:
            raise
        logger.exception(
            f"{what} fetch failed",
            extra={"extra_fields": safe_log_context(company_id=scope.company_id, role=scope.role.value)},
        )
        return default


# ── Loaders ───────────────────────────────────────────────────────────────────


def load_reference_data(scope: Scope, *, strict: bool = False) -> ReferenceData:
    return _fetch(
        "reference data",
        scope,
        ReferenceData(),
        lambda cur: reference_repository.load_reference_data(cur, scope.company_id),
        strict,
    )


def load_contacts(scope: Scope, *, strict: bool = False) -> list[Contact]:
    """Directory rows visible to the scope; [] without querying when fail-closed."""
    if not scope.is_fully_configured:
        return []
    contacts = _fetch(
        "contacts",
        scope,
        [],
        lambda cur: contacts_repository.list_contacts(cur, scope),
        strict,
    )
    return filter_visible(scope, contacts)


def load_messages(scope: Scope, *, strict: bool = False) -> list[Message]:
    """Inbound rows then outbound rows, each in fetch order."""
    if not scope.is_fully_configured or not scope.api_key:
        return []

    def _both(cur) -> list[Message]:
        rows: list[Message] = []
        for table in MESSAGE_TABLES:
            rows.extend(messages_repository.list_messages(cur, table, scope))
        return rows

    return filter_visible(scope, _fetch("messages", scope, [], _both, strict))


def load_inbox(scope: Scope, *, strict: bool = False) -> Inbox:
    reference = load_reference_data(scope, strict=strict)
    contacts = load_contacts(scope, strict=strict)
    messages = load_messages(scope, strict=strict)
    return Inbox(
        conversations=aggregate(messages, contacts),
        reference=reference,
        loaded_at=time.time(),
    )


def load_conversation(scope: Scope, phone: str, *, strict: bool = False) -> Conversation | None:
    """Single thread for a phone (raw or JID), or None when nothing is visible."""
    phone_key = normalize_phone(phone)
    if not phone_key or not scope.is_fully_configured or not scope.api_key:
        return None

    def _thread(cur) -> tuple[list[Message], list[Contact]]:
        rows: list[Message] = []
        for table in MESSAGE_TABLES:
            rows.extend(messages_repository.list_conversation_messages(cur, table, scope, phone_key))
        contact = contacts_repository.find_contact_by_phone(cur, scope.company_id, phone_key)
        return rows, [contact] if contact else []

    messages, contacts = _fetch("conversation", scope, ([], []), _thread, strict)
    conversations = aggregate(filter_visible(scope, messages), filter_visible(scope, contacts))
    return conversations[0] if conversations else None


# ── Live inbox ────────────────────────────────────────────────────────────────


class LiveInbox:
    """Inbox snapshot kept fresh by change events and an optional polling interval.

    A refresh happens on every matching change notification, and also at
    least every `refresh_interval` seconds when one is given. Refreshes are
    not coalesced; the last one to finish wins. Readers always get a complete
    snapshot. The listener's RESYNC after a reconnect is handled like any
    other change. Errors in a polling refresh or in `on_refresh` are logged
    and polling continues.
    """

    def __init__(
        self,
        scope: Scope,
        listener: RealtimeListener | None = None,
        *,
        refresh_interval: float | None = None,
        loader: Callable[[Scope], Inbox] | None = None,
        on_refresh: Callable[[Inbox], None] | None = None,
    ) -> None:
        self._scope = scope
        self._listener = listener
        self._refresh_interval = refresh_interval
        self._loader = loader or (lambda s: load_inbox(s, strict=True))
        self._on_refresh = on_refresh
        self._lock = threading.Lock()
        self._snapshot = Inbox()
        self._last_refresh = 0.0
        self._stop = threading.Event()
        self._timer: threading.Thread | None = None
        self._subscriptions: list[Subscription] = []

    @property
    def snapshot(self) -> Inbox:
        with self._lock:
            return self._snapshot

    @property
    def conversations(self) -> list[Conversation]:
        return self.snapshot.conversations

    def start(self) -> LiveInbox:
        self.refresh()

        if self._listener is not None and not self._subscriptions:
            if self._scope.api_key:
                for table in MESSAGE_TABLES:
                    self._subscriptions.append(
                        self._listener.subscribe(
                            table, self._on_change, column="apikey_instancia", value=self._scope.api_key
                        )
                    )
            for table in ("contacts", "contact_tags"):
                self._subscriptions.append(
                    self._listener.subscribe(table, self._on_change, column="company_id", value=self._scope.company_id)
                )

        if self._refresh_interval and self._timer is None:
            self._stop.clear()
            self._timer = threading.Thread(target=self._poll, name="atende-inbox-poll", daemon=True)
            self._timer.start()
        return self

    def refresh(self) -> bool:
        """Reload and swap the snapshot. Returns False (keeping the old one) on fetch errors."""
        try:
            inbox = self._loader(self._scope)
        except psycopg2.Error:
            logger.exception(
                "inbox refresh failed; keeping previous snapshot",
                extra={"extra_fields": safe_log_context(company_id=self._scope.company_id)},
            )
            with self._lock:
                self._last_refresh = time.monotonic()
            return False

        with self._lock:
            self._snapshot = inbox
            self._last_refresh = time.monotonic()

        if self._on_refresh is not None:
            try:
                self._on_refresh(inbox)
            except Exception:
                logger.exception(
                    "inbox refresh callback failed",
                    extra={"extra_fields": safe_log_context(company_id=self._scope.company_id)},
                )
        return True

    def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(
            "inbox change received",
            extra={
                "extra_fields": safe_log_context(
                    table=event.table,
                    type=event.type,
                    phone_hash=hash_identifier(normalize_phone(event.record.get("numero") or event.record.get("sender"))),
                )
            },
        )
        self.refresh()

    def _poll(self) -> None:
        interval = float(self._refresh_interval or 0)
        while True:
            with self._lock:
                elapsed = time.monotonic() - self._last_refresh
            if self._stop.wait(max(interval - elapsed, 0.0)):
                return
            with self._lock:
                due = time.monotonic() - self._last_refresh >= interval
            if not due:
                continue
            try:
                self.refresh()
            except Exception:
                logger.exception(
                    "inbox polling refresh failed",
                    extra={"extra_fields": safe_log_context(company_id=self._scope.company_id)},
                )
                with self._lock:
                    self._last_refresh = time.monotonic()

    def close(self) -> None:
        self._stop.set()
        if self._listener is not None:
            for sub in self._subscriptions:
                self._listener.unsubscribe(sub)
        self._subscriptions.clear()
        if self._timer is not None and self._timer is not threading.current_thread():
            self._timer.join(timeout=1.0)
        self._timer = None

    def __enter__(self) -> LiveInbox:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
