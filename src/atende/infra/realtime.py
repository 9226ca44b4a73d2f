"""Realtime change feed over Postgres LISTEN/NOTIFY.

The `atende_notify_change()` trigger (see migrations) publishes one JSON
payload per row change on the `atende_changes` channel:

    {"table": "messages", "type": "INSERT", "record": {...}}

`RealtimeListener` owns a dedicated autocommit connection, LISTENs on the
channel and runs a daemon thread that waits on the socket with select() and
hands each event to the subscriptions whose table and equality filter match.

When the connection drops, the thread reconnects with exponential backoff
and then sends every subscription a `RESYNC` event: notifications raised
while disconnected are lost, so subscribers should reload.

Usage:
    with RealtimeListener() as listener:
        listener.subscribe("messages", on_change, column="apikey_instancia", value=api_key)
        ...
"""

from __future__ import annotations

import itertools
import json
import select
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

import psycopg2
from psycopg2.extensions import connection as PgConnection

from atende.infra.db import get_listen_conn
from atende.observability.correlation import correlation_scope
from atende.observability.logging import get_logger
from atende.observability.redaction import safe_log_context

logger = get_logger(__name__)

CHANNEL = "atende_changes"
RESYNC = "RESYNC"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: str
    record: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: str) -> ChangeEvent | None:
        """Parse a NOTIFY payload. Returns None for malformed payloads."""
        try:
            data = json.loads(payload)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict) or not data.get("table"):
            return None
        record = data.get("record")
        return cls(
            table=str(data["table"]),
            type=str(data.get("type") or "").upper(),
            record=record if isinstance(record, dict) else {},
        )


Handler = Callable[[ChangeEvent], None]


@dataclass(frozen=True)
class Subscription:
    id: int
    table: str
    handler: Handler
    column: str | None = None
    value: Any = None

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.column is None:
            return True
        actual = event.record.get(self.column)
        return actual is not None and str(actual) == str(self.value)


class RealtimeListener:
    """Dispatches change events from one LISTEN connection to subscriptions."""

    def __init__(
        self,
        conn_factory: Callable[[], PgConnection] = get_listen_conn,
        channel: str = CHANNEL,
        poll_timeout: float = 1.0,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
    ) -> None:
        self._conn_factory = conn_factory
        self._channel = channel
        self._poll_timeout = poll_timeout
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._conn: PgConnection | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    # ── Subscriptions ─────────────────────────────────────────────────────

    def subscribe(
        self,
        table: str,
        handler: Handler,
        *,
        column: str | None = None,
        value: Any = None,
    ) -> Subscription:
        """Register a handler for changes on `table`, optionally where column == value."""
        sub = Subscription(id=next(self._ids), table=table, handler=handler, column=column, value=value)
        with self._lock:
            self._subscriptions[sub.id] = sub
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(sub.id, None)

    @property
    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def start(self) -> RealtimeListener:
        if self._thread is not None:
            return self

        self._connect()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="atende-realtime", daemon=True)
        self._thread.start()
        logger.info("realtime listener started", extra={"extra_fields": safe_log_context(channel=self._channel)})
        return self

    def close(self) -> None:
        """Drop subscriptions, stop the thread, UNLISTEN and close the connection."""
        self._stop.set()
        with self._lock:
            self._subscriptions.clear()

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self._poll_timeout + 1.0)
        self._thread = None

        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            if not conn.closed:
                with conn.cursor() as cur:
                    cur.execute(f"UNLISTEN {self._channel}")
        except psycopg2.Error:
            logger.warning("realtime UNLISTEN failed", exc_info=True)
        finally:
            conn.close()
        logger.info("realtime listener closed", extra={"extra_fields": safe_log_context(channel=self._channel)})

    def __enter__(self) -> RealtimeListener:
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Connection ────────────────────────────────────────────────────────

    def _connect(self) -> None:
        conn = self._conn_factory()
        try:
            with conn.cursor() as cur:
                cur.execute(f"LISTEN {self._channel}")
        except psycopg2.Error:
            conn.close()
            raise
        self._conn = conn

    def _drop_connection(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None and not conn.closed:
            conn.close()

    def _reconnect(self) -> bool:
        try:
            self._connect()
        except (psycopg2.Error, OSError):
            logger.warning("realtime reconnect failed", exc_info=True)
            return False
        if self._stop.is_set():
            self._drop_connection()
            return False

        logger.info("realtime listener reconnected", extra={"extra_fields": safe_log_context(channel=self._channel)})
        self.resync()
        return True

    # ── Event loop ────────────────────────────────────────────────────────

    def _run(self) -> None:
        delay = self._reconnect_delay
        while not self._stop.is_set():
            if self._conn is None:
                if self._stop.wait(delay):
                    break
                delay = min(delay * 2, self._max_reconnect_delay)
                self._reconnect()
                continue
            try:
                self.poll_once()
            except (psycopg2.Error, OSError, ValueError):
                if self._stop.is_set():
                    break
                logger.exception("realtime listener connection lost; reconnecting")
                self._drop_connection()
            else:
                delay = self._reconnect_delay

    def poll_once(self) -> int:
        """Wait up to poll_timeout for notifications and dispatch them.

        Returns the number of notifications read.
        """
        conn = self._conn
        if conn is None:
            return 0
        readable, _, _ = select.select([conn], [], [], self._poll_timeout)
        if not readable:
            return 0

        conn.poll()
        count = 0
        while conn.notifies:
            notify = conn.notifies.pop(0)
            count += 1
            self.dispatch(notify.payload)
        return count

    def dispatch(self, payload: str) -> int:
        """Deliver one raw payload to matching subscriptions. Returns handlers called."""
        event = ChangeEvent.from_payload(payload)
        if event is None:
            logger.warning("realtime notification ignored: malformed")
            return 0

        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.matches(event)]
        self._deliver(event, targets)
        return len(targets)

    def resync(self) -> int:
        """Send a RESYNC event to every subscription, regardless of its filter."""
        with self._lock:
            targets = list(self._subscriptions.values())
        for sub in targets:
            self._deliver(ChangeEvent(table=sub.table, type=RESYNC), [sub])
        return len(targets)

    def _deliver(self, event: ChangeEvent, targets: list[Subscription]) -> None:
        with correlation_scope():
            for sub in targets:
                try:
                    sub.handler(event)
                except Exception:
                    logger.exception(
                        "realtime handler failed",
                        extra={"extra_fields": safe_log_context(table=event.table, type=event.type)},
                    )
