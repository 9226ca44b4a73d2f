"""Tests for the send flow: persist, then relay."""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from atende.domain.dispatch import DispatchError, MessageDraft
from atende.domain.models import Message, ReferenceData
from atende.domain.scope import Scope
from atende.services import inbox, messaging

from .helpers import fake_txn, make_attendant, make_company, make_message

REPO = "atende.infra.repositories"


class FakeMessageStore:
    """In-memory stand-in for the two message tables."""

    def __init__(self, inbound: list[Message] | None = None):
        self.tables: dict[str, list[Message]] = {"messages": list(inbound or []), "sent_messages": []}

    def insert_sent_message(self, cur, row):
        row_id = str(len(self.tables["sent_messages"]) + 1000)
        fields = {k: v for k, v in row.items() if k != "minha?"}
        self.tables["sent_messages"].append(
            Message(id=row_id, minha=row["minha?"], source="sent_messages", **fields)
        )
        return row_id

    def find_latest_inbound_context(self, cur, api_key, phone_key):
        rows = [m for m in self.tables["messages"] if m.apikey_instancia == api_key]
        if not rows:
            return None
        last = rows[-1]
        return {
            "instancia": last.instancia,
            "department_id": last.department_id,
            "sector_id": last.sector_id,
            "tag_id": last.tag_id,
        }

    def list_messages(self, cur, table, scope):
        return [m for m in self.tables[table] if m.apikey_instancia == scope.api_key]

    def patches(self):
        return [
            patch(f"{REPO}.messages_repository.insert_sent_message", side_effect=self.insert_sent_message),
            patch(
                f"{REPO}.messages_repository.find_latest_inbound_context",
                side_effect=self.find_latest_inbound_context,
            ),
            patch(f"{REPO}.messages_repository.list_messages", side_effect=self.list_messages),
        ]


@pytest.fixture
def no_reference():
    with patch(f"{REPO}.reference_repository.load_reference_data", return_value=ReferenceData()):
        yield


class TestSendMessage:
    def test_persists_then_relays(self, no_reference):
        store = FakeMessageStore()
        relay = MagicMock(return_value=True)
        p1, p2, p3 = store.patches()
        with p1, p2, p3, patch("atende.services.messaging.txn", fake_txn()):
            result = messaging.send_message(
                make_company(), make_attendant(), "5511999998888@s.whatsapp.net", MessageDraft(message="Oi"), relay=relay
            )

        assert result.relayed is True
        assert result.message.phone_key == "5511999998888"
        assert len(store.tables["sent_messages"]) == 1
        payload = relay.call_args.args[0]
        assert payload["numero"] == "5511999998888"
        assert payload["message"] == "Oi"
        assert "correlation_id" in relay.call_args.kwargs

    def test_relay_failure_keeps_message(self, no_reference):
        store = FakeMessageStore()
        p1, p2, p3 = store.patches()
        with p1, p2, p3, patch("atende.services.messaging.txn", fake_txn()):
            result = messaging.send_message(
                make_company(), None, "5511999998888", MessageDraft(message="Oi"), relay=MagicMock(return_value=False)
            )

        assert result.relayed is False
        assert len(store.tables["sent_messages"]) == 1

    def test_invalid_phone(self):
        relay = MagicMock()
        with pytest.raises(ValueError):
            messaging.send_message(make_company(), None, "abc", MessageDraft(message="Oi"), relay=relay)
        relay.assert_not_called()

    def test_insert_failure_does_not_relay(self):
        relay = MagicMock()
        with patch(f"{REPO}.messages_repository.find_latest_inbound_context", return_value=None), patch(
            f"{REPO}.messages_repository.insert_sent_message", side_effect=psycopg2.OperationalError("down")
        ), patch("atende.services.messaging.txn", fake_txn()):
            with pytest.raises(DispatchError):
                messaging.send_message(make_company(), None, "5511999998888", MessageDraft(message="Oi"), relay=relay)
        relay.assert_not_called()

    def test_commit_failure_is_dispatch_error(self):
        relay = MagicMock()

        def _failing_txn(conn=None):
            raise psycopg2.OperationalError("connection refused")

        with patch("atende.services.messaging.txn", _failing_txn):
            with pytest.raises(DispatchError):
                messaging.send_message(make_company(), None, "5511999998888", MessageDraft(message="Oi"), relay=relay)
        relay.assert_not_called()

    def test_reference_failure_still_relays(self):
        store = FakeMessageStore()
        relay = MagicMock(return_value=True)
        p1, p2, p3 = store.patches()
        with p1, p2, p3, patch("atende.services.messaging.txn", fake_txn()), patch(
            f"{REPO}.reference_repository.load_reference_data", side_effect=psycopg2.OperationalError("down")
        ):
            result = messaging.send_message(make_company(), None, "5511999998888", MessageDraft(message="Oi"), relay=relay)

        assert result.relayed is True
        assert relay.call_args.args[0]["department_name"] is None


class TestSendThenLoad:
    def test_sent_message_appears_in_its_conversation(self, no_reference):
        inbound = make_message(
            id="1",
            numero="5511999998888@s.whatsapp.net",
            instancia="inst-7",
            timestamp="1700000000",
        )
        store = FakeMessageStore([inbound])
        p1, p2, p3 = store.patches()
        scope = Scope.for_attendant("company-1", "key-1", "dept-1", "sector-1")

        with p1, p2, p3, patch("atende.services.messaging.txn", fake_txn()), patch(
            "atende.services.inbox.txn", fake_txn()
        ), patch(f"{REPO}.contacts_repository.list_contacts", return_value=[]):
            messaging.send_message(
                make_company(), make_attendant(), "5511999998888", MessageDraft(message="Olá, Maria!"), relay=MagicMock()
            )
            snapshot = inbox.load_inbox(scope)

        assert len(snapshot.conversations) == 1
        conversation = snapshot.conversations[0]
        assert conversation.phone_number == "5511999998888"
        assert [m.source for m in conversation.messages] == ["messages", "sent_messages"]
        assert conversation.messages[-1].is_outbound
        assert conversation.messages[-1].instancia == "inst-7"
        assert conversation.last_message == "Olá, Maria!"
