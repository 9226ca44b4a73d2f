"""Tests for outbound message construction and persistence."""

import re
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from atende.domain.attachments import Attachment
from atende.domain.dispatch import (
    ConversationNotVisibleError,
    DispatchError,
    EmptyMessageError,
    MessageDraft,
    OutboundMessage,
    build_draft,
    build_outbound_row,
    build_webhook_payload,
    generate_message_id,
    persist_outbound,
)
from atende.domain.models import Department, ReferenceData, Sector
from atende.domain.scope import Scope

from .helpers import make_attendant, make_company

NOW = datetime(2024, 3, 10, 15, 0, tzinfo=timezone.utc)
REPO = "atende.infra.repositories.messages_repository"
ATTENDANT_SCOPE = Scope.for_attendant("company-1", "key-1", "dept-1", "sector-1")

IMAGE = Attachment(filename="foto.jpg", mimetype="image/jpeg", base64="AAAA")
AUDIO = Attachment(filename="nota.ogg", mimetype="audio/ogg", base64="BBBB")
DOC = Attachment(filename="contrato.pdf", mimetype="application/pdf", base64="CCCC")


class TestBuildDraft:
    def test_text(self):
        draft = build_draft("  Olá  ")
        assert draft == MessageDraft(tipomessage="conversation", message="Olá")

    def test_empty_without_attachment_rejected(self):
        with pytest.raises(EmptyMessageError):
            build_draft("   ")
        with pytest.raises(EmptyMessageError):
            build_draft(None)

    def test_image_caption_wins(self):
        draft = build_draft("texto", IMAGE, caption="legenda")
        assert draft.tipomessage == "imageMessage"
        assert draft.message == "legenda"
        assert draft.caption == "legenda"
        assert draft.base64 == "AAAA"
        assert draft.mimetype == "image/jpeg"

    def test_image_defaults(self):
        assert build_draft("texto", IMAGE).message == "texto"
        assert build_draft(None, IMAGE).message == "Imagem"

    def test_audio(self):
        draft = build_draft(None, AUDIO, caption="ignored")
        assert draft.tipomessage == "audioMessage"
        assert draft.message == "Áudio"
        assert draft.caption is None

    def test_document_uses_filename(self):
        draft = build_draft("", DOC)
        assert draft.tipomessage == "documentMessage"
        assert draft.message == "contrato.pdf"


class TestGenerateMessageId:
    def test_format(self):
        mid = generate_message_id(NOW)
        assert re.fullmatch(r"\d+_[0-9a-z]{9}", mid)
        assert mid.startswith(f"{int(NOW.timestamp() * 1000)}_")

    def test_distinct(self):
        assert len({generate_message_id(NOW) for _ in range(50)}) == 50


class TestBuildOutboundRow:
    def test_inherits_history(self):
        row = build_outbound_row(
            company=make_company(),
            attendant=make_attendant(),
            phone_key="5511999998888",
            draft=MessageDraft(message="Oi"),
            history={"instancia": "inst-7", "department_id": "dept-9", "sector_id": "sector-9", "tag_id": "tag-9"},
            now=NOW,
        )
        assert row["instancia"] == "inst-7"
        assert row["department_id"] == "dept-9"
        assert row["sector_id"] == "sector-9"
        assert row["tag_id"] == "tag-9"

    def test_without_history_uses_attendant_routing(self):
        row = build_outbound_row(
            company=make_company(),
            attendant=make_attendant(department_id="dept-a", sector_id="sector-a"),
            phone_key="5511999998888",
            draft=MessageDraft(message="Oi"),
            history=None,
            now=NOW,
        )
        assert row["instancia"] == "Loja Azul"
        assert row["department_id"] == "dept-a"
        assert row["sector_id"] == "sector-a"
        assert row["tag_id"] is None

    def test_company_sender_without_history(self):
        row = build_outbound_row(
            company=make_company(),
            attendant=None,
            phone_key="5511999998888",
            draft=MessageDraft(message="Oi"),
            history=None,
            now=NOW,
        )
        assert row["department_id"] is None
        assert row["sector_id"] is None

    def test_outbound_markers(self):
        row = build_outbound_row(
            company=make_company(),
            attendant=None,
            phone_key="5511999998888",
            draft=MessageDraft(message="Oi"),
            history=None,
            now=NOW,
        )
        assert row["minha?"] == "true"
        assert row["numero"] == row["sender"] == "5511999998888"
        assert row["pushname"] == "Loja Azul"
        assert row["apikey_instancia"] == "key-1"
        assert row["company_id"] == "company-1"
        assert row["date_time"] == "2024-03-10T15:00:00.000Z"
        assert row["created_at"] == NOW


class TestPersistOutbound:
    def test_inserts_and_returns_outbound(self):
        cur = MagicMock()
        with patch(f"{REPO}.find_latest_inbound_context", return_value=None) as find, patch(
            f"{REPO}.insert_sent_message", return_value="42"
        ) as insert:
            outbound = persist_outbound(
                cur,
                company=make_company(),
                attendant=make_attendant(),
                phone_key="5511999998888",
                draft=MessageDraft(message="Oi"),
                now=NOW,
            )

        find.assert_called_once_with(cur, "key-1", "5511999998888")
        insert.assert_called_once()
        assert outbound.id == "42"
        assert outbound.sender_type == "attendant"
        assert outbound.row["message"] == "Oi"

    def test_company_sender(self):
        with patch(f"{REPO}.find_latest_inbound_context", return_value=None), patch(
            f"{REPO}.insert_sent_message", return_value="43"
        ):
            outbound = persist_outbound(
                MagicMock(),
                company=make_company(),
                attendant=None,
                phone_key="5511999998888",
                draft=MessageDraft(message="Oi"),
            )
        assert outbound.sender_type == "company"
        assert outbound.attendant is None

    def test_lookup_failure_wrapped(self):
        with patch(f"{REPO}.find_latest_inbound_context", side_effect=psycopg2.OperationalError("down")), patch(
            f"{REPO}.insert_sent_message"
        ) as insert:
            with pytest.raises(DispatchError):
                persist_outbound(
                    MagicMock(),
                    company=make_company(),
                    attendant=None,
                    phone_key="5511999998888",
                    draft=MessageDraft(message="Oi"),
                )
        insert.assert_not_called()

    def test_insert_failure_wrapped(self):
        with patch(f"{REPO}.find_latest_inbound_context", return_value=None), patch(
            f"{REPO}.insert_sent_message", side_effect=psycopg2.OperationalError("down")
        ):
            with pytest.raises(DispatchError):
                persist_outbound(
                    MagicMock(),
                    company=make_company(),
                    attendant=None,
                    phone_key="5511999998888",
                    draft=MessageDraft(message="Oi"),
                )

    def test_history_outside_attendant_scope_rejected(self):
        history = {"instancia": "inst-7", "department_id": "dept-OTHER", "sector_id": "sector-OTHER", "tag_id": None}
        with patch(f"{REPO}.find_latest_inbound_context", return_value=history), patch(
            f"{REPO}.insert_sent_message"
        ) as insert:
            with pytest.raises(ConversationNotVisibleError):
                persist_outbound(
                    MagicMock(),
                    company=make_company(),
                    attendant=make_attendant(),
                    phone_key="5511000000000",
                    draft=MessageDraft(message="hi"),
                    scope=ATTENDANT_SCOPE,
                )
        insert.assert_not_called()

    def test_history_inside_attendant_scope_inherited(self):
        history = {"instancia": "inst-7", "department_id": "dept-1", "sector_id": "sector-1", "tag_id": "t1"}
        with patch(f"{REPO}.find_latest_inbound_context", return_value=history), patch(
            f"{REPO}.insert_sent_message", return_value="44"
        ):
            outbound = persist_outbound(
                MagicMock(),
                company=make_company(),
                attendant=make_attendant(),
                phone_key="5511999998888",
                draft=MessageDraft(message="Oi"),
                scope=ATTENDANT_SCOPE,
            )
        assert outbound.row["tag_id"] == "t1"

    def test_unconfigured_attendant_rejected_before_lookup(self):
        scope = Scope.for_attendant("company-1", "key-1", None, None)
        with patch(f"{REPO}.find_latest_inbound_context") as find:
            with pytest.raises(ConversationNotVisibleError):
                persist_outbound(
                    MagicMock(),
                    company=make_company(),
                    attendant=make_attendant(department_id=None, sector_id=None),
                    phone_key="5511000000000",
                    draft=MessageDraft(message="hi"),
                    scope=scope,
                )
        find.assert_not_called()

    def test_company_scope_writes_anywhere(self):
        history = {"instancia": "inst-7", "department_id": "dept-OTHER", "sector_id": "sector-OTHER", "tag_id": None}
        with patch(f"{REPO}.find_latest_inbound_context", return_value=history), patch(
            f"{REPO}.insert_sent_message", return_value="45"
        ):
            outbound = persist_outbound(
                MagicMock(),
                company=make_company(),
                attendant=None,
                phone_key="5511000000000",
                draft=MessageDraft(message="hi"),
                scope=Scope.company_wide("company-1", "key-1"),
            )
        assert outbound.row["department_id"] == "dept-OTHER"

    def test_company_without_routing_key(self):
        with pytest.raises(DispatchError):
            persist_outbound(
                MagicMock(),
                company=make_company(api_key=None),
                attendant=None,
                phone_key="5511999998888",
                draft=MessageDraft(message="Oi"),
            )


class TestWebhookPayload:
    def _outbound(self, attendant=None):
        row = build_outbound_row(
            company=make_company(),
            attendant=attendant,
            phone_key="5511999998888",
            draft=MessageDraft(message="Oi"),
            history={"instancia": "inst-7", "department_id": "dept-1", "sector_id": "sector-1"},
            now=NOW,
        )
        return OutboundMessage(
            id="42",
            phone_key="5511999998888",
            row=row,
            sender_type="attendant" if attendant else "company",
            attendant=attendant,
        )

    def test_names_resolved(self):
        reference = ReferenceData(
            departments=(Department(id="dept-1", company_id="company-1", name="Vendas"),),
            sectors=(Sector(id="sector-1", company_id="company-1", name="Balcão", department_id="dept-1"),),
        )
        payload = build_webhook_payload(self._outbound(make_attendant()), make_company(), reference)
        assert payload["numero"] == "5511999998888"
        assert payload["department_name"] == "Vendas"
        assert payload["sector_name"] == "Balcão"
        assert payload["company_name"] == "Loja Azul"
        assert payload["timestamp"] == "2024-03-10T15:00:00.000Z"
        assert payload["attendant_id"] == "att-1"
        assert payload["attendant_name"] == "Ana"
        assert payload["sender_type"] == "attendant"

    def test_company_sender_has_no_attendant_fields(self):
        payload = build_webhook_payload(self._outbound(), make_company(), ReferenceData())
        assert "attendant_id" not in payload
        assert payload["department_name"] is None
        assert payload["sender_type"] == "company"
