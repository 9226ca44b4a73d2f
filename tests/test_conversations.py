"""Tests for conversation aggregation, search and date grouping."""

from datetime import date
from zoneinfo import ZoneInfo

from atende.domain.conversations import (
    aggregate,
    date_label,
    format_time,
    group_by_date,
    preview_text,
    search,
)
from atende.domain.timestamps import parse_instant_ms

from .helpers import make_contact, make_message

SP = ZoneInfo("America/Sao_Paulo")


def _at(iso: str) -> str:
    """Epoch seconds string for an ISO instant, as the provider stores it."""
    return str(parse_instant_ms(iso) // 1000)


class TestAggregate:
    def test_jid_and_bare_number_merge(self):
        inbound = make_message(id="1", numero="5511999998888@s.whatsapp.net", timestamp=_at("2024-03-01T10:00:00Z"))
        outbound = make_message(
            id="2",
            numero="5511999998888",
            minha="true",
            message="Olá!",
            timestamp=_at("2024-03-01T10:05:00Z"),
            source="sent_messages",
        )
        conversations = aggregate([inbound, outbound], [])
        assert len(conversations) == 1
        assert conversations[0].phone_number == "5511999998888"
        assert [m.id for m in conversations[0].messages] == ["1", "2"]

    def test_sender_used_when_numero_missing(self):
        msg = make_message(numero=None, sender="5511999998888@s.whatsapp.net")
        assert aggregate([msg], [])[0].phone_number == "5511999998888"

    def test_messages_without_phone_are_dropped(self):
        assert aggregate([make_message(numero=None, sender=None)], []) == []

    def test_contacts_without_messages_produce_nothing(self):
        assert aggregate([], [make_contact()]) == []

    def test_thread_sorted_by_effective_timestamp(self):
        late = make_message(id="late", timestamp=_at("2024-03-01T11:00:00Z"))
        early = make_message(id="early", date_time="2024-03-01T09:00:00Z")
        conversation = aggregate([late, early], [])[0]
        assert [m.id for m in conversation.messages] == ["early", "late"]

    def test_ties_keep_input_order(self):
        a = make_message(id="a", timestamp="100")
        b = make_message(id="b", timestamp="100")
        assert [m.id for m in aggregate([a, b], [])[0].messages] == ["a", "b"]

    def test_list_ordered_by_last_activity(self):
        old = make_message(numero="5511911111111", timestamp=_at("2024-03-01T08:00:00Z"))
        new = make_message(numero="5511922222222", timestamp=_at("2024-03-02T08:00:00Z"))
        assert [c.phone_number for c in aggregate([old, new], [])] == ["5511922222222", "5511911111111"]

    def test_last_message_fields(self):
        first = make_message(id="1", message="Oi", timestamp=_at("2024-03-01T10:00:00Z"))
        last = make_message(id="2", message="Tudo bem?", timestamp=_at("2024-03-01T10:01:00Z"))
        conversation = aggregate([last, first], [])[0]
        assert conversation.last_message == "Tudo bem?"
        assert conversation.last_message_time == "2024-03-01T10:01:00.000Z"

    def test_directory_name_and_routing_win(self):
        contact = make_contact(name="Maria Silva", department_id="dept-2", sector_id="sector-2", tag_ids=("t1",))
        conversation = aggregate([make_message(pushname="Mari")], [contact])[0]
        assert conversation.name == "Maria Silva"
        assert conversation.department_id == "dept-2"
        assert conversation.sector_id == "sector-2"
        assert conversation.tag_ids == ("t1",)
        assert conversation.contact_id == "contact-1"

    def test_name_falls_back_to_pushname_then_phone(self):
        assert aggregate([make_message(pushname="Mari")], [])[0].name == "Mari"
        assert aggregate([make_message(pushname=None)], [])[0].name == "5511999998888"

    def test_directory_phone_with_jid_suffix_joins(self):
        contact = make_contact(phone_number="5511999998888@s.whatsapp.net", name="Maria Silva")
        assert aggregate([make_message()], [contact])[0].name == "Maria Silva"

    def test_idempotent(self):
        messages = [
            make_message(id="1", timestamp="100"),
            make_message(id="2", numero="5511922222222", timestamp="200"),
        ]
        contacts = [make_contact()]
        first = aggregate(messages, contacts)
        second = aggregate(messages, contacts)
        assert [(c.phone_number, c.last_message_ms, [m.id for m in c.messages]) for c in first] == [
            (c.phone_number, c.last_message_ms, [m.id for m in c.messages]) for c in second
        ]


class TestPreviewText:
    def test_body(self):
        assert preview_text(make_message(message="Oi")) == "Oi"

    def test_media_labels(self):
        assert preview_text(make_message(message=None, urlimagem="https://x/img.jpg")) == "Imagem"
        assert preview_text(make_message(message=None, urlpdf="https://x/doc.pdf")) == "Documento"
        assert preview_text(make_message(message=None, base64="AAAA")) == "Arquivo"
        assert preview_text(make_message(message=None)) == "Mensagem"

    def test_none(self):
        assert preview_text(None) == ""


class TestSearch:
    def _conversations(self):
        return aggregate(
            [
                make_message(numero="5511911111111", pushname="João Pedro", timestamp="200"),
                make_message(numero="5521922222222", pushname="Maria", timestamp="100"),
            ],
            [],
        )

    def test_name_case_insensitive(self):
        assert [c.name for c in search(self._conversations(), "joão")] == ["João Pedro"]

    def test_phone_substring(self):
        assert [c.name for c in search(self._conversations(), "5521")] == ["Maria"]

    def test_blank_returns_all(self):
        assert len(search(self._conversations(), "  ")) == 2
        assert len(search(self._conversations(), None)) == 2

    def test_no_match(self):
        assert search(self._conversations(), "zzz") == []


class TestGroupByDate:
    TODAY = date(2024, 3, 10)

    def test_labels(self):
        messages = [
            make_message(id="old", timestamp=_at("2024-03-01T15:00:00Z")),
            make_message(id="y", timestamp=_at("2024-03-09T15:00:00Z")),
            make_message(id="t1", timestamp=_at("2024-03-10T12:00:00Z")),
            make_message(id="t2", timestamp=_at("2024-03-10T18:00:00Z")),
        ]
        groups = group_by_date(messages, tz=SP, today=self.TODAY)
        assert [(label, [m.id for m in msgs]) for label, msgs in groups] == [
            ("01/03/2024", ["old"]),
            ("Ontem", ["y"]),
            ("Hoje", ["t1", "t2"]),
        ]

    def test_labels_use_viewer_timezone(self):
        # 01:00 UTC on the 10th is 22:00 on the 9th in Sao Paulo
        msg = make_message(timestamp=_at("2024-03-10T01:00:00Z"))
        assert group_by_date([msg], tz=SP, today=self.TODAY)[0][0] == "Ontem"
        assert group_by_date([msg], tz=ZoneInfo("UTC"), today=self.TODAY)[0][0] == "Hoje"

    def test_empty(self):
        assert group_by_date([], tz=SP, today=self.TODAY) == []

    def test_date_label_format(self):
        from datetime import datetime

        assert date_label(datetime(2023, 12, 25, 9, 0), self.TODAY) == "25/12/2023"


class TestFormatTime:
    def test_viewer_timezone(self):
        ms = parse_instant_ms("2024-03-10T15:07:00Z")
        assert format_time(ms, SP) == "12:07"

    def test_zero(self):
        assert format_time(0, SP) == ""
