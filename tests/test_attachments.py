"""Tests for attachment kind detection and data URL helpers."""

import pytest

from atende.domain.attachments import (
    InvalidAttachmentError,
    detect_base64_kind,
    make_attachment,
    media_kind_for_mimetype,
    media_kind_for_tipomessage,
    strip_data_url,
    to_data_url,
)


class TestKinds:
    @pytest.mark.parametrize(
        "mimetype,kind",
        [
            ("image/png", "image"),
            ("IMAGE/JPEG", "image"),
            ("audio/ogg", "audio"),
            ("application/pdf", "document"),
            (None, "document"),
        ],
    )
    def test_mimetype(self, mimetype, kind):
        assert media_kind_for_mimetype(mimetype) == kind

    @pytest.mark.parametrize(
        "tipo,kind",
        [
            ("imageMessage", "image"),
            ("audioMessage", "audio"),
            ("ptt", "audio"),
            ("documentMessage", "document"),
            ("conversation", None),
            (None, None),
        ],
    )
    def test_tipomessage(self, tipo, kind):
        assert media_kind_for_tipomessage(tipo) == kind

    def test_sniff_base64(self):
        assert detect_base64_kind("/9j/4AAQSkZJRg") == "image"
        assert detect_base64_kind("iVBORw0KGgoAAAANSUhEUg") == "image"
        assert detect_base64_kind("data:audio/ogg;base64,T2dnUw") == "audio"
        assert detect_base64_kind("JVBERi0xLjQ") == "document"
        assert detect_base64_kind(None) is None


class TestDataUrls:
    def test_prefix_added(self):
        assert to_data_url("AAAA", "image") == "data:image/jpeg;base64,AAAA"
        assert to_data_url("AAAA", "document") == "data:application/pdf;base64,AAAA"

    def test_existing_data_url_passes_through(self):
        assert to_data_url("data:image/png;base64,AAAA", "image") == "data:image/png;base64,AAAA"

    def test_strip(self):
        assert strip_data_url("data:image/png;base64,AAAA") == "AAAA"
        assert strip_data_url("AAAA") == "AAAA"


class TestMakeAttachment:
    def test_valid(self):
        att = make_attachment("foto.png", "image/png", "data:image/png;base64,aGVsbG8=")
        assert att.base64 == "aGVsbG8="
        assert att.media_kind == "image"
        assert att.tipomessage == "imageMessage"

    def test_default_mimetype(self):
        att = make_attachment("arquivo.bin", None, "aGVsbG8=")
        assert att.mimetype == "application/octet-stream"
        assert att.tipomessage == "documentMessage"

    def test_invalid_base64(self):
        with pytest.raises(InvalidAttachmentError):
            make_attachment("x.pdf", "application/pdf", "not base64!!")
