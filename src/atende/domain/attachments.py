"""Attachment helpers: message kind detection and base64 data URLs."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Literal

MediaKind = Literal["image", "audio", "document"]

TEXT_KIND = "conversation"

_KIND_BY_MEDIA: dict[str, str] = {
    "image": "imageMessage",
    "audio": "audioMessage",
    "document": "documentMessage",
}

_DATA_URL_PREFIX: dict[str, str] = {
    "image": "data:image/jpeg;base64,",
    "audio": "data:audio/mpeg;base64,",
    "document": "data:application/pdf;base64,",
}


class InvalidAttachmentError(ValueError):
    """Raised when an attachment payload is not valid base64."""


@dataclass(frozen=True)
class Attachment:
    """A single file already encoded as base64 (no data: prefix)."""

    filename: str
    mimetype: str
    base64: str

    @property
    def media_kind(self) -> MediaKind:
        return media_kind_for_mimetype(self.mimetype)

    @property
    def tipomessage(self) -> str:
        return _KIND_BY_MEDIA[self.media_kind]


def media_kind_for_mimetype(mimetype: str | None) -> MediaKind:
    mimetype = (mimetype or "").lower()
    if mimetype.startswith("image/"):
        return "image"
    if mimetype.startswith("audio/"):
        return "audio"
    return "document"


def media_kind_for_tipomessage(tipomessage: str | None) -> MediaKind | None:
    """Map the provider's kind tag to a media kind; None for text and unknown kinds."""
    if not tipomessage:
        return None
    tipo = tipomessage.lower()
    if tipo in ("imagemessage", "image"):
        return "image"
    if tipo in ("audiomessage", "audio", "ptt"):
        return "audio"
    if tipo in ("documentmessage", "document"):
        return "document"
    return None


def detect_base64_kind(payload: str | None) -> MediaKind | None:
    """Sniff the media kind of a base64 payload from its data URL or magic bytes."""
    if not payload:
        return None
    if payload.startswith("data:image/") or payload.startswith("/9j/") or payload.startswith("iVBORw0KGgo"):
        return "image"
    if payload.startswith("data:audio/") or "audio/mpeg" in payload or "audio/ogg" in payload:
        return "audio"
    return "document"


def to_data_url(payload: str, kind: MediaKind) -> str:
    """Prefix raw base64 with a default data: header; data URLs pass through."""
    if payload.startswith("data:"):
        return payload
    return _DATA_URL_PREFIX[kind] + payload


def strip_data_url(payload: str) -> str:
    """Drop a `data:...;base64,` header if present."""
    if payload.startswith("data:") and "," in payload:
        return payload.split(",", 1)[1]
    return payload


def make_attachment(filename: str, mimetype: str | None, payload: str) -> Attachment:
    """Validate an uploaded base64 payload and build an Attachment.

    Raises:
        InvalidAttachmentError: if the payload does not decode.
    """
    raw = strip_data_url(payload.strip())
    try:
        base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidAttachmentError("attachment is not valid base64") from e
    return Attachment(
        filename=filename,
        mimetype=mimetype or "application/octet-stream",
        base64=raw,
    )
