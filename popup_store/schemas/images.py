from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Optional

_DATA_URL_PREFIX = "data:"


def is_data_url(value: str) -> bool:
    return isinstance(value, str) and value.startswith(_DATA_URL_PREFIX)


def to_data_url(data: bytes, content_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def parse_data_url(value: str) -> tuple[bytes, str]:
    """Decode a base64 `data:` URL into (bytes, mime type)."""
    if not is_data_url(value):
        raise ValueError("Not a data URL")
    header, sep, payload = value[len(_DATA_URL_PREFIX) :].partition(",")
    if not sep:
        raise ValueError("Malformed data URL: missing ',' separator")
    params = header.split(";")
    mime_type = params[0].strip().lower() or "application/octet-stream"
    if "base64" not in (p.strip().lower() for p in params[1:]):
        raise ValueError("Only base64 data URLs are supported")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Malformed data URL: invalid base64 payload") from exc
    if not data:
        raise ValueError("Data URL payload is empty")
    return data, mime_type


@dataclass(frozen=True)
class ImageRef:
    """Canonical reference image: an http(s) URL or an inline base64 data URL."""

    url: str
    content_type: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_inline(self) -> bool:
        return is_data_url(self.url)

    def inline_bytes(self) -> tuple[bytes, str]:
        return parse_data_url(self.url)
