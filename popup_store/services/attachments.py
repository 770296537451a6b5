from __future__ import annotations

import logging
import mimetypes
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from popup_store.schemas.chat import Attachment
from popup_store.schemas.images import ImageRef, is_data_url, parse_data_url, to_data_url
from popup_store.services.uploads import UploadStore

logger = logging.getLogger(__name__)


class AttachmentError(ValueError):
    pass


def _is_byte_source(item: Any) -> bool:
    if isinstance(item, (bytes, bytearray)):
        return True
    inner = getattr(item, "file", None)
    if inner is not None and callable(getattr(inner, "read", None)):
        return True
    return callable(getattr(item, "read", None))


def _read_bytes(item: Any) -> bytes:
    if isinstance(item, (bytes, bytearray)):
        return bytes(item)
    # FastAPI UploadFile exposes an async read(); its spooled file reads synchronously.
    inner = getattr(item, "file", None)
    reader = inner if inner is not None and callable(getattr(inner, "read", None)) else item
    if callable(getattr(reader, "seek", None)):
        reader.seek(0)
    data = reader.read()
    if not isinstance(data, (bytes, bytearray)):
        raise AttachmentError("Attachment reader did not return bytes")
    return bytes(data)


def _resolve_content_type(item: Any, filename: Optional[str]) -> str:
    content_type = (getattr(item, "content_type", None) or "").split(";")[0].strip().lower()
    if not content_type and filename:
        content_type = (mimetypes.guess_type(filename)[0] or "").lower()
    return content_type


def _from_bytes(item: Any, *, store: UploadStore) -> ImageRef:
    filename = getattr(item, "filename", None) or getattr(item, "name", None)
    filename = filename if isinstance(filename, str) else None
    content_type = _resolve_content_type(item, filename)
    data = _read_bytes(item)
    if not data:
        raise AttachmentError(f"Attachment {filename or 'upload'} is empty")
    if len(data) > store.max_bytes:
        raise AttachmentError(f"Attachment {filename or 'upload'} exceeds {store.max_bytes} bytes")
    if not content_type.startswith("image/"):
        raise AttachmentError(
            f"Unsupported attachment type for {filename or 'upload'} ({content_type or 'unknown'})"
        )
    return ImageRef(url=to_data_url(data, content_type), content_type=content_type, name=filename)


def _from_record(raw: Any, *, store: UploadStore) -> Optional[ImageRef]:
    try:
        record = raw if isinstance(raw, Attachment) else Attachment.model_validate(raw)
    except ValidationError:
        logger.warning("Skipping attachment record without a usable url", extra={"record_type": type(raw).__name__})
        return None

    url = record.url.strip()
    content_type = record.contentType.split(";")[0].strip().lower() or None
    name = record.name or None

    if is_data_url(url):
        try:
            data, mime_type = parse_data_url(url)
        except ValueError as exc:
            raise AttachmentError(f"Attachment {name or 'data URL'} is not a valid image: {exc}") from exc
        if len(data) > store.max_bytes:
            raise AttachmentError(f"Attachment {name or 'data URL'} exceeds {store.max_bytes} bytes")
        return ImageRef(url=url, content_type=content_type or mime_type, name=name)

    # Uploads held by this service are inlined so providers never need to reach our host.
    local_path = store.local_path_for_url(url)
    if local_path is not None:
        data = local_path.read_bytes()
        mime_type = content_type or mimetypes.guess_type(local_path.name)[0] or "image/png"
        return ImageRef(url=to_data_url(data, mime_type), content_type=mime_type, name=name)

    if url.startswith(("http://", "https://")):
        return ImageRef(url=url, content_type=content_type, name=name)

    logger.warning("Skipping attachment with unsupported url scheme", extra={"attachment_name": name})
    return None


def normalize_attachments(items: Iterable[Any] | None, *, store: Optional[UploadStore] = None) -> Optional[ImageRef]:
    """
    Resolve the first usable attachment into a canonical ImageRef.

    Accepts byte-readable uploads (multipart files, raw bytes) and previously uploaded
    `{url, name, contentType}` records. Only the first usable attachment is used; any
    others are ignored. Returns None when there is nothing to use.
    """
    if not items:
        return None
    resolved_store = store or UploadStore()
    candidates = list(items)
    for index, item in enumerate(candidates):
        if item is None:
            continue
        if _is_byte_source(item):
            ref = _from_bytes(item, store=resolved_store)
        else:
            ref = _from_record(item, store=resolved_store)
        if ref is None:
            continue
        ignored = len(candidates) - index - 1
        if ignored:
            logger.debug("Ignoring additional attachments", extra={"ignored_count": ignored})
        return ref
    return None
