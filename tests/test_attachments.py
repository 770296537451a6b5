import io

import pytest

from popup_store.schemas.images import parse_data_url, to_data_url
from popup_store.services.attachments import AttachmentError, normalize_attachments

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class FakeUpload:
    def __init__(self, data: bytes, filename: str, content_type: str | None) -> None:
        self.file = io.BytesIO(data)
        self.filename = filename
        self.content_type = content_type


def test_no_attachments_returns_none(upload_store):
    assert normalize_attachments(None, store=upload_store) is None
    assert normalize_attachments([], store=upload_store) is None


def test_upload_bytes_are_inlined_as_data_url(upload_store):
    ref = normalize_attachments([FakeUpload(PNG_BYTES, "ref.png", "image/png")], store=upload_store)

    assert ref is not None
    assert ref.is_inline
    assert ref.content_type == "image/png"
    assert ref.name == "ref.png"
    assert ref.inline_bytes() == (PNG_BYTES, "image/png")


def test_content_type_is_guessed_from_filename(upload_store):
    ref = normalize_attachments([FakeUpload(PNG_BYTES, "ref.png", None)], store=upload_store)
    assert ref.content_type == "image/png"


def test_only_first_usable_attachment_is_used(upload_store):
    ref = normalize_attachments(
        [
            {"name": "missing url"},
            {"url": "https://images.test/first.png", "contentType": "image/png"},
            {"url": "https://images.test/second.png"},
        ],
        store=upload_store,
    )
    assert ref.url == "https://images.test/first.png"
    assert ref.is_inline is False


def test_unsupported_scheme_is_skipped(upload_store):
    assert normalize_attachments([{"url": "ftp://images.test/a.png"}], store=upload_store) is None


def test_local_upload_url_is_inlined_from_disk(upload_store):
    stored = upload_store.save(data=PNG_BYTES, filename="ref.png", content_type="image/png")

    ref = normalize_attachments([stored], store=upload_store)

    assert ref.is_inline
    assert parse_data_url(ref.url)[0] == PNG_BYTES


def test_data_url_record_is_kept(upload_store):
    url = to_data_url(PNG_BYTES, "image/png")
    ref = normalize_attachments([{"url": url, "name": "inline.png"}], store=upload_store)
    assert ref.url == url
    assert ref.content_type == "image/png"


def test_empty_upload_is_rejected(upload_store):
    with pytest.raises(AttachmentError, match="empty"):
        normalize_attachments([FakeUpload(b"", "ref.png", "image/png")], store=upload_store)


def test_oversize_upload_is_rejected(upload_store):
    upload_store.max_bytes = 8
    with pytest.raises(AttachmentError, match="exceeds"):
        normalize_attachments([FakeUpload(PNG_BYTES, "ref.png", "image/png")], store=upload_store)


def test_non_image_upload_is_rejected(upload_store):
    with pytest.raises(AttachmentError, match="Unsupported attachment type"):
        normalize_attachments([FakeUpload(b"hello", "notes.txt", "text/plain")], store=upload_store)


def test_malformed_data_url_is_rejected(upload_store):
    with pytest.raises(AttachmentError):
        normalize_attachments([{"url": "data:image/png;base64,@@@"}], store=upload_store)
