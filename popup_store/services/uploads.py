from __future__ import annotations

import logging
import mimetypes
import os
import uuid
from pathlib import Path
from typing import Optional

from popup_store.config import settings

logger = logging.getLogger(__name__)

UPLOADS_ROUTE_PREFIX = "/uploads"
ALLOWED_UPLOAD_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
}


class UploadValidationError(ValueError):
    pass


class UploadStore:
    """Local-disk store for user reference images, served back under /uploads."""

    def __init__(
        self,
        *,
        root: Optional[Path] = None,
        public_base_url: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ) -> None:
        self.root = Path(root) if root is not None else settings.upload_path
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.max_bytes = int(max_bytes or settings.UPLOAD_MAX_BYTES)

    def validate(self, *, content_type: str | None, size: int) -> str:
        if size <= 0:
            raise UploadValidationError("File is empty")
        if size > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            raise UploadValidationError(f"File size too large. Maximum size is {limit_mb}MB")
        cleaned = (content_type or "").split(";")[0].strip().lower()
        if cleaned not in ALLOWED_UPLOAD_TYPES:
            raise UploadValidationError("Invalid file type. Only images are allowed")
        return cleaned

    def save(self, *, data: bytes, filename: str | None, content_type: str | None) -> dict[str, object]:
        cleaned_type = self.validate(content_type=content_type, size=len(data))
        ext = os.path.splitext(filename or "")[1].lstrip(".")
        if not ext:
            guessed = mimetypes.guess_extension(cleaned_type) or ".png"
            ext = guessed.lstrip(".")
        unique_name = f"{uuid.uuid4()}.{ext}"

        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / unique_name).write_bytes(data)
        logger.info(
            "Stored uploaded image",
            extra={"stored_name": unique_name, "content_type": cleaned_type, "size_bytes": len(data)},
        )
        return {
            "url": f"{self.public_base_url}{UPLOADS_ROUTE_PREFIX}/{unique_name}",
            "name": filename or unique_name,
            "contentType": cleaned_type,
            "size": len(data),
        }

    def local_path_for_url(self, url: str) -> Optional[Path]:
        """Map a URL served by this store back to its file, or None for foreign URLs."""
        if not isinstance(url, str) or not url:
            return None
        if url.startswith(f"{UPLOADS_ROUTE_PREFIX}/"):
            path_part = url
        else:
            if not url.startswith(f"{self.public_base_url}{UPLOADS_ROUTE_PREFIX}/"):
                return None
            path_part = url[len(self.public_base_url) :].split("?", 1)[0]
        name = path_part[len(UPLOADS_ROUTE_PREFIX) + 1 :]
        if not name or "/" in name or name in {".", ".."}:
            return None
        candidate = self.root / name
        return candidate if candidate.is_file() else None
