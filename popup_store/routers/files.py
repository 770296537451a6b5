from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, UploadFile, status

from popup_store.deps import get_upload_store
from popup_store.errors import ApiError
from popup_store.schemas.chat import UploadResponse
from popup_store.services.uploads import UploadStore, UploadValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("/upload")
async def upload_file(
    file: UploadFile | None = File(default=None),
    store: UploadStore = Depends(get_upload_store),
) -> dict[str, Any]:
    if file is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "No file uploaded")

    content = await file.read()
    try:
        stored = store.save(data=content, filename=file.filename, content_type=file.content_type)
    except UploadValidationError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    except OSError as exc:
        logger.exception("Failed to store uploaded file", extra={"upload_name": file.filename})
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to upload file", details=str(exc)) from exc

    return UploadResponse(**stored).model_dump(mode="json")
