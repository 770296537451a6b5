from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from starlette.concurrency import run_in_threadpool

from popup_store.deps import get_store_pipeline
from popup_store.errors import ApiError
from popup_store.schemas.chat import ImageRegenerateRequest
from popup_store.services.file_tree import tree_to_dict
from popup_store.services.store_pipeline import StorePipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/images", tags=["images"])


@router.post("/regenerate")
async def regenerate_image(
    payload: ImageRegenerateRequest,
    pipeline: StorePipeline = Depends(get_store_pipeline),
) -> dict[str, Any]:
    chat_id = (payload.chatId or "").strip()
    file_path = (payload.filePath or "").strip()
    prompt = (payload.prompt or "").strip()
    if not chat_id or not file_path or not prompt:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "chatId, filePath, and prompt are required")

    try:
        result = await run_in_threadpool(
            pipeline.regenerate_image,
            chat_id=chat_id,
            file_path=file_path,
            prompt=prompt,
            size=payload.size,
            format=payload.format,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Image regeneration failed", extra={"chat_id": chat_id, "path": file_path})
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to regenerate image",
            details=str(exc),
        ) from exc

    return {
        "id": result.id,
        "demo": result.demo,
        "files": result.files,
        "tree": tree_to_dict(result.tree),
    }
