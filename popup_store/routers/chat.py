from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from popup_store.deps import get_store_pipeline
from popup_store.errors import ApiError
from popup_store.schemas.chat import ChatRequest, ChatResponse
from popup_store.services.attachments import AttachmentError
from popup_store.services.file_tree import tree_to_dict
from popup_store.services.generation_client import GenerationClientError
from popup_store.services.store_pipeline import MISSING_INPUT_ERROR, MissingInputError, StorePipeline
from popup_store.services.store_prompts import STORE_FAILED_MESSAGE, STORE_READY_MESSAGE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


def _parse_attachment_field(raw: Any) -> list[Any]:
    if not isinstance(raw, str) or not raw.strip():
        return []
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "attachments must be a JSON array") from exc
    if not isinstance(parsed, list):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "attachments must be a JSON array")
    return parsed


async def _read_chat_input(request: Request) -> tuple[str, str | None, list[Any]]:
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        message = form.get("message")
        chat_id = form.get("chatId")
        uploads = [item for item in form.getlist("files") if isinstance(item, UploadFile)]
        attachments: list[Any] = [*uploads, *_parse_attachment_field(form.get("attachments"))]
        return (
            message if isinstance(message, str) else "",
            chat_id if isinstance(chat_id, str) and chat_id.strip() else None,
            attachments,
        )

    try:
        payload = await request.json()
    except ValueError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Request body must be JSON or multipart form data") from exc
    try:
        body = ChatRequest.model_validate(payload)
    except ValidationError as exc:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            "Invalid chat request",
            details=exc.errors(include_url=False, include_context=False),
        ) from exc
    return body.message, body.chatId or None, list(body.attachments)


@router.post("/chat")
async def chat(
    request: Request,
    pipeline: StorePipeline = Depends(get_store_pipeline),
) -> dict[str, Any]:
    message, chat_id, attachments = await _read_chat_input(request)
    if not message.strip() and not attachments:
        raise ApiError(status.HTTP_400_BAD_REQUEST, MISSING_INPUT_ERROR)

    try:
        result = await run_in_threadpool(pipeline.run, message=message, chat_id=chat_id, attachments=attachments)
    except MissingInputError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    except AttachmentError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc), assistant_message=STORE_FAILED_MESSAGE) from exc
    except GenerationClientError as exc:
        logger.exception(
            "Store generation failed",
            extra={"chat_id": chat_id, "status_code": exc.status_code},
        )
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to process request",
            details=str(exc),
            assistant_message=STORE_FAILED_MESSAGE,
        ) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Store pipeline failed", extra={"chat_id": chat_id})
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to process request",
            details=str(exc),
            assistant_message=STORE_FAILED_MESSAGE,
        ) from exc

    response = ChatResponse(
        id=result.id,
        demo=result.demo,
        files=result.files,
        tree=tree_to_dict(result.tree),
        selectedFile=result.selected_file,
        assistantMessage=STORE_READY_MESSAGE,
    )
    return response.model_dump(mode="json")
