from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from popup_store.config import settings
from popup_store.schemas.generation import GenerationRequest, GenerationResult, ModelConfiguration

logger = logging.getLogger(__name__)


class GenerationClientConfigError(RuntimeError):
    pass


@dataclass
class GenerationClientError(RuntimeError):
    message: str
    status_code: int | None = None
    details: Any | None = None

    def __str__(self) -> str:
        status = f" status={self.status_code}" if self.status_code is not None else ""
        return f"{self.message}{status}".strip()


def build_model_configuration() -> ModelConfiguration:
    return ModelConfiguration(
        modelId=settings.V0_MODEL_ID,
        imageGenerations=settings.V0_IMAGE_GENERATIONS,
        thinking=settings.V0_THINKING,
    )


class V0Client:
    """Thin client for the v0 Platform chat API: create a chat or continue an existing one."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        resolved_key = (api_key or settings.V0_API_KEY or "").strip()
        if not resolved_key:
            raise GenerationClientConfigError("V0_API_KEY is required")
        self.api_key = resolved_key
        self.base_url = (base_url or settings.V0_API_BASE_URL).rstrip("/")
        self.timeout_seconds = float(timeout_seconds or settings.V0_TIMEOUT_SECONDS)

    def generate(self, request: GenerationRequest) -> GenerationResult:
        payload: dict[str, Any] = {
            "message": request.composedPrompt,
            "modelConfiguration": request.modelConfig.model_dump(mode="json"),
        }
        if request.is_continuation:
            path = f"/chats/{request.chatId}/messages"
        else:
            path = "/chats"
            if request.system:
                payload["system"] = request.system

        logger.info(
            "Sending generation request",
            extra={
                "mode": "continue" if request.is_continuation else "create",
                "chat_id": request.chatId,
                "model_id": request.modelConfig.modelId,
                "prompt_chars": len(request.composedPrompt),
            },
        )
        body = self._request_json("POST", path, json_payload=payload)
        return self._parse_chat(body)

    def _parse_chat(self, body: dict[str, Any]) -> GenerationResult:
        chat_id = body.get("id")
        if not isinstance(chat_id, str) or not chat_id:
            raise GenerationClientError("Generation backend response is missing a chat id", details=body)

        latest = body.get("latestVersion") if isinstance(body.get("latestVersion"), dict) else {}
        demo = body.get("demo") or latest.get("demoUrl")
        files = body.get("files")
        if files is None:
            files = latest.get("files")
        if not isinstance(files, list):
            files = []

        return GenerationResult(
            id=chat_id,
            demoUrl=demo if isinstance(demo, str) and demo else None,
            files=[item for item in files if isinstance(item, dict)],
        )

    def _request_json(
        self,
        method: str,
        path: str,
        *,
        json_payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout_seconds) as client:
                resp = client.request(method=method, url=path, json=json_payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise GenerationClientError(f"Generation backend request failed for {method} {path}: {exc}") from exc

        if resp.status_code >= 400:
            self._raise_request_error(resp)

        try:
            data = resp.json()
        except ValueError as exc:
            raise GenerationClientError(
                f"Generation backend returned non-JSON payload for {method} {path}",
                status_code=resp.status_code,
            ) from exc

        if not isinstance(data, dict):
            raise GenerationClientError(
                f"Generation backend returned non-object JSON payload for {method} {path}",
                status_code=resp.status_code,
            )
        return data

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _raise_request_error(self, resp: httpx.Response) -> None:
        message = f"Generation backend request failed ({resp.status_code})"
        try:
            payload = resp.json()
        except ValueError:
            payload = None

        details: Any | None = payload
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                message = error["message"]
            elif isinstance(error, str) and error:
                message = error
        elif payload is None:
            details = resp.text[:500] or None

        raise GenerationClientError(message=message, status_code=resp.status_code, details=details)
