from __future__ import annotations

import base64
import logging
import os
import time
from typing import Any, Optional, Protocol

import httpx

from popup_store.config import settings
from popup_store.schemas.images import ImageRef, to_data_url

logger = logging.getLogger(__name__)


class ImageProviderConfigError(RuntimeError):
    pass


class ImageProviderError(RuntimeError):
    pass


class ImageProvider(Protocol):
    name: str

    def generate(self, prompt: str, *, reference: Optional[ImageRef] = None) -> Any:
        """Return the provider's raw output for one generated image."""


def normalize_image_output(output: Any) -> str:
    """
    Reduce a provider response to a single image reference.

    Accepts a list (first element is used), a bare string, or an object/dict
    exposing `url` or `data`.
    """
    if isinstance(output, (list, tuple)):
        if not output:
            raise ImageProviderError("Image provider returned an empty list")
        return normalize_image_output(output[0])
    if isinstance(output, str):
        if not output.strip():
            raise ImageProviderError("Image provider returned an empty string")
        return output.strip()
    if isinstance(output, dict):
        for key in ("url", "data"):
            value = output.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        raise ImageProviderError(f"Image provider object has no url/data (keys={sorted(output)[:8]})")
    for attr in ("url", "data"):
        value = getattr(output, attr, None)
        if callable(value):
            value = value()
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise ImageProviderError(f"Unsupported image provider output type: {type(output).__name__}")


class ReplicateImageProvider:
    name = "replicate"

    def __init__(
        self,
        *,
        api_token: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        poll_interval_seconds: float = 1.0,
        reference_image_field: Optional[str] = None,
    ) -> None:
        resolved_token = (api_token or settings.REPLICATE_API_TOKEN or os.getenv("REPLICATE_API_KEY") or "").strip()
        if not resolved_token:
            raise ImageProviderConfigError("REPLICATE_API_TOKEN not configured")
        self.api_token = resolved_token
        self.model = (model or settings.REPLICATE_IMAGE_MODEL).strip()
        self.base_url = (base_url or settings.REPLICATE_API_BASE_URL).rstrip("/")
        self.timeout_seconds = float(timeout_seconds or settings.IMAGE_REQUEST_TIMEOUT_SECONDS)
        self.poll_interval_seconds = poll_interval_seconds
        self.reference_image_field = reference_image_field or settings.REPLICATE_REFERENCE_IMAGE_FIELD

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
            "Prefer": "wait",
        }

    def build_input(self, prompt: str, reference: Optional[ImageRef]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "prompt": prompt,
            "num_outputs": 1,
            "aspect_ratio": "1:1",
            "output_format": "webp",
        }
        if reference is not None and self.reference_image_field:
            payload[self.reference_image_field] = reference.url
        return payload

    def generate(self, prompt: str, *, reference: Optional[ImageRef] = None) -> Any:
        body = {"input": self.build_input(prompt, reference)}
        with httpx.Client(timeout=self.timeout_seconds) as client:
            resp = client.post(f"{self.base_url}/models/{self.model}/predictions", headers=self._headers(), json=body)
            if resp.status_code >= 400:
                raise ImageProviderError(f"Replicate prediction failed (status={resp.status_code}): {resp.text[:500]}")
            prediction = resp.json()

            start = time.monotonic()
            while prediction.get("status") in ("starting", "processing"):
                if time.monotonic() - start >= self.timeout_seconds:
                    raise ImageProviderError(
                        f"Replicate prediction still pending (id={prediction.get('id')}, status={prediction.get('status')})"
                    )
                poll_url = (prediction.get("urls") or {}).get("get")
                if not poll_url:
                    raise ImageProviderError("Replicate prediction is pending but has no poll url")
                time.sleep(self.poll_interval_seconds)
                poll = client.get(poll_url, headers=self._headers())
                if poll.status_code >= 400:
                    raise ImageProviderError(f"Replicate poll failed (status={poll.status_code}): {poll.text[:500]}")
                prediction = poll.json()

        status = prediction.get("status")
        if status != "succeeded":
            raise ImageProviderError(
                f"Replicate prediction ended with status={status}: {prediction.get('error') or 'no error detail'}"
            )
        logger.debug(
            "Replicate prediction succeeded",
            extra={"prediction_id": prediction.get("id"), "model": self.model},
        )
        return prediction.get("output")


def _extract_first_inline_image(data: dict[str, Any]) -> tuple[bytes, str]:
    for candidate in data.get("candidates") or []:
        parts = ((candidate or {}).get("content") or {}).get("parts") or []
        for part in parts:
            if not isinstance(part, dict):
                continue
            inline = part.get("inlineData") or part.get("inline_data")
            if not isinstance(inline, dict):
                continue
            encoded = inline.get("data")
            if not encoded:
                continue
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return base64.b64decode(encoded), str(mime_type)
    raise ImageProviderError("Gemini response did not include inline image data")


class GeminiImageProvider:
    name = "gemini"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        resolved_key = (api_key or os.getenv("GEMINI_API_KEY") or "").strip()
        if not resolved_key:
            raise ImageProviderConfigError("GEMINI_API_KEY not configured")
        self.api_key = resolved_key
        self.model = (model or settings.GEMINI_IMAGE_MODEL).strip()
        self.timeout_seconds = float(timeout_seconds or settings.IMAGE_REQUEST_TIMEOUT_SECONDS)

    def _reference_part(self, reference: ImageRef) -> dict[str, Any]:
        if reference.is_inline:
            data, mime_type = reference.inline_bytes()
        else:
            resp = httpx.get(reference.url, timeout=self.timeout_seconds, follow_redirects=True)
            resp.raise_for_status()
            data = resp.content
            mime_type = (resp.headers.get("content-type") or reference.content_type or "image/png").split(";")[0]
        return {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode("ascii")}}

    def generate(self, prompt: str, *, reference: Optional[ImageRef] = None) -> Any:
        parts: list[dict[str, Any]] = []
        if reference is not None:
            parts.append(self._reference_part(reference))
        parts.append({"text": prompt})
        payload: dict[str, Any] = {
            "contents": [{"parts": parts}],
            "generationConfig": {"imageConfig": {"aspectRatio": "1:1"}},
        }

        url = f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
        try:
            resp = httpx.post(
                url,
                headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout_seconds,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else None
            body = exc.response.text if exc.response is not None else ""
            raise ImageProviderError(f"Gemini image request failed (status={status}): {body[:500]}") from exc

        image_bytes, mime_type = _extract_first_inline_image(resp.json())
        return {"data": to_data_url(image_bytes, mime_type)}


def get_image_provider(name: Optional[str] = None) -> ImageProvider:
    provider = (name or settings.IMAGE_PROVIDER).strip().lower()
    if provider == "replicate":
        return ReplicateImageProvider()
    if provider == "gemini":
        return GeminiImageProvider()
    raise ImageProviderConfigError(f"Unknown image provider: {provider}")
