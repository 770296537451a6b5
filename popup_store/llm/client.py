from __future__ import annotations

import base64
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import google.generativeai as genai
import httpx
from anthropic import Anthropic
from dotenv import load_dotenv
from openai import OpenAI

from popup_store.schemas.images import ImageRef

# Ensure API keys in .env are loaded even if popup_store.config hasn't been imported yet.
_project_root = Path(__file__).resolve().parents[2]
load_dotenv(_project_root / ".env", override=False)


class LLMClientConfigError(Exception):
    pass


logger = logging.getLogger(__name__)
_DEFAULT_MODEL = os.getenv("LLM_DEFAULT_MODEL") or "gpt-4o-mini"
_DEFAULT_TIMEOUT = int(os.getenv("LLM_REQUEST_TIMEOUT", "120"))
_MAX_RETRIES = int(os.getenv("LLM_REQUEST_RETRIES", "0"))


@dataclass
class LLMGenerationParams:
    model: str
    max_tokens: Optional[int] = None
    temperature: float = 0.2
    response_format: Optional[dict[str, Any]] = None


def json_schema_response_format(name: str, schema: dict[str, Any], *, strict: bool = True) -> dict[str, Any]:
    return {"type": "json_schema", "json_schema": {"name": name, "schema": schema, "strict": strict}}


def extract_first_json_object(text: str) -> dict[str, Any]:
    """
    Extract and parse the first top-level JSON object from an arbitrary text blob.

    Models without native structured outputs sometimes wrap the JSON in a preamble
    or a markdown fence; this keeps those responses usable.
    """

    if not isinstance(text, str):
        raise ValueError("Input text must be a string")
    raw = text.strip()
    if not raw:
        raise ValueError("Input text is empty")

    start: int | None = None
    depth = 0
    in_string = False
    escape = False

    for i, ch in enumerate(raw):
        if start is None:
            if ch == "{":
                start = i
                depth = 1
                in_string = False
                escape = False
            continue

        if in_string:
            if escape:
                escape = False
                continue
            if ch == "\\":
                escape = True
                continue
            if ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
            continue
        if ch == "{":
            depth += 1
            continue
        if ch == "}":
            depth -= 1
            if depth == 0:
                candidate = raw[start : i + 1].strip()
                parsed = json.loads(candidate)
                if not isinstance(parsed, dict):
                    raise ValueError("Extracted JSON was not an object")
                return parsed

    raise ValueError("Unable to locate a complete JSON object in response text")


class LLMClient:
    """
    Lightweight wrapper for LLM calls used by the store pipeline.
    Routes to the appropriate provider client based on the requested model.
    """

    def __init__(self, default_model: Optional[str] = None) -> None:
        self.default_model = default_model or _DEFAULT_MODEL
        self._gemini_configured = False
        self._anthropic_client: Optional[Anthropic] = None
        self._openai_client: Optional[OpenAI] = None

    def generate_text(
        self,
        prompt: str,
        params: Optional[LLMGenerationParams] = None,
        *,
        image: Optional[ImageRef] = None,
    ) -> str:
        model = params.model if params and params.model else self.default_model
        model = model or _DEFAULT_MODEL
        if self._is_openai_model(model):
            return self._generate_with_openai(prompt, model, params, image)
        if model.startswith("claude"):
            return self._generate_with_anthropic(prompt, model, params, image)
        return self._generate_with_gemini(prompt, model, params, image)

    def generate_json(
        self,
        prompt: str,
        *,
        schema_name: str,
        schema: dict[str, Any],
        params: Optional[LLMGenerationParams] = None,
        image: Optional[ImageRef] = None,
    ) -> dict[str, Any]:
        """Schema-constrained generation. Returns the parsed JSON object; raises on unparsable output."""
        base = params or LLMGenerationParams(model=self.default_model)
        structured = LLMGenerationParams(
            model=base.model,
            max_tokens=base.max_tokens,
            temperature=base.temperature,
            response_format=json_schema_response_format(schema_name, schema),
        )
        text = self.generate_text(prompt, structured, image=image)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = extract_first_json_object(text)
        if not isinstance(parsed, dict):
            raise ValueError(f"Model returned non-object JSON ({type(parsed).__name__})")
        return parsed

    def _is_openai_model(self, model: str) -> bool:
        lower = model.lower()
        prefixes = ("gpt-", "chatgpt-", "o", "omni-")
        return any(lower.startswith(prefix) for prefix in prefixes)

    def _get_openai_client(self) -> OpenAI:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise LLMClientConfigError("OPENAI_API_KEY not configured")

        if not self._openai_client:
            client_kwargs = {
                "api_key": api_key,
                "timeout": float(_DEFAULT_TIMEOUT),
                "max_retries": _MAX_RETRIES,
            }
            base_url = os.getenv("OPENAI_BASE_URL")
            if base_url:
                client_kwargs["base_url"] = base_url
            self._openai_client = OpenAI(**client_kwargs)
        return self._openai_client

    def _generate_with_openai(
        self,
        prompt: str,
        model: str,
        params: Optional[LLMGenerationParams],
        image: Optional[ImageRef],
    ) -> str:
        client = self._get_openai_client()

        max_tokens = params.max_tokens if params and params.max_tokens else None
        temperature = params.temperature if params else 0.2
        response_format = params.response_format if params else None

        content: Any = prompt
        if image is not None:
            content = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image.url}},
            ]

        completion_kwargs = {
            "model": model,
            "messages": [{"role": "user", "content": content}],
        }
        if temperature is not None:
            completion_kwargs["temperature"] = temperature
        if max_tokens:
            completion_kwargs["max_tokens"] = max_tokens
        if response_format:
            completion_kwargs["response_format"] = response_format

        try:
            completion = client.chat.completions.create(**completion_kwargs)
        except Exception:
            logger.exception("OpenAI chat completion failed", extra={"model": model})
            raise

        if completion and completion.choices:
            message = completion.choices[0].message
            text = getattr(message, "content", None)
        else:
            text = None

        if text:
            return text

        raise RuntimeError(f"OpenAI chat completion returned no content for model {model}")

    def _generate_with_gemini(
        self,
        prompt: str,
        model: str,
        params: Optional[LLMGenerationParams],
        image: Optional[ImageRef],
    ) -> str:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise LLMClientConfigError("GEMINI_API_KEY not configured")

        if not self._gemini_configured:
            genai.configure(api_key=api_key)
            self._gemini_configured = True

        generation_config: dict[str, Any] = {
            "temperature": params.temperature if params else 0.2,
        }
        if params and params.max_tokens:
            generation_config["max_output_tokens"] = params.max_tokens
        if params and params.response_format:
            generation_config["response_mime_type"] = "application/json"
            prompt = f"{prompt}\n\nRespond with JSON matching this schema:\n{_schema_text(params.response_format)}"

        contents: list[Any] = []
        if image is not None:
            data, mime_type = _load_image_bytes(image)
            contents.append({"mime_type": mime_type, "data": data})
        contents.append(prompt)

        model_name = model if model.startswith("models/") else f"models/{model}"
        model_client = genai.GenerativeModel(model_name=model_name, generation_config=generation_config)
        try:
            result = model_client.generate_content(contents, request_options={"timeout": _DEFAULT_TIMEOUT})
            text = None
            if result and getattr(result, "candidates", None):
                first = result.candidates[0]
                if first and first.content and getattr(first.content, "parts", None):
                    parts = first.content.parts
                    if parts and getattr(parts[0], "text", None):
                        text = parts[0].text
            if not text and hasattr(result, "text"):
                text = result.text
        except Exception:
            logger.exception("Gemini generation failed", extra={"model": model})
            raise

        if text:
            return text

        raise RuntimeError(f"Gemini returned no content for model {model}")

    def _generate_with_anthropic(
        self,
        prompt: str,
        model: str,
        params: Optional[LLMGenerationParams],
        image: Optional[ImageRef],
    ) -> str:
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMClientConfigError("ANTHROPIC_API_KEY not configured")

        if not self._anthropic_client:
            self._anthropic_client = Anthropic(api_key=api_key, max_retries=_MAX_RETRIES)

        max_tokens = params.max_tokens if params and params.max_tokens else 4096
        temperature = params.temperature if params else 0.2
        if params and params.response_format:
            prompt = (
                f"{prompt}\n\nReturn ONLY a JSON object matching this schema, with no prose:\n"
                f"{_schema_text(params.response_format)}"
            )

        content: list[dict[str, Any]] = []
        if image is not None:
            if image.is_inline:
                data, mime_type = image.inline_bytes()
                source = {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": base64.b64encode(data).decode("ascii"),
                }
            else:
                source = {"type": "url", "url": image.url}
            content.append({"type": "image", "source": source})
        content.append({"type": "text", "text": prompt})

        try:
            response = self._anthropic_client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": content}],
                timeout=_DEFAULT_TIMEOUT,
            )
        except Exception:
            logger.exception("Anthropic generation failed", extra={"model": model})
            raise

        text_parts = [block.text for block in response.content if getattr(block, "text", None)]
        text = "".join(text_parts) if text_parts else None
        if text:
            return text

        raise RuntimeError(f"Anthropic returned no content for model {model}")


def _schema_text(response_format: dict[str, Any]) -> str:
    json_schema = response_format.get("json_schema")
    schema = json_schema.get("schema") if isinstance(json_schema, dict) else response_format.get("schema")
    return json.dumps(schema or {}, indent=2)


def _load_image_bytes(image: ImageRef) -> tuple[bytes, str]:
    if image.is_inline:
        return image.inline_bytes()
    resp = httpx.get(image.url, timeout=float(_DEFAULT_TIMEOUT), follow_redirects=True)
    resp.raise_for_status()
    mime_type = (resp.headers.get("content-type") or image.content_type or "image/png").split(";")[0].strip()
    return resp.content, mime_type
