from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ModelConfiguration(BaseModel):
    modelId: str = "v0-gpt-5"
    imageGenerations: bool = True
    thinking: bool = False


class GenerationRequest(BaseModel):
    chatId: Optional[str] = None
    userMessage: str
    composedPrompt: str
    system: Optional[str] = None
    modelConfig: ModelConfiguration = Field(default_factory=ModelConfiguration)

    @property
    def is_continuation(self) -> bool:
        return bool(self.chatId)


class GeneratedFileMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    file: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class ResolvedFile:
    path: str
    content: str
    lang: str
    url: Optional[str] = None


class GeneratedFile(BaseModel):
    """A generated artifact in either backend shape: {path, content, lang} or {meta: {file, url}, source}."""

    model_config = ConfigDict(extra="allow")

    path: Optional[Any] = None
    content: Optional[Any] = None
    source: Optional[Any] = None
    lang: Optional[Any] = None
    meta: Optional[GeneratedFileMeta] = None

    def effective_path(self) -> Optional[str]:
        candidate = self.path
        if candidate is None and self.meta is not None:
            candidate = self.meta.file
        if not isinstance(candidate, str) or not candidate:
            return None
        return candidate

    def effective_content(self) -> str:
        for candidate in (self.content, self.source):
            if candidate is not None:
                return candidate if isinstance(candidate, str) else str(candidate)
        return ""

    def resolve(self) -> Optional[ResolvedFile]:
        path = self.effective_path()
        if path is None:
            return None
        lang = self.lang if isinstance(self.lang, str) and self.lang else "text"
        url = self.meta.url if self.meta is not None and isinstance(self.meta.url, str) else None
        return ResolvedFile(path=path, content=self.effective_content(), lang=lang, url=url)


class GenerationResult(BaseModel):
    id: str
    demoUrl: Optional[str] = None
    files: list[dict[str, Any]] = Field(default_factory=list)
