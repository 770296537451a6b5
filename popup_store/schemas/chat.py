from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Attachment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = Field(..., min_length=1)
    name: str = ""
    contentType: str = ""
    size: Optional[int] = None


class ChatRequest(BaseModel):
    message: str = ""
    chatId: Optional[str] = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)


class ChatResponse(BaseModel):
    id: str
    demo: Optional[str] = None
    files: list[dict[str, Any]] = Field(default_factory=list)
    tree: dict[str, Any] = Field(default_factory=dict)
    selectedFile: Optional[str] = None
    assistantMessage: str = ""


class ImageRegenerateRequest(BaseModel):
    chatId: Optional[str] = None
    filePath: Optional[str] = None
    prompt: Optional[str] = None
    size: str = "1024x1024"
    format: str = "png"


class UploadResponse(BaseModel):
    message: str = "File uploaded successfully"
    url: str
    name: str
    contentType: str
    size: int
    ready: bool = True


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None
    assistantMessage: Optional[str] = None
