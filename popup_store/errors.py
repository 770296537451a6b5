from __future__ import annotations

from typing import Any, Optional

from popup_store.schemas.chat import ErrorResponse


class ApiError(Exception):
    """Error raised at the HTTP boundary; rendered as {error, details?, assistantMessage?}."""

    def __init__(
        self,
        status_code: int,
        error: str,
        *,
        details: Any | None = None,
        assistant_message: Optional[str] = None,
    ) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details
        self.assistant_message = assistant_message

    def to_content(self) -> dict[str, Any]:
        body = ErrorResponse(error=self.error, details=self.details, assistantMessage=self.assistant_message)
        return body.model_dump(mode="json", exclude_none=True)
