"""Request and response models for the extension API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import Field

from extensions.manifest import CamelModel, utcnow


class ApiResponse(CamelModel):
    """Envelope around every API response."""

    success: bool = True
    message: str = ""
    data: Any = None
    error_code: str | None = None
    errors: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)

    def to_content(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ToggleRequest(CamelModel):
    enabled: bool


class BatchStatusRequest(CamelModel):
    ids: list[str] = Field(min_length=1)
    enabled: bool


class ConfigUpdateRequest(CamelModel):
    user_config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool | None = None


def ok(data: Any = None, message: str = "OK") -> dict[str, Any]:
    """Build a success envelope."""
    return ApiResponse(success=True, message=message, data=data).to_content()


def error_response(
    status_code: int,
    message: str,
    error_code: str,
    errors: list[str] | None = None,
) -> JSONResponse:
    """Build an error envelope response."""
    body = ApiResponse(success=False, message=message, error_code=error_code, errors=errors or [])
    return JSONResponse(status_code=status_code, content=body.to_content())
