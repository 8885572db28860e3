"""Common schemas used across the API."""

from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error detail."""

    code: str
    message: str
    detail: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Standard error response format.

    Format: { "error": { "code": str, "message": str, "detail": object } }
    """

    error: ErrorDetail


def api_error(status_code: int, code: str, message: str, detail: dict[str, Any] | None = None) -> HTTPException:
    """HTTPException carrying the structured error body."""
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return HTTPException(status_code=status_code, detail=body.model_dump())
