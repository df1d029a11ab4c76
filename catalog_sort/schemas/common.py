"""Error envelope shared by every API response that is not a success."""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ErrorCode(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"
    RUN_LOCKED = "RUN_LOCKED"
    BAD_CONFIGURATION = "BAD_CONFIGURATION"
    SALES_IMPORT_FAILED = "SALES_IMPORT_FAILED"
    CATALOG_UNAVAILABLE = "CATALOG_UNAVAILABLE"
    NO_SALES_DATA = "NO_SALES_DATA"
    DB_UNAVAILABLE = "DB_UNAVAILABLE"


class ErrorDetail(BaseModel):
    code: ErrorCode
    message: str
    detail: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Format: { "error": { "code": str, "message": str, "detail": object } }"""

    error: ErrorDetail


def error_payload(code: ErrorCode, message: str, detail: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build the error envelope as a JSON-ready dict."""
    return ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(mode="json")
