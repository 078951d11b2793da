"""Error responses for the gateway API.

Every error body has the same shape:

    {"error": "...", "code": "BAD_REQUEST", "timestamp": "...", "details": {...}}

Unexpected exceptions are logged with their traceback and rendered as a
sanitized 500; in development the exception text is included.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from bahngate.config import settings

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


class ApiError(Exception):
    """Base exception for API errors with a status code and machine-readable code."""

    def __init__(
        self,
        message: str,
        status_code: int,
        code: str,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        super().__init__(message)

    @classmethod
    def bad_request(cls, message: str, details: dict[str, Any] | None = None) -> ApiError:
        return cls(message, 400, "BAD_REQUEST", details)

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized") -> ApiError:
        return cls(message, 401, "UNAUTHORIZED")

    @classmethod
    def forbidden(cls, message: str = "Forbidden") -> ApiError:
        return cls(message, 403, "FORBIDDEN")

    @classmethod
    def not_found(cls, message: str = "Not Found") -> ApiError:
        return cls(message, 404, "NOT_FOUND")

    @classmethod
    def internal(cls, message: str = "Internal Server Error") -> ApiError:
        return cls(message, 500, "INTERNAL_SERVER_ERROR")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        body: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "timestamp": _timestamp(),
        }
        if self.details:
            body["details"] = self.details
        return body


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Exception handler for ApiError."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler for unexpected errors."""
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    content: dict[str, Any] = {
        "error": "Internal server error",
        "code": "INTERNAL_ERROR",
        "timestamp": _timestamp(),
        "route": request.url.path,
    }
    if settings.env == "dev":
        content["detail"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content=content)
