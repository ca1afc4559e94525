"""Unified error handling utilities for the melody API."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from enum import Enum
import logging
from typing import Any
from uuid import uuid4

from fastapi import status
from fastapi.responses import JSONResponse

from melody.logging import get_logger


class ErrorCode(str, Enum):
    """Application level error codes exposed via the public API."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_FAILED = "AUTH_FAILED"
    NOT_FOUND = "NOT_FOUND"
    NOT_ENOUGH_ENTITIES = "NOT_ENOUGH_ENTITIES"
    DEPENDENCY_ERROR = "DEPENDENCY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_logger = get_logger(__name__)


class AppError(Exception):
    """Base exception for melody specific errors."""

    __slots__ = ("message", "code", "http_status", "meta", "headers")

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        meta: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.meta = meta
        self.headers = headers

    def as_response(self, *, request_path: str, method: str) -> JSONResponse:
        """Serialise the exception into the canonical error envelope."""

        return to_response(
            message=self.message,
            code=self.code,
            status_code=self.http_status,
            request_path=request_path,
            method=method,
            meta=self.meta,
            headers=self.headers,
        )


class ValidationAppError(AppError):
    """Error raised when a client submitted invalid input."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            http_status=status_code,
            meta=meta,
        )


class AuthenticationRequiredError(AppError):
    """Error raised when the session token is missing or unknown."""

    def __init__(
        self,
        message: str = "Unauthorized",
        *,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.AUTH_REQUIRED,
            http_status=status.HTTP_401_UNAUTHORIZED,
            meta=meta,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthenticationFailedError(AppError):
    """Error raised when the external authorization callback cannot be completed."""

    def __init__(self, message: str = "auth_failed") -> None:
        super().__init__(
            message=message,
            code=ErrorCode.AUTH_FAILED,
            http_status=status.HTTP_401_UNAUTHORIZED,
        )


class NotFoundError(AppError):
    """Error raised when a resource could not be located for the caller."""

    def __init__(self, message: str = "Resource not found.") -> None:
        super().__init__(
            message=message,
            code=ErrorCode.NOT_FOUND,
            http_status=status.HTTP_404_NOT_FOUND,
        )


class NotEnoughEntitiesError(AppError):
    """Error raised when fewer than two songs exist for a matchup."""

    def __init__(self, *, available: int, required: int = 2) -> None:
        super().__init__(
            message=f"Need at least {required} songs to create matchup",
            code=ErrorCode.NOT_ENOUGH_ENTITIES,
            http_status=status.HTTP_409_CONFLICT,
            meta={"available": available, "required": required},
        )
        self.available = available
        self.required = required


class CredentialUnavailableError(AppError):
    """Error raised when no valid external credential could be produced.

    The caller has to re-authenticate; retrying the same request with the
    stale credential will not succeed.
    """

    def __init__(
        self,
        message: str = "Spotify token expired",
        *,
        reason: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCode.DEPENDENCY_ERROR,
            http_status=status.HTTP_401_UNAUTHORIZED,
            meta={"reason": reason} if reason else None,
        )
        self.reason = reason


class InternalServerError(AppError):
    """Error raised when the application encountered an unexpected failure."""

    def __init__(self, message: str = "An unexpected error occurred.") -> None:
        super().__init__(
            message=message,
            code=ErrorCode.INTERNAL_ERROR,
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


def _log_level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code in {status.HTTP_401_UNAUTHORIZED, status.HTTP_409_CONFLICT}:
        return logging.INFO
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


def to_response(
    *,
    message: str,
    code: ErrorCode,
    status_code: int,
    request_path: str,
    method: str,
    meta: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Create an error response with the standard envelope."""

    debug_id = uuid4().hex

    payload: MutableMapping[str, Any] = {
        "ok": False,
        "error": {"code": code.value, "message": message},
    }
    if meta:
        payload["error"]["meta"] = dict(meta)

    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["X-Debug-Id"] = debug_id
    if headers:
        for name, value in headers.items():
            response.headers[name] = value

    _logger.log(
        _log_level_for_status(status_code),
        "API request failed",
        extra={
            "event": "api.error",
            "code": code.value,
            "status": status_code,
            "path": request_path,
            "method": method,
            "debug_id": debug_id,
        },
    )
    return response


__all__ = [
    "AppError",
    "AuthenticationFailedError",
    "AuthenticationRequiredError",
    "CredentialUnavailableError",
    "ErrorCode",
    "InternalServerError",
    "NotEnoughEntitiesError",
    "NotFoundError",
    "ValidationAppError",
    "to_response",
]
