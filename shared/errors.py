"""
Shared error handling for the Slug Proxy.
"""

import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Uniform error envelope returned on every failure path."""

    error: str
    message: str
    timestamp: str
    detail: Optional[Dict[str, Any]] = None


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ProxyLayerException(Exception):
    """Base exception for Slug Proxy services."""

    status_code = 500
    error = "Proxy Error"

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, include_detail: bool = False) -> ErrorResponse:
        """Convert to error response."""
        detail = None
        if include_detail:
            detail = {"code": self.code, "type": type(self).__name__, **self.details}
            if self.__traceback__ is not None:
                detail["traceback"] = traceback.format_exception(type(self), self, self.__traceback__)
        return ErrorResponse(
            error=self.error,
            message=self.message,
            timestamp=utc_timestamp(),
            detail=detail
        )


class SlugNotFoundError(ProxyLayerException):
    """No mapping exists for the requested slug."""

    status_code = 404
    error = "Not Found"

    def __init__(self, slug: str, details: Optional[Dict[str, Any]] = None):
        self.slug = slug
        super().__init__("SLUG_NOT_FOUND", f"Slug '{slug}' not found", details)


class UpstreamError(ProxyLayerException):
    """The backend could not be reached or the exchange failed mid-flight."""

    def __init__(self, message: str = "Upstream request failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_ERROR", message, details)


class UpstreamTimeoutError(UpstreamError):
    """The backend did not answer within the configured timeout."""

    def __init__(self, message: str = "Upstream request timed out", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "UPSTREAM_TIMEOUT"


class RewriteError(ProxyLayerException):
    """A response body could not be decoded or transformed."""

    def __init__(self, message: str = "Response rewrite failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("REWRITE_ERROR", message, details)


class StoreUnavailableError(ProxyLayerException):
    """Key-value store transport errors."""

    error = "Internal Server Error"

    def __init__(self, message: str = "Mapping store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class SlugConflictError(ProxyLayerException):
    """A mapping with the same slug already exists."""

    status_code = 409
    error = "Conflict"

    def __init__(self, slug: str, details: Optional[Dict[str, Any]] = None):
        self.slug = slug
        super().__init__("SLUG_CONFLICT", f"Slug '{slug}' is already taken", details)


class ValidationError(ProxyLayerException):
    """Validation-related errors."""

    status_code = 400
    error = "Bad Request"

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


def error_envelope(exc: Exception, include_detail: bool = False) -> ErrorResponse:
    """Render any exception as the uniform error envelope.

    Unexpected exceptions become an "Internal Server Error"; their message is
    only exposed together with the detail block.
    """
    if isinstance(exc, ProxyLayerException):
        return exc.to_response(include_detail=include_detail)

    if not include_detail:
        return ErrorResponse(
            error="Internal Server Error",
            message="An unexpected error occurred",
            timestamp=utc_timestamp()
        )

    return ErrorResponse(
        error="Internal Server Error",
        message=str(exc) or type(exc).__name__,
        timestamp=utc_timestamp(),
        detail={
            "type": type(exc).__name__,
            "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__)
        }
    )
