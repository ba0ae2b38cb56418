"""
Shared error handling for the Portfolio Access Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for Access Layer services."""

    http_status = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(AccessLayerException):
    """Entity or record absent."""

    http_status = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None,
                 code: str = "NOT_FOUND"):
        super().__init__(code, message, details)


class VersionNotFoundError(NotFoundError):
    """No record exists for the requested (key, version)."""

    def __init__(self, key: str, version: int):
        super().__init__(
            f"Version {version} not found for key {key}",
            {"key": key, "version": version},
            code="VERSION_NOT_FOUND",
        )


class ConflictError(AccessLayerException):
    """Uniqueness violation on a domain field or on the active row of a key."""

    http_status = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class StoreUnavailableError(AccessLayerException):
    """Durable backend unreachable or erroring."""

    http_status = 503

    def __init__(self, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class CacheFailureError(AccessLayerException):
    """Cache access failed. Never fatal: readers degrade to the store."""

    http_status = 500

    def __init__(self, message: str = "Cache failure", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_FAILURE", message, details)
