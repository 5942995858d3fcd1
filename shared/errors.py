"""
Shared error handling for the emoji gallery service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GalleryError(Exception):
    """Base exception for gallery services."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(GalleryError):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ExternalServiceError(GalleryError):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error",
                 details: Optional[Dict[str, Any]] = None, code: str = "EXTERNAL_SERVICE_ERROR"):
        self.service = service
        super().__init__(code, f"{service}: {message}", details)


class UpstreamPermanentError(ExternalServiceError):
    """Upstream explicitly rejected the request (forbidden / not found).

    Retrying will not help; identifier-scoped rejections are memoized.
    """

    def __init__(self, service: str, message: str = "Rejected by upstream",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(service, message, details, code="UPSTREAM_PERMANENT_ERROR")


class UpstreamTransientError(ExternalServiceError):
    """Timeouts, transport failures and unexpected upstream statuses."""

    def __init__(self, service: str, message: str = "Upstream unavailable",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(service, message, details, code="UPSTREAM_TRANSIENT_ERROR")
