"""
Shared error handling for the VID-Pipe verification service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


GENERIC_FAILURE_MESSAGE = "Verification failed"


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    code: str
    request_id: Optional[str] = None


class VidPipeException(Exception):
    """Base exception for VID-Pipe services."""

    http_status = 500
    expose_message = False

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response.

        Server-side failures never leak their message; only client errors
        carry the original text back to the caller.
        """
        return ErrorResponse(
            error=self.message if self.expose_message else GENERIC_FAILURE_MESSAGE,
            code=self.code,
            request_id=request_id,
        )


class InvalidInputError(VidPipeException):
    """Missing or malformed request fields."""

    http_status = 400
    expose_message = True

    def __init__(self, message: str = "Missing issuer or credential", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class StoreError(VidPipeException):
    """Durable store unreachable or write rejected."""

    def __init__(self, operation: str, message: str = "Durable store error", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("STORE_ERROR", f"{operation}: {message}", details)


class ComputeError(VidPipeException):
    """Compute oracle failed."""

    def __init__(self, message: str = "Verification compute failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("COMPUTE_ERROR", message, details)


class ComputeTimeoutError(ComputeError):
    """Compute oracle exceeded its time bound."""

    def __init__(self, timeout_seconds: float, details: Optional[Dict[str, Any]] = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Verification compute exceeded {timeout_seconds}s", details)
        self.code = "COMPUTE_TIMEOUT"


class InternalPipelineError(VidPipeException):
    """Unexpected fault while orchestrating a verification."""

    def __init__(self, message: str = "Internal verification pipeline failure", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)
