"""
Travel Log Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions, one per failure kind of the write
       pipeline.
How:   Each exception carries a human-readable message and an optional
       context dict. The error normalizer (error_handlers.py) maps each
       kind to an HTTP status and a JSON body.
Who:   Raised by services; caught by the global exception handlers.

Exception Hierarchy:
    TravelLogError (base)
    ├── AuthError          → 401 Unauthorized
    ├── RateLimitError     → 429 Too Many Requests
    ├── UploadError        → 400 Bad Request (bad MIME type, oversized file,
    │                                         malformed body framing)
    ├── ValidationError    → 422 Unprocessable Entity
    └── PersistenceError   → 500 Internal Server Error (generic message)
"""

from typing import Any, Dict, Optional


class TravelLogError(Exception):
    """
    Base exception for all Travel Log application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional detail. Returned as `details` for client errors,
                  logged only for server errors.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class AuthError(TravelLogError):
    """
    Raised when the submitted credential does not match the shared secret.

    HTTP: 401 Unauthorized
    """

    def __init__(
        self,
        message: str = "UnAuthorized",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitError(TravelLogError):
    """
    Raised when a client address already used its write for the current window.

    HTTP: 429 Too Many Requests, with a Retry-After header.
    """

    def __init__(
        self,
        retry_after: int = 10,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many requests. Please wait {retry_after} seconds before submitting again."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class UploadError(TravelLogError):
    """
    Raised when the request body cannot be ingested.

    Reasons:
        invalid_mime_type     file part is not declared as image/*
        file_too_large        file part exceeded the size ceiling
        too_many_files        more than one file part
        unexpected_file       file part in a field other than the upload field
        empty_file            file part carried no bytes
        field_too_large       a text part exceeded its size ceiling
        body_too_large        JSON body exceeded its size ceiling
        malformed_multipart   broken multipart framing or missing boundary
        malformed_json        body is not a JSON object
        unsupported_media_type  neither JSON nor multipart/form-data
        incomplete_body       the connection ended before the body did
        upload_timeout        reading the body took too long

    HTTP: 400 Bad Request
    """

    def __init__(
        self,
        reason: str,
        message: str = "The upload could not be processed",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["reason"] = reason
        super().__init__(message=message, context=ctx)
        self.reason = reason


class ValidationError(TravelLogError):
    """
    Raised when a field is missing, malformed or out of range, or when the
    store rejects the record shape.

    HTTP: 422 Unprocessable Entity

    Example response:
        {
            "error": "validation_error",
            "message": "Invalid latitude: 200. Must be between -90 and 90.",
            "details": {"field": "latitude", "value": 200}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = value
        super().__init__(message=message, context=ctx)
        self.field = field
        self.value = value


class PersistenceError(TravelLogError):
    """
    Raised when the store is unavailable, times out, or fails a write.

    HTTP: 500 Internal Server Error. The client sees a generic message; the
    context is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
