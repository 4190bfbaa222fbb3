"""
Travel Log Backend — Error Normalizer
=======================================

What:  Maps every failure to an HTTP status and a JSON body.
How:   `normalize_error()` is a pure function; the FastAPI handlers
       registered by `register_exception_handlers()` only add the request ID
       and log.

Handler hierarchy:
    AuthError         → 401 Unauthorized
    UploadError       → 400 Bad Request
    ValidationError   → 422 Unprocessable Entity
    RateLimitError    → 429 Too Many Requests (+ Retry-After)
    PersistenceError  → 500 Internal Server Error (generic message)
    Exception         → 500 Internal Server Error (generic message)

Security: server errors never carry internal detail in the response; their
context and stack traces are logged server-side only.
"""

import logging
from typing import Any, Dict, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from travel_log.exceptions import (
    AuthError,
    PersistenceError,
    RateLimitError,
    TravelLogError,
    UploadError,
    ValidationError,
)
from travel_log.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."

# (exception type, status, error code, include details)
_CLASSIFICATION = (
    (AuthError, 401, "unauthorized", False),
    (UploadError, 400, "upload_error", True),
    (ValidationError, 422, "validation_error", True),
    (RateLimitError, 429, "rate_limit_exceeded", True),
    (PersistenceError, 500, "server_error", False),
)


def normalize_error(exc: BaseException) -> Tuple[int, Dict[str, Any]]:
    """Return (status_code, body) for any exception."""
    if isinstance(exc, TravelLogError):
        for exc_type, status, code, with_details in _CLASSIFICATION:
            if isinstance(exc, exc_type):
                body: Dict[str, Any] = {"error": code, "message": exc.message}
                if with_details and exc.context:
                    body["details"] = dict(exc.context)
                return status, body
        return 500, {"error": "server_error", "message": UNEXPECTED_ERROR_MESSAGE}
    return 500, {"error": "internal_server_error", "message": UNEXPECTED_ERROR_MESSAGE}


def register_exception_handlers(app: FastAPI) -> None:
    """Route every application error (and any stray exception) through the normalizer."""

    @app.exception_handler(TravelLogError)
    async def handle_app_error(request: Request, exc: TravelLogError):
        rid = request_id_var.get("")
        status, body = normalize_error(exc)
        body["request_id"] = rid

        if status >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)

        headers = {}
        if isinstance(exc, RateLimitError):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(status_code=status, content=body, headers=headers)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        status, body = normalize_error(exc)
        body["request_id"] = rid
        return JSONResponse(status_code=status, content=body)
