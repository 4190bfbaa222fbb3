"""
Travel Log Backend — Log Entry Route Handlers
===============================================

What:  POST /api/logs (create, JSON or multipart) and GET /api/logs (list).
Why:   Keeps HTTP concerns (headers, peer address, body stream) at the edge
       so every submission stage can be tested without a server.
How:   Handlers are thin: the POST handler converts the request into an
       explicit `RawSubmission` and hands it to the submission pipeline;
       errors are formatted by the global exception handlers.
Who:   Mounted by create_app() under the "Logs" tag.

Endpoints:
    GET  /api/logs   every entry, oldest first; never throttled or authenticated
    POST /api/logs   one entry; 200 with the stored record, or an error body
                     (400 / 401 / 422 / 429 / 500) from the failing stage
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from travel_log.database import get_db_session
from travel_log.schemas.log_entry import ErrorResponse, LogEntryResponse
from travel_log.schemas.submission import RawSubmission
from travel_log.services.log_entry_service import LogEntryService
from travel_log.services.pipeline import SubmissionPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Logs"])


def get_pipeline(request: Request) -> SubmissionPipeline:
    """The pipeline built once in create_app(); shared by every request."""
    return request.app.state.pipeline


def get_entry_service(request: Request) -> LogEntryService:
    return request.app.state.pipeline.entries


@router.get(
    "/logs",
    response_model=List[LogEntryResponse],
    response_model_exclude_none=True,
    responses={500: {"description": "Store error", "model": ErrorResponse}},
    summary="List every log entry",
)
async def list_logs(
    db: AsyncSession = Depends(get_db_session),
    entries: LogEntryService = Depends(get_entry_service),
) -> List[LogEntryResponse]:
    """All stored entries, oldest first."""
    return await entries.list_entries(db)


@router.post(
    "/logs",
    response_model=LogEntryResponse,
    response_model_exclude_none=True,
    responses={
        400: {"description": "Malformed body or rejected image", "model": ErrorResponse},
        401: {"description": "Missing or wrong API key", "model": ErrorResponse},
        422: {"description": "Invalid field", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
        500: {"description": "Store error", "model": ErrorResponse},
    },
    summary="Create a log entry",
    description=(
        "Accepts application/json or multipart/form-data with fields title, "
        "comments, description, rating, latitude, longitude, visitDate and an "
        "optional image file (image/*, max 5MB). Authenticate with the X-API-KEY "
        "header or an apiKey field."
    ),
)
async def create_log(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
    pipeline: SubmissionPipeline = Depends(get_pipeline),
    db: AsyncSession = Depends(get_db_session),
) -> LogEntryResponse:
    """
    Create a log entry from a JSON or multipart body.

    The body is passed on as a stream, not read here: a request with a wrong
    X-API-KEY or over the rate limit is rejected before any of it is read.
    """
    raw = RawSubmission(
        api_key=x_api_key,
        peer_address=request.client.host if request.client else None,
        forwarded_for=request.headers.get("X-Forwarded-For"),
        content_type=request.headers.get("Content-Type", ""),
        # Why: the pipeline reads the body only after the cheap checks pass
        body=request.stream(),
    )
    return await pipeline.submit(raw, db)
