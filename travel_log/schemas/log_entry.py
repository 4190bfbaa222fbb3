"""
Travel Log Backend — Pydantic Request/Response Schemas
=======================================================

What:  The API contract for log entries and errors.
How:   Response models serialize with camelCase aliases (`visitDate`,
       `createdAt`) to match the map client; routes drop None fields.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


# ══════════════════════════════════════════════════════════════════════════
# Command: what the validator hands to the persistence layer
# ══════════════════════════════════════════════════════════════════════════


class LogEntryCreate(BaseModel):
    """
    A validated, ready-to-insert submission.

    Built only by FieldValidator, after presence, type and range checks, so
    every instance satisfies the LogEntry invariants.
    """

    title: str
    comments: Optional[str] = None
    description: Optional[str] = None
    rating: int = 0
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    visit_date: date
    image: Optional[str] = None

    model_config = {"frozen": True}


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class LogEntryResponse(BaseModel):
    """
    What:  A stored log entry exactly as persisted.
    Who:   Returned by POST /api/logs and, as list items, by GET /api/logs.
    """

    id: uuid.UUID = Field(description="Generated entry identifier")
    title: str
    comments: Optional[str] = None
    description: Optional[str] = None
    rating: int = 0
    latitude: float
    longitude: float
    visit_date: date = Field(description="Calendar date of the visit")
    image: Optional[str] = Field(
        default=None,
        description="Absolute image URL or '/uploads/<name>' for uploaded files",
    )
    created_at: datetime = Field(description="Insert time (UTC)")

    model_config = {
        "from_attributes": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class ErrorResponse(BaseModel):
    """
    Standardized error body for every failure.

    Example:
        {
            "error": "validation_error",
            "message": "Invalid latitude: 200. Must be between -90 and 90.",
            "details": {"field": "latitude", "value": 200},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Returned by GET /health."""
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Store connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
