"""
Travel Log Backend — LogEntry SQLAlchemy Model
================================================

What:  ORM model for the `log_entries` table: one row per visited place.
Who:   Inserted by LogEntryService; read by the list endpoint.

Lifecycle:
    Created once by a successful submission. There is no update or delete
    path, so rows are immutable after insert.

Column notes:
    - id: generated in Python (uuid4) so the insert needs no RETURNING
    - latitude/longitude: range-checked before insert, never NULL
    - image: NULL, an absolute http(s) URL, or '/uploads/<generated-name>'
    - created_at: UTC, assigned on insert
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, Date, DateTime, Float, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from travel_log.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LogEntry(Base):
    """A single travel log entry."""

    __tablename__ = "log_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    visit_date: Mapped[date] = mapped_column(Date, nullable=False)

    image: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    # List endpoint returns rows in insertion order
    __table_args__ = (
        Index("idx_log_entries_created_at", "created_at"),
        CheckConstraint("latitude BETWEEN -90 AND 90", name="ck_log_entries_latitude"),
        CheckConstraint("longitude BETWEEN -180 AND 180", name="ck_log_entries_longitude"),
    )

    def __repr__(self) -> str:
        return f"<LogEntry(id={self.id}, title={self.title!r}, visit_date='{self.visit_date}')>"
