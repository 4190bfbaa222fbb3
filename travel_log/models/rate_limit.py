"""
Travel Log Backend — Rate Limit Counter Model
===============================================

What:  The keyed counter store behind the write throttle.
How:   One row per client address. `expires_at` is the TTL: a row whose
       `expires_at` has passed counts as absent, and the upsert in
       RateLimiter resets it in the same statement that increments it.
       Expired rows are purged periodically; nothing deletes a live row.

Times are stored as epoch seconds (float) so the conditional reset compares
plain numbers on every backend.
"""

from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from travel_log.database import Base


class RateLimitCounter(Base):
    """Hit count for one client address within its current window."""

    __tablename__ = "rate_limit_counters"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    window_start: Mapped[float] = mapped_column(Float, nullable=False)
    expires_at: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        Index("idx_rate_limit_counters_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<RateLimitCounter(key={self.key!r}, count={self.count}, expires_at={self.expires_at})>"
