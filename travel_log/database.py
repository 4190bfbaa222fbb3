"""
Travel Log Backend — Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   `Database` wraps one async engine built from `Settings`. It is created
       by `create_app()` and stored on `app.state.database`; routes get a
       session per request through `get_db_session`.

Connection Pooling Strategy (PostgreSQL):
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use
    pool_recycle=3600: Recycles connections every hour

    SQLite (tests, local dev) uses SQLAlchemy's default pool for the dialect.
"""

import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from travel_log.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine; pool options only apply to server databases."""
    options = {"echo": settings.log_level == "DEBUG"}
    if not settings.is_sqlite:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(settings.database_url, **options)


class Database:
    """
    Owns the engine and session factory for one application instance.

    expire_on_commit=False keeps attributes readable after commit, so a
    freshly inserted row can be serialized without another round trip.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = build_engine(settings)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """
        Create missing tables, retrying while the database comes up.

        Only used when `auto_create_schema` is on; production runs Alembic.
        """
        # Import models so they register with Base.metadata
        from travel_log.models import log_entry, rate_limit  # noqa: F401

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type((OSError, ConnectionError)),
            stop=stop_after_attempt(self.settings.retry_max_attempts),
            wait=wait_exponential(
                multiplier=self.settings.retry_min_wait,
                max=self.settings.retry_max_wait,
            ) + wait_random(0, self.settings.retry_min_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready")

    async def ping(self) -> None:
        """Round trip a trivial query; raises on failure."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Yield a session; roll back on error, always close.

        Services commit their own writes explicitly so the outcome is known
        before a response is produced.
        """
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def dispose(self) -> None:
        """Close all pooled connections (application shutdown)."""
        await self.engine.dispose()


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Example usage in a route:
        @router.get("/logs")
        async def list_logs(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    database: Database = request.app.state.database
    async for session in database.session():
        yield session
