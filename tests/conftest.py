"""
Travel Log Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own SQLite file database and upload directory
       under pytest's tmp_path, so tests never share counters or files.

Fixture Hierarchy:
    Function-scoped:
    ├── settings:           Settings pointing at tmp_path (API key "test-secret")
    ├── database:           Database with tables created, disposed afterwards
    ├── file_service:       FileService over the tmp upload directory
    ├── mock_db_session:    AsyncMock session for pure unit tests
    ├── sample_image_bytes: Tiny JPEG payload
    ├── app:                create_app(settings) with tables created
    └── client:             HTTPX AsyncClient bound to `app` as peer 10.0.0.1
"""

import os
import tempfile
from typing import AsyncIterator, Dict, Iterable, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Environment for the module-level default app, set BEFORE any travel_log import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="travel_log_test_")
os.environ["API_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"

from travel_log.config import Settings  # noqa: E402
from travel_log.database import Database  # noqa: E402
from travel_log.services.file_service import FileService  # noqa: E402

TEST_API_KEY = "test-secret"
BOUNDARY = "----travellogboundary7MA4YWxk"


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

async def body_stream(*chunks: bytes) -> AsyncIterator[bytes]:
    """Async iterator over `chunks`, like Starlette's request.stream()."""
    for chunk in chunks:
        yield chunk


def multipart_body(
    fields: Optional[Dict[str, str]] = None,
    files: Iterable[Tuple[str, str, str, bytes]] = (),
    boundary: str = BOUNDARY,
    closed: bool = True,
) -> bytes:
    """
    Build a multipart/form-data body.

    files: (field name, filename, content type, content) tuples.
    closed=False leaves off the closing boundary (a truncated upload).
    """
    parts = []
    for name, value in (fields or {}).items():
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
            + value.encode("utf-8")
            + b"\r\n"
        )
    for name, filename, content_type, content in files:
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n".encode()
            + content
            + b"\r\n"
        )
    if closed:
        parts.append(f"--{boundary}--\r\n".encode())
    return b"".join(parts)


def multipart_content_type(boundary: str = BOUNDARY) -> str:
    return f"multipart/form-data; boundary={boundary}"


def paris_fields(**overrides) -> Dict[str, object]:
    """A valid JSON submission for Paris, without the credential."""
    fields = {
        "title": "Paris",
        "latitude": 48.85,
        "longitude": 2.35,
        "visitDate": "2024-05-01",
    }
    fields.update(overrides)
    return fields


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def settings(tmp_path) -> Settings:
    """
    Settings isolated to this test.

    Retry waits are zero so failure-path tests stay fast.
    """
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        api_key=TEST_API_KEY,
        auto_create_schema=False,
        retry_min_wait=0,
        retry_max_wait=0,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def database(settings):
    """A Database with every table created; disposed after the test."""
    db = Database(settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def file_service(settings) -> FileService:
    return FileService(settings.upload_dir, settings.upload_url_prefix)


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.commit.side_effect = IntegrityError(...)
        await service.create_entry(mock_db_session, command)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def sample_image_bytes() -> bytes:
    """Minimal JPEG: SOI marker + JFIF header + EOI marker."""
    return (
        b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
        b"\xff\xd9"
    )


@pytest_asyncio.fixture
async def app(settings):
    """
    A fresh application per test.

    ASGITransport does not run the lifespan, so tables are created here.
    """
    from travel_log.main import create_app

    application = create_app(settings)
    await application.state.database.create_all()
    yield application
    await application.state.database.dispose()


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX AsyncClient talking to `app` as peer 10.0.0.1.

    Usage:
        response = await client.post("/api/logs", json=..., headers=...)
    """
    transport = ASGITransport(app=app, client=("10.0.0.1", 40000))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def client_for(app, address: str) -> AsyncClient:
    """An extra client for `app` that connects from `address`."""
    transport = ASGITransport(app=app, client=(address, 40000))
    return AsyncClient(transport=transport, base_url="http://test")
