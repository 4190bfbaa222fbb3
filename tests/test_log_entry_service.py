"""
Travel Log Backend — Log Entry Service Unit Tests
====================================================

What:  Tests for the persistence gateway (insert, list, error translation).
How:   Happy paths run against a real SQLite database; failure paths use a
       mock session whose commit raises.

What we test:
    ✅ Insert returns the stored record with generated id and created_at
    ✅ Listing returns entries in insertion order
    ✅ Store rejections become ValidationError (422)
    ✅ Other store failures and timeouts become PersistenceError (500)
"""

import asyncio
from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from travel_log.exceptions import PersistenceError, ValidationError
from travel_log.schemas.log_entry import LogEntryCreate
from travel_log.services.log_entry_service import LogEntryService


def make_command(**overrides) -> LogEntryCreate:
    data = {
        "title": "Paris",
        "latitude": 48.85,
        "longitude": 2.35,
        "visit_date": date(2024, 5, 1),
    }
    data.update(overrides)
    return LogEntryCreate(**data)


@pytest.fixture
def service():
    return LogEntryService(store_timeout=1.0, retry_max_attempts=2, retry_min_wait=0, retry_max_wait=0)


class TestCreateEntry:
    """Tests for inserting entries."""

    @pytest.mark.asyncio
    async def test_create_returns_stored_record(self, service, database):
        async with database.session_factory() as db:
            record = await service.create_entry(db, make_command(rating=4, comments="Louvre"))

        assert record.id is not None
        assert record.created_at is not None
        assert record.title == "Paris"
        assert record.rating == 4
        assert record.comments == "Louvre"
        assert record.image is None

    @pytest.mark.asyncio
    async def test_identical_submissions_create_two_entries(self, service, database):
        async with database.session_factory() as db:
            first = await service.create_entry(db, make_command())
            second = await service.create_entry(db, make_command())
            entries = await service.list_entries(db)

        assert first.id != second.id
        assert {e.id for e in entries} == {first.id, second.id}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc_type", [IntegrityError, DataError])
    async def test_store_rejection_is_validation_error(self, service, mock_db_session, exc_type):
        mock_db_session.commit.side_effect = exc_type("INSERT", {}, Exception("value too long"))

        with pytest.raises(ValidationError):
            await service.create_entry(mock_db_session, make_command())
        mock_db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_failure_is_persistence_error(self, service, mock_db_session):
        mock_db_session.commit.side_effect = OperationalError(
            "INSERT", {}, Exception("connection refused")
        )

        with pytest.raises(PersistenceError) as exc_info:
            await service.create_entry(mock_db_session, make_command())
        assert "connection refused" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_store_timeout_is_persistence_error(self, mock_db_session):
        service = LogEntryService(store_timeout=0.05)

        async def slow_commit():
            await asyncio.sleep(5)

        mock_db_session.commit = AsyncMock(side_effect=slow_commit)
        with pytest.raises(PersistenceError):
            await service.create_entry(mock_db_session, make_command())


class TestListEntries:
    """Tests for listing entries."""

    @pytest.mark.asyncio
    async def test_empty_store(self, service, database):
        async with database.session_factory() as db:
            assert await service.list_entries(db) == []

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, service, database):
        async with database.session_factory() as db:
            await service.create_entry(db, make_command())

            real_execute = db.execute
            calls = {"n": 0}

            async def flaky_execute(*args, **kwargs):
                calls["n"] += 1
                if calls["n"] == 1:
                    raise OperationalError("SELECT", {}, Exception("server closed the connection"))
                return await real_execute(*args, **kwargs)

            db.execute = flaky_execute
            entries = await service.list_entries(db)

        assert len(entries) == 1
        assert calls["n"] == 2

    @pytest.mark.asyncio
    async def test_persistent_failure_is_persistence_error(self, service, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError(
            "SELECT", {}, Exception("connection refused")
        )

        with pytest.raises(PersistenceError):
            await service.list_entries(mock_db_session)
        assert mock_db_session.execute.await_count == 2
