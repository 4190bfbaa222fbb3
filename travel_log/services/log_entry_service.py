"""
Travel Log Backend — Log Entry Persistence
============================================

What:  Inserts validated commands as LogEntry rows and lists stored rows.
How:   One fresh INSERT per submission, committed before the response is
       built; the inserted row (with its generated id and created_at) is
       returned as-is. Reads are retried with tenacity on transient
       connection errors; inserts are never retried.

Error Translation:
    IntegrityError / DataError  → ValidationError (422): the store rejected
                                  the record shape
    any other SQLAlchemyError   → PersistenceError (500)
    store round trip timeout    → PersistenceError (500)
"""

import asyncio
import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import DataError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from travel_log.exceptions import PersistenceError, ValidationError
from travel_log.models.log_entry import LogEntry
from travel_log.schemas.log_entry import LogEntryCreate, LogEntryResponse

logger = logging.getLogger(__name__)


class LogEntryService:
    """Persistence gateway for log entries."""

    def __init__(
        self,
        store_timeout: float = 5.0,
        retry_max_attempts: int = 3,
        retry_min_wait: float = 1,
        retry_max_wait: float = 5,
    ):
        self.store_timeout = store_timeout
        self.retry_max_attempts = retry_max_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait

    async def create_entry(self, db: AsyncSession, command: LogEntryCreate) -> LogEntryResponse:
        """
        Insert one entry and return the stored record.

        Raises:
            ValidationError: the store rejected the record shape.
            PersistenceError: the store failed or timed out.
        """
        entry = LogEntry(**command.model_dump())
        db.add(entry)
        try:
            await asyncio.wait_for(db.commit(), timeout=self.store_timeout)
        except asyncio.TimeoutError:
            logger.error("Insert timed out after %.1fs", self.store_timeout)
            raise PersistenceError(context={"stage": "insert", "error": "timeout"})
        except (IntegrityError, DataError) as e:
            await db.rollback()
            logger.warning("Store rejected log entry: %s", str(e.orig))
            raise ValidationError(
                message="The entry was rejected by the store. Check field lengths and types.",
                context={"error_type": type(e).__name__},
            )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Insert failed: %s", str(e), exc_info=True)
            raise PersistenceError(
                context={"stage": "insert", "error_type": type(e).__name__}
            )

        logger.info("Created log entry %s (%s)", entry.id, entry.title)
        return LogEntryResponse.model_validate(entry)

    async def list_entries(self, db: AsyncSession) -> List[LogEntryResponse]:
        """Every stored entry in insertion order."""
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type((OperationalError, asyncio.TimeoutError)),
                stop=stop_after_attempt(self.retry_max_attempts),
                wait=wait_exponential(
                    multiplier=self.retry_min_wait,
                    max=self.retry_max_wait,
                ) + wait_random(0, self.retry_min_wait),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    try:
                        result = await asyncio.wait_for(
                            db.execute(
                                select(LogEntry).order_by(LogEntry.created_at, LogEntry.id)
                            ),
                            timeout=self.store_timeout,
                        )
                    except OperationalError:
                        await db.rollback()
                        raise
            entries = result.scalars().all()
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            logger.error("Listing log entries failed: %s", str(e), exc_info=True)
            raise PersistenceError(
                message="Could not retrieve log entries. Please try again.",
                context={"stage": "list", "error_type": type(e).__name__},
            )

        return [LogEntryResponse.model_validate(entry) for entry in entries]
