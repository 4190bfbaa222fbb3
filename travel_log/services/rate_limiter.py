"""
Travel Log Backend — Store-Backed Write Throttle
==================================================

What:  At most `max_requests` accepted writes per client address per window
       (defaults: 1 per 10 seconds).
How:   One atomic upsert per hit against `rate_limit_counters`:

           INSERT (key, count=1, window_start=now, expires_at=now+window)
           ON CONFLICT (key) DO UPDATE SET
               count        = CASE WHEN expires_at <= now THEN 1   ELSE count + 1 END,
               window_start = CASE WHEN expires_at <= now THEN now ELSE window_start END,
               expires_at   = CASE WHEN expires_at <= now THEN now + window ELSE expires_at END
           RETURNING count, expires_at

       The store serializes concurrent upserts on the same key, so two
       near-simultaneous requests from one address always see different
       counts; only the one that gets count <= max_requests is accepted.
       An expired row is reset inside the same statement, which makes
       expiry passive. Expired rows are also purged every `purge_every` hits.

Client identity:
    The network-layer peer address. X-Forwarded-For is read only when the
    peer itself is one of the configured trusted proxies, and then only its
    right-most entry (the address that proxy saw).
"""

import asyncio
import logging
import math
import time
from typing import Callable, Iterable, Optional, Tuple

from sqlalchemy import case, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from travel_log.exceptions import PersistenceError, RateLimitError
from travel_log.models.rate_limit import RateLimitCounter

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def resolve_client_identity(
    peer_address: Optional[str],
    forwarded_for: Optional[str],
    trusted_proxies: Iterable[str] = (),
) -> str:
    """
    Return the address a request is throttled under.

    >>> resolve_client_identity("203.0.113.7", "1.2.3.4", [])
    '203.0.113.7'
    >>> resolve_client_identity("10.0.0.2", "1.2.3.4, 198.51.100.9", ["10.0.0.2"])
    '198.51.100.9'
    """
    if not peer_address:
        return UNKNOWN_CLIENT
    if forwarded_for and peer_address in set(trusted_proxies):
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        if hops:
            return hops[-1]
    return peer_address


class RateLimiter:
    """
    Fixed-window throttle over the keyed counter table.

    Uses its own sessions and commits each hit immediately, so a counted
    attempt stays counted whatever happens later in the request.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dialect: str,
        window: int = 10,
        max_requests: int = 1,
        store_timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
        purge_every: int = 500,
    ):
        if dialect not in _INSERTS:
            raise ValueError(f"Rate limiting is not supported on the '{dialect}' dialect")
        self._session_factory = session_factory
        self._insert = _INSERTS[dialect]
        self.window = window
        self.max_requests = max_requests
        self.store_timeout = store_timeout
        self._clock = clock
        self._purge_every = purge_every
        self._hits = 0

    async def hit(self, key: str) -> None:
        """
        Count one write attempt for `key`.

        Raises:
            RateLimitError: the window for `key` is already used up.
            PersistenceError: the counter store failed or timed out.
        """
        now = self._clock()
        try:
            count, expires_at = await asyncio.wait_for(
                self._increment(key, now), timeout=self.store_timeout
            )
        except asyncio.TimeoutError:
            logger.error("Rate limit store timed out after %.1fs", self.store_timeout)
            raise PersistenceError(context={"stage": "rate_limit", "error": "timeout"})
        except SQLAlchemyError as e:
            logger.error("Rate limit store failed: %s", str(e))
            raise PersistenceError(
                context={"stage": "rate_limit", "error_type": type(e).__name__}
            )

        if count > self.max_requests:
            retry_after = max(1, math.ceil(expires_at - now))
            logger.warning(
                "Rate limit exceeded for %s: %d attempts in %ds window",
                key,
                count,
                self.window,
            )
            raise RateLimitError(retry_after=retry_after, context={"client": key})

        self._hits += 1
        if self._hits % self._purge_every == 0:
            await self._purge_expired(now)

    async def _increment(self, key: str, now: float) -> Tuple[int, float]:
        expired = RateLimitCounter.expires_at <= now
        stmt = self._insert(RateLimitCounter).values(
            key=key,
            count=1,
            window_start=now,
            expires_at=now + self.window,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RateLimitCounter.key],
            set_={
                "count": case((expired, 1), else_=RateLimitCounter.count + 1),
                "window_start": case((expired, now), else_=RateLimitCounter.window_start),
                "expires_at": case(
                    (expired, now + self.window), else_=RateLimitCounter.expires_at
                ),
            },
        ).returning(RateLimitCounter.count, RateLimitCounter.expires_at)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.one()
            await session.commit()
        return row.count, row.expires_at

    async def _purge_expired(self, now: float) -> None:
        """Delete rows whose window has passed. Failures are logged only."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(RateLimitCounter).where(RateLimitCounter.expires_at <= now)
                )
                await session.commit()
            if result.rowcount:
                logger.debug("Purged %d expired rate limit counters", result.rowcount)
        except SQLAlchemyError as e:
            logger.warning("Failed to purge expired rate limit counters: %s", str(e))
