# per-user cooldown gate in front of reflection generation
# one request per user per window, checked before any model call or write
#
# InMemoryRateLimiter - single process, check-and-set under one asyncio lock
# MongoRateLimiter    - shared across instances, atomic conditional upsert on a unique user_id index

import asyncio
import logging
import math
import time
from typing import Callable, Optional

from pymongo.errors import DuplicateKeyError

from journal_api.config import settings
from journal_api.errors import RateLimited

logger = logging.getLogger(__name__)

# prune expired keys once the in-memory map grows past this
MAX_TRACKED_USERS = 10000


def seconds_remaining(window_seconds: float, elapsed: float) -> int:
    return max(1, math.ceil(window_seconds - elapsed))


class InMemoryRateLimiter:
    """user_id -> time of last accepted request"""

    def __init__(self, window_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds if window_seconds is not None else settings.RATE_LIMIT_WINDOW_SECONDS
        self._clock = clock
        self._last_request: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def hit(self, user_id: str) -> None:
        """accept the request or raise RateLimited with the seconds left"""
        async with self._lock:
            now = self._clock()
            last = self._last_request.get(user_id)
            if last is not None and now - last < self.window_seconds:
                remaining = seconds_remaining(self.window_seconds, now - last)
                logger.info(f"Rate limit hit for user {user_id}: {remaining}s remaining")
                raise RateLimited(remaining)
            self._last_request[user_id] = now
            if len(self._last_request) > MAX_TRACKED_USERS:
                self._prune(now)

    def _prune(self, now: float) -> None:
        expired = [uid for uid, ts in self._last_request.items() if now - ts >= self.window_seconds]
        for uid in expired:
            del self._last_request[uid]


class MongoRateLimiter:
    """cooldown stored in the rate_limits collection.

    the update only matches when the previous request is outside the window.
    when it does not match, the upsert collides with the unique user_id index
    and the request is rejected.
    """

    def __init__(self, db, window_seconds: Optional[float] = None, clock: Callable[[], float] = time.time):
        self.db = db
        self.window_seconds = window_seconds if window_seconds is not None else settings.RATE_LIMIT_WINDOW_SECONDS
        self._clock = clock

    async def hit(self, user_id: str) -> None:
        now = self._clock()
        try:
            await self.db.rate_limits.find_one_and_update(
                {"user_id": user_id, "last_request_at": {"$lte": now - self.window_seconds}},
                {"$set": {"last_request_at": now}},
                upsert=True,
            )
            return
        except DuplicateKeyError:
            pass

        doc = await self.db.rate_limits.find_one({"user_id": user_id})
        last = doc.get("last_request_at", now) if doc else now
        remaining = seconds_remaining(self.window_seconds, now - last)
        logger.info(f"Rate limit hit for user {user_id}: {remaining}s remaining")
        raise RateLimited(remaining)


# process-wide limiter for the default "memory" backend
memory_rate_limiter = InMemoryRateLimiter()
