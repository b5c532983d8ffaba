"""Result cache — rendered /validate bodies keyed by request.

Two expiry policies:
  - default TTL (5 minutes) for computed validation results
  - NO_EXPIRY for "cannot parse" verdicts, which depend only on the input

TTL entries sit in a size-bounded cachetools.TLRUCache with per-entry
time-to-use; NO_EXPIRY entries sit in a plain dict that is never evicted.
Both are guarded by one lock. Expired entries are purged by a periodic
sweep task (every 30s by default) and are never returned in between.

Optional Redis mirror: if REDIS_URL is set and reachable, writes are
mirrored there and local misses fall back to it. Redis failures degrade
to memory-only.
"""

import asyncio
import contextlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

NO_EXPIRY = 0

REDIS_KEY_PREFIX = "iban:"


@dataclass(frozen=True)
class CacheEntry:
    body: str
    ttl: int


def _time_to_use(_key: str, entry: CacheEntry, now: float) -> float:
    return now + entry.ttl


class ResultCache:
    """Process-wide cache of serialized validation results."""

    def __init__(
        self,
        default_ttl: int = 300,
        sweep_interval: float = 30,
        maxsize: int = 100_000,
        redis_url: str = "",
        timer: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._memory = TLRUCache(maxsize=maxsize, ttu=_time_to_use, timer=timer)
        # NO_EXPIRY entries live outside the size-bounded table
        self._permanent: dict[str, str] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None
        self._redis_url = redis_url
        self._redis = None
        self._available = False

    # ─────────────── Redis mirror ───────────────

    async def connect(self) -> bool:
        """Connect to Redis when configured. Returns True on success."""
        if not self._redis_url:
            return False
        try:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
            )
            await self._redis.ping()
            self._available = True
            return True
        except Exception as e:
            logger.warning("Redis connection failed — using in-memory cache only: %s", str(e)[:100])
            self._redis = None
            self._available = False
            return False

    async def disconnect(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self._available = False

    # ─────────────── Read / write ───────────────

    async def get(self, key: str) -> str | None:
        """Return the cached body or None on miss."""
        with self._lock:
            body = self._permanent.get(key)
            entry = self._memory.get(key) if body is None else None
        if body is not None:
            logger.debug("Cache HIT (permanent) | key=%s", key[:40])
            return body
        if entry is not None:
            logger.debug("Cache HIT (memory) | key=%s", key[:40])
            return entry.body

        if self._available and self._redis:
            try:
                body = await self._redis.get(REDIS_KEY_PREFIX + key)
                if body is not None:
                    logger.debug("Cache HIT (Redis) | key=%s", key[:40])
                    return body
            except Exception as e:
                logger.debug("Redis GET error: %s", str(e)[:100])

        return None

    async def set(self, key: str, body: str, ttl: int | None = None):
        """Store a rendered body. ``ttl=NO_EXPIRY`` keeps it until restart."""
        if ttl is None:
            ttl = self.default_ttl

        with self._lock:
            if ttl == NO_EXPIRY:
                self._memory.pop(key, None)
                self._permanent[key] = body
            else:
                self._permanent.pop(key, None)
                self._memory[key] = CacheEntry(body=body, ttl=ttl)
        logger.debug("Cache SET | key=%s | ttl=%s", key[:40], ttl if ttl != NO_EXPIRY else "none")

        if self._available and self._redis:
            try:
                if ttl == NO_EXPIRY:
                    await self._redis.set(REDIS_KEY_PREFIX + key, body)
                else:
                    await self._redis.setex(REDIS_KEY_PREFIX + key, ttl, body)
            except Exception as e:
                logger.debug("Redis SET error: %s", str(e)[:100])

    def __len__(self) -> int:
        with self._lock:
            return len(self._memory) + len(self._permanent)

    # ─────────────── Sweep ───────────────

    def sweep(self) -> int:
        """Drop expired entries now. Returns how many were removed."""
        with self._lock:
            expired = self._memory.expire()
        return len(expired)

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                logger.info("Cache sweep | removed=%d | remaining=%d", removed, len(self))

    def start_sweeper(self):
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop_sweeper(self):
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
