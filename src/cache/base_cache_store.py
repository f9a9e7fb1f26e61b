# src/cache/base_cache_store.py - v1
"""Abstract cache store interface with per-key single-flight builds.

Concurrency model: get_or_build() keeps one in-flight future per key digest.
The first caller for a key registers the future before its first await, so
every concurrent caller for that key awaits the same lookup and build and
receives the same outcome, success or error. Different keys never wait on
each other; there is no store-wide lock.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

from envrestore.cache.fingerprint import artifact_digest
from envrestore.cache.keys import CacheKey
from envrestore.cache.models import CacheEntry, CacheResolution
from envrestore.core.errors import CacheWriteError

logger = logging.getLogger(__name__)

BuildFn = Callable[[], Awaitable[Path]]


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[CacheResolution]] = {}

    @abstractmethod
    async def lookup(self, key: CacheKey) -> CacheEntry | None:
        """Return the entry for *key*, or None on a miss."""

    @abstractmethod
    async def store(self, key: CacheKey, artifact: Path) -> CacheEntry:
        """Copy *artifact* into the store under *key*.

        Raises:
            CacheWriteError: The storage medium rejected the write.
        """

    @abstractmethod
    async def delete(self, key: CacheKey) -> None:
        """Remove one entry, if present."""

    @abstractmethod
    async def clear(self) -> int:
        """Remove every entry. Returns the number removed."""

    @abstractmethod
    async def list_entries(self) -> list[CacheEntry]:
        """List all cached entries."""

    async def get_or_build(self, key: CacheKey, build: BuildFn) -> CacheResolution:
        """Return a cached artifact for *key*, building it at most once.

        Errors raised by *build* propagate to every caller waiting on *key*.
        A lookup that raises is logged and handled as a miss. A
        CacheWriteError after a successful build is logged and the uncached
        build output is returned instead.
        """
        digest = key.digest
        pending = self._inflight.get(digest)
        if pending is not None:
            logger.debug("Waiting on in-flight build of %s", key)
            return await asyncio.shield(pending)

        future: asyncio.Future[CacheResolution] = asyncio.get_running_loop().create_future()
        self._inflight[digest] = future
        try:
            entry = await self._safe_lookup(key)
            if entry is not None:
                resolution = CacheResolution(entry=entry, source="hit")
            else:
                resolution = await self._build_and_store(key, build)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as exc:
            future.set_exception(exc)
            # Waiters re-raise it; mark it retrieved for the no-waiter case.
            future.exception()
            raise
        else:
            future.set_result(resolution)
            return resolution
        finally:
            del self._inflight[digest]

    async def _safe_lookup(self, key: CacheKey) -> CacheEntry | None:
        try:
            return await self.lookup(key)
        except Exception as exc:
            logger.warning("Cache lookup failed for %s, treating as a miss: %s", key, exc)
            return None

    async def _build_and_store(self, key: CacheKey, build: BuildFn) -> CacheResolution:
        artifact = await build()
        try:
            entry = await self.store(key, artifact)
        except CacheWriteError as exc:
            logger.warning("Cache write failed for %s, continuing uncached: %s", key, exc)
            entry = CacheEntry(
                key=key,
                artifact_location=str(artifact),
                artifact_sha256=await asyncio.to_thread(artifact_digest, artifact),
                built_at=datetime.now(timezone.utc),
            )
            return CacheResolution(entry=entry, source="built", persisted=False)
        return CacheResolution(entry=entry, source="built")

    def close(self) -> None:
        """Release backend resources. No-op by default."""
