# src/cache/sqlite_store.py - v1
"""SQLite-indexed cache store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3 for the index; artifacts live under
<cache_root>/artifacts/<digest>. The connection is only used from the event
loop thread; artifact copies run in worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from envrestore.cache.base_cache_store import BaseCacheStore
from envrestore.cache.fingerprint import artifact_digest
from envrestore.cache.keys import CacheKey
from envrestore.cache.models import CacheEntry
from envrestore.core.errors import CacheWriteError
from envrestore.core.fsutil import copy_into_place, remove_path

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    digest TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    version TEXT NOT NULL,
    integrity_hash TEXT NOT NULL,
    arch TEXT NOT NULL,
    artifact_location TEXT NOT NULL,
    artifact_sha256 TEXT NOT NULL,
    built_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_name_arch ON cache_entries(name, arch);
"""

_COLUMNS = (
    "name, version, integrity_hash, arch, artifact_location, artifact_sha256, built_at"
)


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store for large shared caches."""

    def __init__(self, cache_root: Path | str) -> None:
        super().__init__()
        self._root = Path(cache_root).expanduser()
        self._artifacts = self._root / "artifacts"
        self._artifacts.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._root / "envrestore_cache.db"))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def lookup(self, key: CacheKey) -> CacheEntry | None:
        cursor = self._conn.execute(
            f"SELECT {_COLUMNS} FROM cache_entries WHERE digest = ?", (key.digest,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        entry = _row_to_entry(row)
        artifact = Path(entry.artifact_location)
        if not artifact.exists() or (
            await asyncio.to_thread(artifact_digest, artifact) != entry.artifact_sha256
        ):
            logger.warning("Discarding cache entry %s: artifact missing or altered", key)
            await self.delete(key)
            return None
        return entry

    async def store(self, key: CacheKey, artifact: Path) -> CacheEntry:
        target = self._artifacts / key.digest
        try:
            await asyncio.to_thread(copy_into_place, artifact, target, replace=True)
            entry = CacheEntry(
                key=key,
                artifact_location=str(target),
                artifact_sha256=await asyncio.to_thread(artifact_digest, target),
                built_at=datetime.now(timezone.utc),
            )
            self._conn.execute(
                f"""INSERT OR REPLACE INTO cache_entries (digest, {_COLUMNS})
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    key.digest,
                    key.name,
                    key.version,
                    key.integrity_hash,
                    key.arch,
                    entry.artifact_location,
                    entry.artifact_sha256,
                    entry.built_at.isoformat(),
                ),
            )
            self._conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise CacheWriteError(f"Cannot write cache entry for {key}: {exc}") from exc
        return entry

    async def delete(self, key: CacheKey) -> None:
        self._conn.execute("DELETE FROM cache_entries WHERE digest = ?", (key.digest,))
        self._conn.commit()
        await asyncio.to_thread(remove_path, self._artifacts / key.digest)

    async def clear(self) -> int:
        removed = self._conn.execute("DELETE FROM cache_entries").rowcount
        self._conn.commit()
        for child in self._artifacts.iterdir():
            await asyncio.to_thread(remove_path, child)
        logger.info("Cleared %d cache entries from %s", removed, self._root)
        return removed

    async def list_entries(self) -> list[CacheEntry]:
        cursor = self._conn.execute(
            f"SELECT {_COLUMNS} FROM cache_entries ORDER BY name, version, arch"
        )
        return [_row_to_entry(row) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


def _row_to_entry(row: tuple[str, ...]) -> CacheEntry:
    name, version, integrity_hash, arch, location, sha256, built_at = row
    return CacheEntry(
        key=CacheKey(name=name, version=version, integrity_hash=integrity_hash, arch=arch),
        artifact_location=location,
        artifact_sha256=sha256,
        built_at=datetime.fromisoformat(built_at),
    )
