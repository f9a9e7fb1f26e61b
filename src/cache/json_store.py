# src/cache/json_store.py - v1
"""File-based cache store (default CACHE_BACKEND=json).

Layout, one directory per key digest::

    <cache_root>/<digest>/artifact       copied build output (file or tree)
    <cache_root>/<digest>/manifest.json  key, artifact digest, build time

Entries are assembled in a temporary directory and renamed into place, so a
crashed or concurrent writer never leaves a half-written entry visible.
Lookups verify the manifest against the requested key and the artifact
digest; a mismatching entry is discarded and reported as a miss.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path

from envrestore.cache.base_cache_store import BaseCacheStore
from envrestore.cache.fingerprint import artifact_digest
from envrestore.cache.keys import CacheKey
from envrestore.cache.models import CacheEntry
from envrestore.core.errors import CacheWriteError
from envrestore.core.fsutil import remove_path

logger = logging.getLogger(__name__)

_MANIFEST = "manifest.json"
_ARTIFACT = "artifact"


class JsonCacheStore(BaseCacheStore):
    """Content-addressed cache on the local filesystem."""

    def __init__(self, cache_root: Path | str) -> None:
        super().__init__()
        self._root = Path(cache_root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def lookup(self, key: CacheKey) -> CacheEntry | None:
        entry_dir = self._root / key.digest
        manifest_path = entry_dir / _MANIFEST
        if not manifest_path.exists():
            return None
        entry = self._read_manifest(manifest_path)
        if entry is None or entry.key != key:
            logger.warning("Discarding cache entry %s: manifest mismatch", key)
            await asyncio.to_thread(remove_path, entry_dir)
            return None
        artifact = Path(entry.artifact_location)
        if not artifact.exists():
            logger.warning("Discarding cache entry %s: artifact missing", key)
            await asyncio.to_thread(remove_path, entry_dir)
            return None
        actual = await asyncio.to_thread(artifact_digest, artifact)
        if actual != entry.artifact_sha256:
            logger.warning("Discarding cache entry %s: artifact digest mismatch", key)
            await asyncio.to_thread(remove_path, entry_dir)
            return None
        return entry

    async def store(self, key: CacheKey, artifact: Path) -> CacheEntry:
        try:
            return await asyncio.to_thread(self._store_sync, key, artifact)
        except OSError as exc:
            raise CacheWriteError(f"Cannot write cache entry for {key}: {exc}") from exc

    async def delete(self, key: CacheKey) -> None:
        await asyncio.to_thread(remove_path, self._root / key.digest)

    async def clear(self) -> int:
        removed = 0
        for child in self._root.iterdir():
            if child.is_dir() and (child / _MANIFEST).exists():
                removed += 1
            await asyncio.to_thread(remove_path, child)
        logger.info("Cleared %d cache entries from %s", removed, self._root)
        return removed

    async def list_entries(self) -> list[CacheEntry]:
        entries: list[CacheEntry] = []
        for manifest_path in sorted(self._root.glob(f"*/{_MANIFEST}")):
            entry = self._read_manifest(manifest_path)
            if entry is not None:
                entries.append(entry)
        return entries

    def _store_sync(self, key: CacheKey, artifact: Path) -> CacheEntry:
        final_dir = self._root / key.digest
        tmp_dir = self._root / f".{key.digest}.{uuid.uuid4().hex}.tmp"
        try:
            tmp_dir.mkdir(parents=True)
            target = tmp_dir / _ARTIFACT
            if artifact.is_dir():
                shutil.copytree(artifact, target, symlinks=True)
            else:
                shutil.copy2(artifact, target)
            entry = CacheEntry(
                key=key,
                artifact_location=str(final_dir / _ARTIFACT),
                artifact_sha256=artifact_digest(target),
                built_at=datetime.now(timezone.utc),
            )
            (tmp_dir / _MANIFEST).write_text(
                entry.model_dump_json(indent=2), encoding="utf-8"
            )
            try:
                os.replace(tmp_dir, final_dir)
            except OSError:
                # Another writer renamed its copy in first; keep theirs.
                existing = self._read_manifest(final_dir / _MANIFEST)
                if existing is None:
                    raise
                return existing
            return entry
        finally:
            if tmp_dir.exists():
                remove_path(tmp_dir)

    def _read_manifest(self, path: Path) -> CacheEntry | None:
        try:
            return CacheEntry.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            logger.warning("Failed to read cache manifest %s: %s", path, e)
            return None
