# src/cache/models.py - v1
"""Cache domain models: CacheEntry, CacheResolution."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from envrestore.cache.keys import CacheKey


class CacheEntry(BaseModel):
    """A stored artifact. Read-only after creation; removed only by clear."""

    key: CacheKey
    artifact_location: str
    artifact_sha256: str
    built_at: datetime


class CacheResolution(BaseModel):
    """What get_or_build() produced for one key.

    persisted is False when the build succeeded but the cache medium refused
    the write; the entry then points at the uncached build output.
    """

    entry: CacheEntry
    source: Literal["hit", "built"]
    persisted: bool = True
