# src/cache/cache_factory.py - v1
"""Factory for cache store instantiation."""

from __future__ import annotations

from envrestore.cache.base_cache_store import BaseCacheStore
from envrestore.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to the JSON backend.
    """
    backend = "json" if settings is None else settings.cache_backend
    cache_root = "~/.envrestore/cache" if settings is None else str(settings.cache_root)

    if backend == "json":
        from envrestore.cache.json_store import JsonCacheStore
        return JsonCacheStore(cache_root=cache_root)

    if backend == "sqlite":
        from envrestore.cache.sqlite_store import SqliteCacheStore
        return SqliteCacheStore(cache_root=cache_root)

    raise ValueError(f"Unsupported cache backend: {backend!r}")
