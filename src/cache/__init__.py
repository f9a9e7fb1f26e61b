"""Content-addressed build cache."""

from .base_cache_store import BaseCacheStore
from .cache_factory import create_cache_store
from .keys import CacheKey
from .models import CacheEntry, CacheResolution

__all__ = [
    "BaseCacheStore",
    "CacheEntry",
    "CacheKey",
    "CacheResolution",
    "create_cache_store",
]
