"""Persistent identifier cache."""

from animap.cache.store import CacheStore

__all__ = ["CacheStore"]
