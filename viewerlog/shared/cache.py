"""In-process TTL cache.

Backed by cachetools.TTLCache. Each repository owns its own instances; there
is no cross-process sharing.
"""

from __future__ import annotations

from typing import Any

from cachetools import TTLCache  # type: ignore[import-untyped]

# Distinguishes "not cached" from a cached None
MISSING = object()


class AsyncTTLCache:
    """TTL cache returning ``MISSING`` for absent or expired keys."""

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)

    def get(self, key: str) -> Any:
        return self._cache.get(key, MISSING)

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = value

    @property
    def size(self) -> int:
        return len(self._cache)
