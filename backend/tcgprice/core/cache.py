"""
In-memory TTL cache for catalog search and listing results.
"""
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger()


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    ttl: float


def _normalize_param(value: Any) -> str:
    if value is None:
        return "all"
    if isinstance(value, bool):
        return "true" if value else "false"
    text = " ".join(str(value).split()).lower()
    return text or "all"


class ResultCache:
    """
    In-memory cache with TTL (time-to-live).

    Uses LRU eviction when cache size limit is reached. Entries are
    considered fresh while ``now - created_at < ttl``.
    """

    def __init__(
        self,
        max_size: int = 500,
        default_ttl: float = 4 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            max_size: Maximum number of items to cache.
            default_ttl: Default time-to-live in seconds.
            clock: Time source, overridable for tests.
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()

    @staticmethod
    def make_key(prefix: str = "search", **params: Any) -> str:
        """
        Build a deterministic key from query parameters.

        Parameter order never matters and values are normalized
        (trimmed, lower-cased, ``None``/empty collapsed to ``all``), so
        semantically identical requests map to the same entry.
        """
        parts = [f"{name}={_normalize_param(params[name])}" for name in sorted(params)]
        return f"{prefix}:" + "|".join(parts)

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Returns:
            Cached value or None if not found/expired.
        """
        entry = self._cache.get(key)
        if entry is None:
            return None

        age = self._clock() - entry.created_at
        if age >= entry.ttl:
            del self._cache[key]
            logger.debug("Cache entry expired", key=key, age_seconds=round(age, 1))
            return None

        self._cache.move_to_end(key)
        return entry.value

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry if it is still fresh."""
        if self.get(key) is None:
            return None
        return self._cache[key]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Set value in cache, overwriting any previous entry.

        Args:
            key: Cache key.
            value: Value to cache.
            ttl: Time-to-live in seconds. Uses default if None.
        """
        if ttl is None:
            ttl = self.default_ttl

        if key in self._cache:
            del self._cache[key]

        # Evict oldest if at capacity
        if len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)

        self._cache[key] = CacheEntry(value=value, created_at=self._clock(), ttl=ttl)

    def invalidate(self, key: str) -> None:
        """Delete a specific key from cache."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cached items."""
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
