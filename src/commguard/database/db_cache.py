"""
In-process TTL cache for hot database reads.

Used for data that every ingestion needs but operators change rarely, such
as an organization's active rule set. Writers invalidate the affected keys.
"""

import time
from typing import Any, Dict, Optional, Tuple

from commguard.util.logger import get_logger

logger = get_logger("database_cache")


class DatabaseQueryCache:
    """
    Maps cache keys to ``(stored_at, value)`` pairs.

    Entries older than ``ttl_seconds`` are dropped on access. A TTL of 0 or
    less disables caching: ``set`` becomes a no-op.
    """

    def __init__(self, ttl_seconds: int = 60):
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._ttl_seconds = ttl_seconds

    def get(self, cache_key: str) -> Optional[Any]:
        """The cached value, or None when missing or expired."""
        entry = self._entries.get(cache_key)
        if entry is None:
            return None

        stored_at, value = entry
        if time.monotonic() - stored_at >= self._ttl_seconds:
            self._entries.pop(cache_key, None)
            return None
        return value

    def set(self, cache_key: str, result: Any) -> None:
        if self._ttl_seconds > 0:
            self._entries[cache_key] = (time.monotonic(), result)

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """
        Drop entries whose key contains ``pattern`` (all entries when None).

        Returns:
            Number of entries dropped.
        """
        doomed = [key for key in self._entries if pattern is None or pattern in key]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("[CACHE] Invalidated %d entries (pattern=%r)", len(doomed), pattern)
        return len(doomed)

    def get_db_cache_stats(self) -> Dict[str, int]:
        return {"size": len(self._entries), "ttl_seconds": self._ttl_seconds}
