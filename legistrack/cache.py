"""In-memory TTL cache used by the service layer."""

import time
from typing import Any, Callable, Optional

import structlog

log = structlog.get_logger()


class TTLCache:
    """Key/value store whose entries expire after ``ttl`` seconds.

    There is no size bound; entries are only dropped when they are read after
    expiry or when the cache is cleared.
    """

    def __init__(self, ttl: float, name: str = "cache", clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any):
        self._entries[key] = (value, self._clock())

    def get_or_fetch(self, key: str, fetch: Callable[[], Any]) -> Any:
        """Return the cached value for ``key`` or call ``fetch`` and cache its result."""
        cached = self.get(key)
        if cached is not None:
            log.debug("Using cached data", cache=self.name, key=key)
            return cached

        log.debug("Fetching fresh data", cache=self.name, key=key)
        value = fetch()
        self.set(key, value)
        return value

    def invalidate(self, key: str):
        self._entries.pop(key, None)

    def clear(self):
        self._entries.clear()
        log.info("Cache cleared", cache=self.name)
