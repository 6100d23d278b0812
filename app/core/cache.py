"""Small in-process TTL cache for list query results."""

import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

_MISSING = object()


class TTLCache:
    """Entries live for `ttl_seconds` and are grouped by namespace.

    Writers call `invalidate(namespace)` after committing so readers never see
    a list older than the last write made through this process.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, Hashable], Tuple[float, Any]] = {}

    def get(self, namespace: str, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get((namespace, key))
        if entry is None:
            return default
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop((namespace, key), None)
            return default
        return value

    def set(self, namespace: str, key: Hashable, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[(namespace, key)] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, namespace: Optional[str] = None) -> None:
        if namespace is None:
            self._entries.clear()
            return
        for k in [k for k in self._entries if k[0] == namespace]:
            del self._entries[k]

    def contains(self, namespace: str, key: Hashable) -> bool:
        return self.get(namespace, key, _MISSING) is not _MISSING


SCHEDULES = "schedules"
STUDENTS = "students"
