import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """Expiring key/value store for values that are slow to compute, such as the table row count."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[key] = (self.clock() + self.ttl_seconds, value)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
