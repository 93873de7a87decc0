"""Bounded read-through caches shared across swap attempts.

Holds "token confirmed associated" and "token exists" facts. Entries expire
after a TTL and the oldest entry is evicted once the cache is full.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """Size-bounded mapping with per-entry expiry.

    Safe for concurrent use from asyncio tasks and threads. Example:
        cache = TTLCache(maxsize=1024, ttl=3600)
        cache.set("0.0.456858", True)
        cache.get("0.0.456858")  # True until the entry expires
    """

    def __init__(
        self,
        maxsize: int = 1024,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            maxsize: Maximum number of entries kept
            ttl: Seconds an entry stays valid (None = no expiry)
            clock: Monotonic time source
        """
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self.ttl = ttl
        self._clock = clock
        self._data: OrderedDict[K, tuple[V, Optional[float]]] = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if self._expired(expires_at):
                del self._data[key]
                return default
            self._data.move_to_end(key)
            return value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            expires_at = self._clock() + self.ttl if self.ttl is not None else None
            self._data[key] = (value, expires_at)
            self._data.move_to_end(key)
            while len(self._data) > self.maxsize:
                evicted, _ = self._data.popitem(last=False)
                logger.debug(f"Cache full, evicted {evicted}")

    def discard(self, key: K) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: object) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [k for k, (_, exp) in self._data.items() if exp is not None and now >= exp]
            for key in stale:
                del self._data[key]
            return len(self._data)
