# vigil/services/cache_manager.py
"""
In-process caching: an LRU tier for stable entities (camera config)
and a TTL tier for volatile reads (lists, analytics, health).

Keys are "<namespace>:<identifier>". Each namespace is pinned to one tier,
so a key only ever lives in one place; invalidation still sweeps both tiers.
Both caches are guarded by an RLock so sync endpoints running in the
threadpool and the event loop can share them.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional

from vigil.config import settings
from vigil.utils.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()


class LRUCache:
    def __init__(self, maxsize: int):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.maxsize = maxsize
        self._data: OrderedDict = OrderedDict()
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            value = self._data.get(key, _MISSING)
            if value is _MISSING:
                self.misses += 1
                return default
            self._data.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            elif len(self._data) >= self.maxsize:
                self._data.popitem(last=False)
                self.evictions += 1
            self._data[key] = value

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, _MISSING) is not _MISSING

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if isinstance(k, str) and k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._data),
                "maxsize": self.maxsize,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
            }


class TTLCache:
    """
    Entries expire `ttl` seconds after they were set. Expired entries are
    never returned; they are purged lazily on access and before inserts.
    When still full after purging, the entry closest to expiry is evicted.
    """

    def __init__(self, maxsize: int, ttl: float, clock: Callable[[], float] = time.monotonic):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self.maxsize = maxsize
        self.ttl = ttl
        self._clock = clock
        self._data: dict = {}          # key -> (expires_at, value)
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return default
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._data[key]
                self.expirations += 1
                self.misses += 1
                return default
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        with self._lock:
            now = self._clock()
            if key not in self._data and len(self._data) >= self.maxsize:
                self._purge_expired(now)
                if len(self._data) >= self.maxsize:
                    soonest = min(self._data, key=lambda k: self._data[k][0])
                    del self._data[soonest]
                    self.evictions += 1
            self._data[key] = (now + ttl, value)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if isinstance(k, str) and k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def _purge_expired(self, now: float) -> int:
        expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
        for k in expired:
            del self._data[k]
        self.expirations += len(expired)
        return len(expired)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._data.get(key)
            return entry is not None and entry[0] > self._clock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._data)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._data),
                "maxsize": self.maxsize,
                "ttl": self.ttl,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "expirations": self.expirations,
            }


# Namespace → tier. Unknown namespaces go to the TTL tier.
NAMESPACE_TIERS = {
    "camera": "lru",
    "camera_list": "ttl",
    "events": "ttl",
    "analytics": "ttl",
    "health": "ttl",
}


def make_key(namespace: str, identifier: Any) -> str:
    if not namespace or ":" in namespace:
        raise ValueError(f"Invalid cache namespace: {namespace!r}")
    return f"{namespace}:{identifier}"


class CacheManager:
    def __init__(self, lru_size: int, ttl_size: int, ttl_seconds: float,
                 clock: Callable[[], float] = time.monotonic):
        self.lru = LRUCache(lru_size)
        self.ttl = TTLCache(ttl_size, ttl_seconds, clock=clock)

    def _tier(self, namespace: str):
        return self.lru if NAMESPACE_TIERS.get(namespace) == "lru" else self.ttl

    def get(self, namespace: str, identifier: Any, default: Any = None) -> Any:
        return self._tier(namespace).get(make_key(namespace, identifier), default)

    def set(self, namespace: str, identifier: Any, value: Any) -> None:
        self._tier(namespace).set(make_key(namespace, identifier), value)

    def get_or_load(self, namespace: str, identifier: Any, loader: Callable[[], Any]) -> Any:
        """Return the cached value, calling loader on a miss. None results are not cached."""
        value = self.get(namespace, identifier, _MISSING)
        if value is not _MISSING:
            return value
        value = loader()
        if value is not None:
            self.set(namespace, identifier, value)
        return value

    def invalidate(self, namespace: str, identifier: Any) -> None:
        key = make_key(namespace, identifier)
        self.lru.delete(key)
        self.ttl.delete(key)

    def invalidate_namespace(self, namespace: str) -> int:
        prefix = make_key(namespace, "")
        removed = self.lru.delete_prefix(prefix) + self.ttl.delete_prefix(prefix)
        if removed:
            logger.debug(f"[CACHE] Invalidated {removed} entries in '{namespace}'")
        return removed

    def clear(self) -> None:
        self.lru.clear()
        self.ttl.clear()
        logger.info("[CACHE] Cleared")

    def stats(self) -> dict:
        return {"lru": self.lru.stats(), "ttl": self.ttl.stats()}


cache = CacheManager(settings.CACHE_LRU_SIZE, settings.CACHE_TTL_SIZE, settings.CACHE_TTL_SECONDS)
