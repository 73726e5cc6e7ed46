"""
In-memory TTL cache and the provider response memoizer built on it.

Entries may vanish at any time (expiry, clear); callers treat a miss as
"compute again", never as an error.
"""

import hashlib
import logging
import time
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()


class CacheStore:
    """Thread-safe key-value cache with per-entry TTL (seconds; 0 = no expiry)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = Lock()
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None or self._expired(entry[1]):
                if entry is not None:
                    del self._data[key]
                self.misses += 1
                return default
            self.hits += 1
            return entry[0]

    def set(self, key: str, value: Any, ttl: float = 0) -> None:
        expires_at = self._clock() + ttl if ttl and ttl > 0 else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def remember(self, key: str, ttl: float, factory: Callable[[], Any]) -> Any:
        """Return the cached value, computing and storing it on a miss."""
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = factory()
            self.set(key, value, ttl)
        return value

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [k for k, (_, exp) in self._data.items() if k.startswith(prefix) and not self._expired(exp)]

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for k in doomed:
                del self._data[k]
        return len(doomed)

    def count_prefix(self, prefix: str) -> int:
        return len(self.keys(prefix))

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "entries": len(self.keys()),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total * 100, 2) if total else 0.0,
        }


class ResponseCache:
    """Memoizes provider responses per (model, normalized prompt, mode, deep thinking)."""

    PREFIX = "ai_response:"

    def __init__(self, store: CacheStore, ttl_seconds: int = 3600, enabled: bool = True):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled

    @classmethod
    def key(cls, model_id: str, prompt: str, mode: str, deep_thinking: bool) -> str:
        digest = hashlib.sha256(prompt.strip().lower().encode("utf-8")).hexdigest()
        return f"{cls.PREFIX}{model_id}:{digest}:{mode}:{int(bool(deep_thinking))}"

    def get(self, model_id: str, prompt: str, mode: str, deep_thinking: bool) -> Any:
        if not self.enabled:
            return None
        value = self.store.get(self.key(model_id, prompt, mode, deep_thinking))
        if value is not None:
            logger.debug("Response cache hit for %s", model_id)
        return value

    def put(self, model_id: str, prompt: str, mode: str, deep_thinking: bool, value: Any) -> None:
        if not self.enabled:
            return
        self.store.set(self.key(model_id, prompt, mode, deep_thinking), value, self.ttl_seconds)

    def clear(self, model_id: Optional[str] = None) -> int:
        prefix = f"{self.PREFIX}{model_id}:" if model_id else self.PREFIX
        return self.store.delete_prefix(prefix)
