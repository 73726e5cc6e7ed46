"""
Per-user generation limits.

Sliding-window request counts over an hour and a day. Checking and consuming
a slot is one atomic step across both windows: a single lock in memory, or a
single Lua script over sorted sets when a Redis client is configured (with
the in-memory path as fallback on Redis errors).
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from namegen.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

WINDOWS: Dict[str, int] = {
    "hourly": 3600,
    "daily": 86400,
}

# KEYS: one sorted set per window. ARGV: now, member, then (window_seconds, limit) per key.
# Returns {allowed, count_1, ..., count_n}; counts exclude the slot being taken.
_ACQUIRE_SCRIPT = """
local now = tonumber(ARGV[1])
local member = ARGV[2]
local counts = {}
local allowed = 1
for i, key in ipairs(KEYS) do
    local window = tonumber(ARGV[1 + i * 2])
    local limit = tonumber(ARGV[2 + i * 2])
    redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
    local count = redis.call('ZCARD', key)
    counts[i] = count
    if count >= limit then
        allowed = 0
    end
end
if allowed == 1 then
    for i, key in ipairs(KEYS) do
        local window = tonumber(ARGV[1 + i * 2])
        redis.call('ZADD', key, now, member)
        redis.call('EXPIRE', key, window)
    end
end
local result = {allowed}
for i = 1, #counts do
    result[i + 1] = counts[i]
end
return result
"""


@dataclass
class WindowUsage:
    limit: int
    used: int
    remaining: int
    exceeded: bool
    percentage: float

    @classmethod
    def build(cls, limit: int, used: int) -> "WindowUsage":
        return cls(
            limit=limit,
            used=used,
            remaining=max(0, limit - used),
            exceeded=used >= limit,
            percentage=round(used / limit * 100, 2) if limit > 0 else 100.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UsageRateLimiter:
    """Sliding-window per-user limiter with Redis backend and in-memory fallback."""

    def __init__(
        self,
        settings_provider: Callable[[], Settings] = get_settings,
        redis_client=None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings_provider = settings_provider
        self.redis_client = redis_client
        self._clock = clock
        self._lock = Lock()
        self._events: Dict[str, Deque[float]] = {}

        logger.info("Usage rate limiter initialized with Redis: %s", self.redis_client is not None)

    @staticmethod
    def key(user_id: str, action: str, window: str) -> str:
        return f"rate_limit:{user_id}:{action}:{window}"

    def limits(self) -> Dict[str, int]:
        settings = self._settings_provider()
        return {
            "hourly": settings.max_generations_per_hour,
            "daily": settings.max_generations_per_day,
        }

    # --- In-memory path ---

    def _prune(self, key: str, window_seconds: int, now: float) -> Deque[float]:
        """Drop expired events for ``key``; keys left empty are forgotten."""
        events = self._events.get(key)
        if events is None:
            return deque()
        cutoff = now - window_seconds
        while events and events[0] <= cutoff:
            events.popleft()
        if not events:
            del self._events[key]
        return events

    def _memory_counts(self, user_id: str, action: str, now: float) -> Dict[str, int]:
        with self._lock:
            return {
                window: len(self._prune(self.key(user_id, action, window), seconds, now))
                for window, seconds in WINDOWS.items()
            }

    def _memory_acquire(self, user_id: str, action: str, now: float, limits: Dict[str, int]) -> Tuple[bool, Dict[str, int]]:
        with self._lock:
            counts = {
                window: len(self._prune(self.key(user_id, action, window), seconds, now))
                for window, seconds in WINDOWS.items()
            }
            allowed = all(counts[w] < limits[w] for w in WINDOWS)
            if allowed:
                for window in WINDOWS:
                    self._events.setdefault(self.key(user_id, action, window), deque()).append(now)
            return allowed, counts

    def _memory_oldest(self, key: str, window_seconds: int, now: float) -> Optional[float]:
        with self._lock:
            events = self._prune(key, window_seconds, now)
            return events[0] if events else None

    def tracked_keys(self) -> int:
        """Number of per-user window keys held in memory."""
        with self._lock:
            return len(self._events)

    # --- Redis path ---

    async def _redis_acquire(self, user_id: str, action: str, now: float, limits: Dict[str, int]) -> Tuple[bool, Dict[str, int]]:
        keys = [self.key(user_id, action, w) for w in WINDOWS]
        args: List[Any] = [now, f"{now}:{uuid.uuid4().hex}"]
        for window, seconds in WINDOWS.items():
            args.extend([seconds, limits[window]])
        result = await asyncio.get_running_loop().run_in_executor(
            None, lambda: self.redis_client.eval(_ACQUIRE_SCRIPT, len(keys), *keys, *args)
        )
        allowed = bool(int(result[0]))
        counts = {window: int(count) for window, count in zip(WINDOWS, result[1:])}
        return allowed, counts

    async def _redis_counts(self, user_id: str, action: str, now: float) -> Dict[str, int]:
        loop = asyncio.get_running_loop()
        counts = {}
        for window, seconds in WINDOWS.items():
            counts[window] = int(await loop.run_in_executor(
                None, self.redis_client.zcount, self.key(user_id, action, window), now - seconds, "+inf"
            ))
        return counts

    async def _redis_oldest(self, key: str) -> Optional[float]:
        oldest = await asyncio.get_running_loop().run_in_executor(
            None, lambda: self.redis_client.zrange(key, 0, 0, withscores=True)
        )
        if oldest:
            return float(oldest[0][1])
        return None

    # --- Public API ---

    async def check_user_limits(self, user_id: str, action: str = "generation") -> Dict[str, WindowUsage]:
        """Current usage per window without consuming anything."""
        now = self._clock()
        limits = self.limits()
        counts = None
        if self.redis_client is not None:
            try:
                counts = await self._redis_counts(user_id, action, now)
            except Exception as e:
                logger.error("Redis rate limit check failed: %s. Falling back to memory.", e)
        if counts is None:
            counts = self._memory_counts(user_id, action, now)
        return {window: WindowUsage.build(limits[window], counts[window]) for window in WINDOWS}

    async def try_acquire(self, user_id: str, action: str = "generation") -> Tuple[bool, Dict[str, WindowUsage]]:
        """
        Atomically consume one slot in every window if all have room.

        Returns:
            (allowed, usage per window as seen before this request)
        """
        now = self._clock()
        limits = self.limits()
        result = None
        if self.redis_client is not None:
            try:
                result = await self._redis_acquire(user_id, action, now, limits)
            except Exception as e:
                logger.error("Redis rate limit acquire failed: %s. Falling back to memory.", e)
        if result is None:
            result = self._memory_acquire(user_id, action, now, limits)

        allowed, counts = result
        usage = {window: WindowUsage.build(limits[window], counts[window]) for window in WINDOWS}
        if not allowed:
            logger.warning(
                "Rate limit hit for user %s", user_id,
                extra={"user_id": user_id, "action": action,
                       "hourly_used": counts["hourly"], "daily_used": counts["daily"]},
            )
        return allowed, usage

    async def retry_after(self, window: str, user_id: Optional[str] = None, action: str = "generation") -> int:
        """Seconds until a slot frees up in ``window`` (the whole window when unknown)."""
        seconds = WINDOWS[window]
        if user_id is None:
            return seconds
        now = self._clock()
        key = self.key(user_id, action, window)
        oldest = None
        if self.redis_client is not None:
            try:
                oldest = await self._redis_oldest(key)
            except Exception as e:
                logger.error("Redis retry-after lookup failed: %s. Falling back to memory.", e)
                oldest = self._memory_oldest(key, seconds, now)
        else:
            oldest = self._memory_oldest(key, seconds, now)
        if oldest is None or oldest <= now - seconds:
            return seconds
        return max(1, int(oldest + seconds - now) + 1)

    def reset(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._events.clear()
            else:
                for key in [k for k in self._events if k.startswith(f"rate_limit:{user_id}:")]:
                    del self._events[key]
