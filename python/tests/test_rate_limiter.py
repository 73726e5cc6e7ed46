"""Tests for per-user sliding-window limits (namegen/middleware/rate_limiter.py)."""

import asyncio

import pytest

from namegen.middleware.rate_limiter import UsageRateLimiter, WindowUsage


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def make_limiter(settings):
    def _make(redis_client=None, clock=None, **overrides):
        active = settings.model_copy(update=overrides)
        return UsageRateLimiter(settings_provider=lambda: active, redis_client=redis_client, clock=clock or FakeClock())
    return _make


def test_window_usage_build():
    usage = WindowUsage.build(limit=50, used=10)
    assert (usage.remaining, usage.exceeded, usage.percentage) == (40, False, 20.0)
    assert WindowUsage.build(limit=0, used=0).exceeded is True
    assert WindowUsage.build(limit=0, used=0).percentage == 100.0


def test_key_format():
    assert UsageRateLimiter.key("u1", "generation", "hourly") == "rate_limit:u1:generation:hourly"


async def test_limits_come_from_settings(make_limiter):
    limiter = make_limiter(max_generations_per_hour=5, max_generations_per_day=20)
    assert limiter.limits() == {"hourly": 5, "daily": 20}


async def test_acquire_until_hourly_limit(make_limiter):
    limiter = make_limiter(max_generations_per_hour=3)
    for expected_used in range(3):
        allowed, usage = await limiter.try_acquire("user-1")
        assert allowed
        assert usage["hourly"].used == expected_used

    allowed, usage = await limiter.try_acquire("user-1")
    assert not allowed
    assert usage["hourly"].exceeded
    # A rejected request consumes nothing
    status = await limiter.check_user_limits("user-1")
    assert status["hourly"].used == 3
    assert status["daily"].used == 3


async def test_users_are_counted_separately(make_limiter):
    limiter = make_limiter(max_generations_per_hour=1)
    assert (await limiter.try_acquire("user-1"))[0]
    assert (await limiter.try_acquire("user-2"))[0]
    assert not (await limiter.try_acquire("user-1"))[0]


async def test_window_slides(make_limiter):
    clock = FakeClock()
    limiter = make_limiter(clock=clock, max_generations_per_hour=2)
    await limiter.try_acquire("user-1")
    clock.now += 1800
    await limiter.try_acquire("user-1")
    assert not (await limiter.try_acquire("user-1"))[0]

    assert await limiter.retry_after("hourly", "user-1") == 1801

    clock.now += 1801
    allowed, usage = await limiter.try_acquire("user-1")
    assert allowed
    assert usage["hourly"].used == 1
    assert usage["daily"].used == 2


async def test_daily_window_applies_across_hours(make_limiter):
    clock = FakeClock()
    limiter = make_limiter(clock=clock, max_generations_per_hour=10, max_generations_per_day=2)
    await limiter.try_acquire("user-1")
    clock.now += 3601
    await limiter.try_acquire("user-1")
    clock.now += 3601

    allowed, usage = await limiter.try_acquire("user-1")
    assert not allowed
    assert usage["daily"].exceeded
    assert not usage["hourly"].exceeded


async def test_retry_after_defaults_to_full_window(make_limiter):
    limiter = make_limiter()
    assert await limiter.retry_after("hourly") == 3600
    assert await limiter.retry_after("daily", "nobody") == 86400


async def test_read_only_lookups_hold_no_memory(make_limiter):
    limiter = make_limiter()
    for i in range(1000):
        usage = await limiter.check_user_limits(f"stranger-{i}")
        assert usage["hourly"].used == 0
    await limiter.retry_after("hourly", "stranger-0")

    assert limiter.tracked_keys() == 0


async def test_expired_windows_are_forgotten(make_limiter):
    clock = FakeClock()
    limiter = make_limiter(clock=clock)
    await limiter.try_acquire("user-1")
    assert limiter.tracked_keys() == 2

    clock.now += 3601
    await limiter.check_user_limits("user-1")
    assert limiter.tracked_keys() == 1

    clock.now += 86400
    await limiter.check_user_limits("user-1")
    assert limiter.tracked_keys() == 0


async def test_concurrent_acquires_never_exceed_limit(make_limiter):
    limiter = make_limiter(max_generations_per_hour=50)
    results = await asyncio.gather(*(limiter.try_acquire("user-1") for _ in range(60)))
    assert sum(1 for allowed, _ in results if allowed) == 50


async def test_reset(make_limiter):
    limiter = make_limiter(max_generations_per_hour=1)
    await limiter.try_acquire("user-1")
    await limiter.try_acquire("user-2")
    limiter.reset("user-1")

    assert (await limiter.check_user_limits("user-1"))["hourly"].used == 0
    assert (await limiter.check_user_limits("user-2"))["hourly"].used == 1


# --- Redis backend ---

class ScriptedRedis:
    def __init__(self, result, oldest=None):
        self.result = result
        self.oldest = oldest
        self.eval_calls = []
        self.zrange_calls = []

    def eval(self, script, numkeys, *keys_and_args):
        self.eval_calls.append((numkeys, keys_and_args))
        return self.result

    def zcount(self, key, minimum, maximum):
        return 4

    def zrange(self, key, start, end, withscores=False):
        self.zrange_calls.append((key, start, end, withscores))
        return [] if self.oldest is None else [(b"member", self.oldest)]


class BrokenRedis:
    def eval(self, *args):
        raise ConnectionError("redis down")

    def zcount(self, *args):
        raise ConnectionError("redis down")

    def zrange(self, *args, **kwargs):
        raise ConnectionError("redis down")


async def test_redis_script_decides(make_limiter):
    redis = ScriptedRedis([0, 50, 51])
    limiter = make_limiter(redis_client=redis, max_generations_per_hour=50)

    allowed, usage = await limiter.try_acquire("user-1")

    assert not allowed
    assert usage["hourly"].used == 50
    assert usage["daily"].used == 51
    numkeys, keys_and_args = redis.eval_calls[0]
    assert numkeys == 2
    assert keys_and_args[:2] == ("rate_limit:user-1:generation:hourly", "rate_limit:user-1:generation:daily")
    assert keys_and_args[-4:] == (3600, 50, 86400, 200)


async def test_redis_counts(make_limiter):
    limiter = make_limiter(redis_client=ScriptedRedis([1, 0, 0]))
    usage = await limiter.check_user_limits("user-1")
    assert usage["hourly"].used == 4


async def test_redis_failure_falls_back_to_memory(make_limiter):
    limiter = make_limiter(redis_client=BrokenRedis(), max_generations_per_hour=1)

    assert (await limiter.try_acquire("user-1"))[0]
    assert not (await limiter.try_acquire("user-1"))[0]
    assert (await limiter.check_user_limits("user-1"))["hourly"].used == 1


async def test_redis_retry_after_reads_oldest_entry(make_limiter):
    clock = FakeClock()
    redis = ScriptedRedis([0, 50, 50], oldest=clock.now - 600)
    limiter = make_limiter(redis_client=redis, clock=clock)

    assert await limiter.retry_after("hourly", "user-1") == 3001
    assert redis.zrange_calls == [("rate_limit:user-1:generation:hourly", 0, 0, True)]

    redis.oldest = None
    assert await limiter.retry_after("hourly", "user-1") == 3600


async def test_redis_retry_after_falls_back_to_memory(make_limiter):
    clock = FakeClock()
    limiter = make_limiter(redis_client=BrokenRedis(), clock=clock)
    await limiter.try_acquire("user-1")
    clock.now += 100

    assert await limiter.retry_after("hourly", "user-1") == 3501
