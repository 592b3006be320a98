from collections import OrderedDict

from redis.exceptions import ConnectionError as RedisConnectionError

from relay.core.ratelimit import MemoryRateLimiter, RedisRateLimiter, build_rate_limiter

from fakes import make_settings


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.counts = {}
        self.ttls = {}
        self.expire_calls = []

    def incr(self, key):
        if self.fail:
            raise RedisConnectionError("down")
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def expire(self, key, seconds):
        self.expire_calls.append((key, seconds))
        self.ttls[key] = seconds
        return True

    def ttl(self, key):
        return self.ttls.get(key, -1)


def test_memory_limiter_blocks_after_max_and_resets():
    clock = FakeClock()
    limiter = MemoryRateLimiter(5, 900, clock=clock)

    decisions = [limiter.hit("1.2.3.4") for _ in range(5)]
    assert all(d.allowed for d in decisions)
    assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0]

    clock.now = 100.0
    blocked = limiter.hit("1.2.3.4")
    assert blocked.allowed is False
    assert blocked.retry_after == 800

    assert limiter.hit("5.6.7.8").allowed is True

    clock.now = 900.0
    assert limiter.hit("1.2.3.4").allowed is True


def test_memory_limiter_reset_clears_counters():
    limiter = MemoryRateLimiter(1, 60, clock=FakeClock())
    limiter.hit("a")
    assert limiter.hit("a").allowed is False
    limiter.reset()
    assert limiter.hit("a").allowed is True


def test_redis_limiter_sets_expiry_once():
    client = FakeRedis()
    limiter = RedisRateLimiter(client, 2, 900)

    assert limiter.hit("ip").allowed is True
    assert limiter.hit("ip").allowed is True
    blocked = limiter.hit("ip")

    assert blocked.allowed is False
    assert blocked.retry_after == 900
    assert client.expire_calls == [("ratelimit:contact:ip", 900)]


def test_redis_limiter_repairs_missing_ttl():
    client = FakeRedis()
    client.counts["ratelimit:contact:ip"] = 5
    limiter = RedisRateLimiter(client, 5, 60)

    blocked = limiter.hit("ip")
    assert blocked.allowed is False
    assert blocked.retry_after == 60
    assert client.expire_calls == [("ratelimit:contact:ip", 60)]


def test_redis_limiter_fails_open():
    limiter = RedisRateLimiter(FakeRedis(fail=True), 1, 60)
    assert limiter.hit("ip").allowed is True
    assert limiter.hit("ip").allowed is True


def test_build_rate_limiter_picks_store():
    assert isinstance(build_rate_limiter(make_settings(redis_url=None)), MemoryRateLimiter)
    limiter = build_rate_limiter(make_settings(redis_url="redis://localhost:6379/0"))
    assert isinstance(limiter, RedisRateLimiter)
    assert limiter.max_hits == 5
    assert limiter.window_seconds == 900


class CountingWindows(OrderedDict):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.lookups = 0

    def __getitem__(self, key):
        self.lookups += 1
        return super().__getitem__(key)


def test_memory_limiter_drops_expired_windows_oldest_first():
    clock = FakeClock()
    limiter = MemoryRateLimiter(5, 900, clock=clock)
    limiter.hit("a")
    clock.now = 100.0
    limiter.hit("b")
    clock.now = 900.0
    limiter.hit("c")

    assert list(limiter._windows) == ["b", "c"]


def test_memory_limiter_hit_does_not_scan_live_callers():
    clock = FakeClock()
    limiter = MemoryRateLimiter(5, 900, clock=clock)
    limiter._windows = CountingWindows()
    for i in range(5000):
        clock.now = i * 0.01
        limiter.hit(f"10.0.{i // 256}.{i % 256}")

    limiter._windows.lookups = 0
    limiter.hit("192.0.2.1")

    assert limiter._windows.lookups <= 1
    assert len(limiter._windows) == 5001
