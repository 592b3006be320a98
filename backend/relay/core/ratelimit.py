import logging
import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple

from redis import Redis
from redis.exceptions import RedisError

from relay.core.settings import Settings

log = logging.getLogger("uvicorn.error")


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter(Protocol):
    def hit(self, key: str) -> RateLimitDecision: ...


class MemoryRateLimiter:
    """
    Fixed-window counter per caller key, kept in process memory.
    A window opens on the first hit for a key and lasts `window_seconds`;
    once it has elapsed the next hit starts a fresh window.
    """

    def __init__(self, max_hits: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # ordered by window start, oldest first
        self._windows: "OrderedDict[str, Tuple[float, int]]" = OrderedDict()

    def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            self._prune(now)
            # any window still stored is live; new ones go to the back
            started, count = self._windows.get(key, (now, 0))
            count += 1
            self._windows[key] = (started, count)

        if count > self.max_hits:
            retry_after = max(1, math.ceil(started + self.window_seconds - now))
            return RateLimitDecision(False, 0, retry_after)
        return RateLimitDecision(True, self.max_hits - count)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _prune(self, now: float) -> None:
        # caller holds the lock; stops at the first live window
        while self._windows:
            oldest = next(iter(self._windows))
            if now - self._windows[oldest][0] < self.window_seconds:
                break
            self._windows.popitem(last=False)


class RedisRateLimiter:
    """Same fixed window, shared across workers through Redis INCR/EXPIRE."""

    def __init__(self, client: Redis, max_hits: int, window_seconds: int, prefix: str = "ratelimit:contact:"):
        self.client = client
        self.max_hits = max_hits
        self.window_seconds = window_seconds
        self.prefix = prefix

    def hit(self, key: str) -> RateLimitDecision:
        redis_key = f"{self.prefix}{key}"
        try:
            count = int(self.client.incr(redis_key))
            if count == 1:
                self.client.expire(redis_key, self.window_seconds)
            if count <= self.max_hits:
                return RateLimitDecision(True, self.max_hits - count)
            ttl = int(self.client.ttl(redis_key))
            if ttl < 0:
                # key lost its expiry (e.g. crash between INCR and EXPIRE)
                self.client.expire(redis_key, self.window_seconds)
                ttl = self.window_seconds
            return RateLimitDecision(False, 0, max(1, ttl))
        except RedisError as exc:
            log.warning(f"[ratelimit] Redis unavailable for {redis_key}: {exc}")
            return RateLimitDecision(True, self.max_hits)


def build_rate_limiter(cfg: Settings, clock: Optional[Callable[[], float]] = None) -> RateLimiter:
    if cfg.redis_url:
        client = Redis.from_url(cfg.redis_url, decode_responses=False)
        log.info("[ratelimit] using Redis store")
        return RedisRateLimiter(client, cfg.rate_limit_max, cfg.rate_limit_window_seconds)
    return MemoryRateLimiter(cfg.rate_limit_max, cfg.rate_limit_window_seconds, clock=clock or time.monotonic)
