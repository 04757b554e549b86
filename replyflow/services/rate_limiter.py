"""
In-memory token bucket used to cap SmartAI replies per sender.

A denied request is not queued or retried; the caller decides what to
tell the user.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from replyflow.core.plan_limits import AI_RATE_LIMIT_PER_MINUTE, DISABLE_RATE_LIMIT


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit"""
    requests: int  # Number of requests allowed per window
    window_seconds: int  # Time window in seconds
    burst: Optional[int] = None  # Bucket capacity (defaults to requests)

    def __post_init__(self):
        if self.burst is None:
            self.burst = self.requests


@dataclass
class RateLimitState:
    tokens: float
    last_update: float


AI_REPLY_LIMIT = RateLimitConfig(requests=AI_RATE_LIMIT_PER_MINUTE, window_seconds=60)


class TokenBucketRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic, enabled: bool = not DISABLE_RATE_LIMIT):
        self._buckets: Dict[str, RateLimitState] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._cleanup_interval = 300
        self._last_cleanup = clock()
        self.enabled = enabled

    async def check(self, key: str, config: RateLimitConfig = AI_REPLY_LIMIT, cost: int = 1) -> bool:
        """Consume `cost` tokens from the bucket for `key`. Returns False if there are not enough."""
        if not self.enabled:
            return True

        async with self._lock:
            now = self._clock()
            if now - self._last_cleanup > self._cleanup_interval:
                self._cleanup(now, config)

            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = RateLimitState(tokens=config.burst, last_update=now)
                self._buckets[key] = bucket

            refill_rate = config.requests / config.window_seconds
            elapsed = now - bucket.last_update
            bucket.tokens = min(config.burst, bucket.tokens + elapsed * refill_rate)
            bucket.last_update = now

            if bucket.tokens >= cost:
                bucket.tokens -= cost
                return True
            return False

    def _cleanup(self, now: float, config: RateLimitConfig):
        """Drop buckets that have been idle long enough to be full again."""
        stale = [k for k, b in self._buckets.items() if now - b.last_update > config.window_seconds * 2]
        for key in stale:
            del self._buckets[key]
        self._last_cleanup = now

    def reset(self, key: Optional[str] = None):
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)


def ai_rate_limit_key(sender_id: str) -> str:
    return f"ai:{sender_id}"
