import pytest

from replyflow.services.rate_limiter import RateLimitConfig, TokenBucketRateLimiter, ai_rate_limit_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
async def test_bucket_allows_burst_then_denies(clock):
    limiter = TokenBucketRateLimiter(clock=clock, enabled=True)
    config = RateLimitConfig(requests=3, window_seconds=60)

    allowed = [await limiter.check("k", config) for _ in range(4)]

    assert allowed == [True, True, True, False]


@pytest.mark.asyncio
async def test_bucket_refills_over_time(clock):
    limiter = TokenBucketRateLimiter(clock=clock, enabled=True)
    config = RateLimitConfig(requests=2, window_seconds=60)
    assert await limiter.check("k", config)
    assert await limiter.check("k", config)
    assert not await limiter.check("k", config)

    clock.now += 31  # a little over one token at 2 per minute

    assert await limiter.check("k", config)
    assert not await limiter.check("k", config)


@pytest.mark.asyncio
async def test_keys_are_independent(clock):
    limiter = TokenBucketRateLimiter(clock=clock, enabled=True)
    config = RateLimitConfig(requests=1, window_seconds=60)

    assert await limiter.check(ai_rate_limit_key("alice"), config)
    assert await limiter.check(ai_rate_limit_key("bob"), config)
    assert not await limiter.check(ai_rate_limit_key("alice"), config)


@pytest.mark.asyncio
async def test_disabled_limiter_always_allows(clock):
    limiter = TokenBucketRateLimiter(clock=clock, enabled=False)
    config = RateLimitConfig(requests=1, window_seconds=60)

    assert all([await limiter.check("k", config) for _ in range(5)])


@pytest.mark.asyncio
async def test_reset_refills_bucket(clock):
    limiter = TokenBucketRateLimiter(clock=clock, enabled=True)
    config = RateLimitConfig(requests=1, window_seconds=60)
    await limiter.check("k", config)

    limiter.reset("k")

    assert await limiter.check("k", config)


@pytest.mark.asyncio
async def test_idle_buckets_are_cleaned_up(clock):
    limiter = TokenBucketRateLimiter(clock=clock, enabled=True)
    config = RateLimitConfig(requests=1, window_seconds=60)
    await limiter.check("old", config)

    clock.now += 600
    await limiter.check("new", config)

    assert "old" not in limiter._buckets
    assert "new" in limiter._buckets
