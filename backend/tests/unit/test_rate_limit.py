import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from anonchat.infra import rate_limit
from anonchat.infra.rate_limit import RateLimit, allow


@pytest.mark.asyncio
async def test_allow_counts_within_window():
    rule = RateLimit(limit=3, window_seconds=10)
    results = [await allow("find_partner", "sid-1", rule, now=1000.0) for _ in range(4)]
    assert results == [True, True, True, False]


@pytest.mark.asyncio
async def test_allow_resets_in_next_window():
    rule = RateLimit(limit=2, window_seconds=10)
    for _ in range(2):
        await allow("message", "sid-1", rule, now=1000.0)
    assert await allow("message", "sid-1", rule, now=1000.0) is False
    assert await allow("message", "sid-1", rule, now=1010.0) is True


@pytest.mark.asyncio
async def test_allow_is_keyed_per_actor():
    rule = RateLimit(limit=1, window_seconds=10)
    assert await allow("message", "sid-1", rule, now=1000.0) is True
    assert await allow("message", "sid-2", rule, now=1000.0) is True
    assert await allow("message", "sid-1", rule, now=1000.0) is False


@pytest.mark.asyncio
async def test_zero_limit_denies():
    assert await allow("message", "sid-1", RateLimit(limit=0)) is False


@pytest.mark.asyncio
async def test_redis_outage_fails_open(monkeypatch):
    class BrokenClient:
        def pipeline(self, transaction=True):
            raise RedisConnectionError("down")

    monkeypatch.setattr(rate_limit, "redis_client", BrokenClient())
    assert await allow("message", "sid-1", RateLimit(limit=1)) is True
