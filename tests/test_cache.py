"""ResolutionCache behaviour against a healthy and a failing Redis."""

import datetime
import logging
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from fakeredis import FakeAsyncRedis
from redis.exceptions import ConnectionError, ResponseError, TimeoutError

from shortlink.cache import ResolutionCache
from shortlink.schemas import ShortLinkData


def make_link(code: str = "abc123") -> ShortLinkData:
    return ShortLinkData(
        id=1,
        code=code,
        target="https://example.com/landing",
        created_at=datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc),
    )


@pytest.fixture
def broken_redis() -> AsyncMock:
    client = AsyncMock(spec=redis.Redis)
    client.get = AsyncMock(side_effect=ConnectionError("connection refused"))
    client.set = AsyncMock(side_effect=TimeoutError("timed out"))
    client.delete = AsyncMock(side_effect=ConnectionError("connection refused"))
    client.exists = AsyncMock(side_effect=ResponseError("WRONGTYPE"))
    client.scan_iter = lambda match=None: _failing_scan()
    return client


async def _failing_scan():
    raise ConnectionError("connection refused")
    yield  # pragma: no cover


@pytest.mark.asyncio
async def test_link_round_trip(cache: ResolutionCache) -> None:
    link = make_link()
    await cache.put_link(link)

    cached = await cache.get_link("abc123")
    assert cached == link
    assert cached.target == link.target
    assert cached.created_at.tzinfo is not None
    assert await cache.exists_link("abc123")


@pytest.mark.asyncio
async def test_link_entries_use_url_prefix_and_ttl(cache: ResolutionCache, redis_client: FakeAsyncRedis) -> None:
    await cache.put_link(make_link())

    assert await redis_client.exists("url:abc123")
    ttl = await redis_client.ttl("url:abc123")
    assert 0 < ttl <= 3600


@pytest.mark.asyncio
async def test_miss_returns_none(cache: ResolutionCache) -> None:
    assert await cache.get_link("missing") is None
    assert not await cache.exists_link("missing")


@pytest.mark.asyncio
async def test_delete(cache: ResolutionCache) -> None:
    await cache.put_link(make_link())

    assert await cache.delete_link("abc123") is True
    assert await cache.delete_link("abc123") is False
    assert await cache.get_link("abc123") is None


@pytest.mark.asyncio
async def test_unreadable_payload_is_a_miss(cache: ResolutionCache, redis_client: FakeAsyncRedis) -> None:
    await redis_client.set("url:abc123", '{"not": "a link"}')

    assert await cache.get_link("abc123") is None


@pytest.mark.asyncio
async def test_evict_prefix_only_touches_matching_keys(cache: ResolutionCache, redis_client: FakeAsyncRedis) -> None:
    await redis_client.set("stats:a", "1")
    await redis_client.set("stats:b", "2")
    await redis_client.set("url:a", "3")

    assert await cache.evict_prefix("stats:") == 2
    assert await redis_client.exists("url:a")
    assert not await redis_client.exists("stats:a")


@pytest.mark.asyncio
async def test_backend_failures_degrade_silently(broken_redis: AsyncMock, caplog: pytest.LogCaptureFixture) -> None:
    cache = ResolutionCache(broken_redis)

    with caplog.at_level(logging.WARNING, logger="shortlink.cache"):
        assert await cache.get_link("abc123") is None
        await cache.put_link(make_link())
        assert await cache.delete_link("abc123") is False
        assert await cache.exists_link("abc123") is False
        assert await cache.evict_prefix("stats:") == 0

    levels = {record.levelname for record in caplog.records}
    assert "WARNING" in levels
    # Non-connection errors are reported as errors.
    assert "ERROR" in levels
