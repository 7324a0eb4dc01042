"""Expiration sweeper runs and loop control."""

import asyncio
import datetime
from unittest.mock import AsyncMock

import pytest

from shortlink.link_service import LinkResolutionService
from shortlink.repositories import ClickEventRepository, ShortLinkRepository
from shortlink.sweeper import ExpirationSweeper


@pytest.mark.asyncio
async def test_run_once_deactivates_only_expired_links(
    link_service: LinkResolutionService, links: ShortLinkRepository, events: ClickEventRepository, clock
) -> None:
    soon = await link_service.create("https://example.com/soon", expires_at=clock.now + datetime.timedelta(hours=1))
    later = await link_service.create("https://example.com/later", expires_at=clock.now + datetime.timedelta(days=2))
    forever = await link_service.create("https://example.com/forever")
    await events.save(
        link_id=soon.id,
        occurred_at=clock.now,
        device_type="Desktop",
        browser="Chrome",
        operating_system="Linux",
    )

    clock.advance(hours=2)
    assert [link.code for link in await link_service.find_expired()] == [soon.code]

    sweeper = ExpirationSweeper(link_service)
    assert await sweeper.run_once() == 1

    assert (await links.find_by_code(soon.code)).active is False
    assert (await links.find_by_code(later.code)).active is True
    assert (await links.find_by_code(forever.code)).active is True
    # History is kept.
    assert await events.count_by_link(soon.id) == 1


@pytest.mark.asyncio
async def test_run_once_is_idempotent(link_service: LinkResolutionService, clock) -> None:
    await link_service.create("https://example.com/a", expires_at=clock.now + datetime.timedelta(minutes=1))
    await link_service.create("https://example.com/b", expires_at=clock.now + datetime.timedelta(minutes=1))
    clock.advance(minutes=5)
    sweeper = ExpirationSweeper(link_service)

    assert await sweeper.run_once() == 2
    assert await sweeper.run_once() == 0
    assert await link_service.find_expired() == []


@pytest.mark.asyncio
async def test_loop_survives_failing_runs(caplog: pytest.LogCaptureFixture) -> None:
    service = AsyncMock(spec=LinkResolutionService)
    outcomes = iter([RuntimeError("db down"), 3])

    async def deactivate_expired() -> int:
        outcome = next(outcomes, 0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    service.deactivate_expired = AsyncMock(side_effect=deactivate_expired)
    sweeper = ExpirationSweeper(service, interval_seconds=0.01)

    sweeper.start()
    assert sweeper.running
    await asyncio.sleep(0.1)
    await sweeper.stop()

    assert not sweeper.running
    assert service.deactivate_expired.await_count >= 2
    assert "Expiration sweep error: db down" in caplog.text


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(link_service: LinkResolutionService) -> None:
    sweeper = ExpirationSweeper(link_service)
    await sweeper.stop()
    assert not sweeper.running
