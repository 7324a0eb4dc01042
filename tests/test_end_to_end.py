"""Create, resolve, click and aggregate through the wired ServiceManager."""

import asyncio

import pytest

from shortlink.dependencies import ServiceManager, get_service_manager
from shortlink.errors import LinkNotFoundError
from shortlink.schemas import ClientMetadata

IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)


@pytest.mark.asyncio
async def test_five_clicks_show_up_in_stats(manager: ServiceManager) -> None:
    link = await manager.link_service.create("https://example.com/path", owner_id="alice")
    assert link.click_count == 0

    for _ in range(5):
        assert await manager.link_service.resolve(link.code) == "https://example.com/path"
        await manager.pipeline.record(link.code, ClientMetadata(ip_address="198.51.100.4", user_agent=IPHONE))
    await manager.pipeline.join()

    stats = await manager.analytics.get_stats_for_owner(link.code, "alice")
    assert stats.total_clicks == 5
    assert [(s.category, s.count, s.percentage) for s in stats.device_stats] == [("Mobile", 5, 100.0)]
    assert [(s.category, s.count) for s in stats.browser_stats] == [("Safari", 5)]
    assert [(s.category, s.count) for s in stats.country_stats] == [("Unknown", 5)]
    assert (await manager.links.find_by_code(link.code)).click_count == 5


@pytest.mark.asyncio
async def test_concurrent_clicks_are_all_counted(manager: ServiceManager) -> None:
    link = await manager.link_service.create("https://example.com/burst")

    await asyncio.gather(
        *(manager.pipeline.record(link.code, ClientMetadata(user_agent=IPHONE)) for _ in range(30))
    )
    await manager.pipeline.join()

    assert (await manager.links.find_by_code(link.code)).click_count == 30
    assert await manager.analytics.get_total_clicks(link.code) == 30
    assert manager.pipeline.stats.failed == 0


@pytest.mark.asyncio
async def test_clicks_for_unknown_codes_leave_no_trace(manager: ServiceManager) -> None:
    await manager.pipeline.record("ghost", ClientMetadata())
    await manager.pipeline.join()

    assert manager.pipeline.stats.skipped == 1
    with pytest.raises(LinkNotFoundError):
        await manager.analytics.get_total_clicks("ghost")


@pytest.mark.asyncio
async def test_dependency_returns_initialized_manager(manager: ServiceManager) -> None:
    assert await get_service_manager() is manager
    assert manager.initialized
