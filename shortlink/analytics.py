"""Analytics Aggregator - cached click statistics per short link.

Flow Diagram — get_stats()
==========================
::
    ┌─────────────┐
    │ get_stats() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache lookup │
    │ stats:{code} │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Resolve │  │ Return  │
│ link    │  │ cached  │
│ (404?)  │  │ snapshot│
└────┬────┘  └─────────┘
     ▼
┌─────────────────────┐
│ total, daily series, │
│ device / browser /   │
│ country / referrer   │
│ breakdowns           │
└────┬────────────────┘
     ▼
┌─────────┐
│ Cache   │
│ (TTL)   │
└─────────┘

Key Behaviours
===============
- percentage = count * 100 / total, and 0.0 for every entry when total is 0.
- Breakdowns are ordered by count descending, ties by category name.
- The daily series covers the last N calendar days (UTC), today included,
  with zero-filled days.
- ``refresh()`` invalidates and recomputes; ``clear_all()`` only touches the
  cache, never recorded events.
"""

import datetime
import logging

from prometheus_client import Counter

from shortlink.cache import ResolutionCache
from shortlink.clock import Clock, ensure_utc, utcnow
from shortlink.config import Settings
from shortlink.enums import CacheStatus
from shortlink.errors import InvalidInputError
from shortlink.link_service import LinkResolutionService
from shortlink.repositories import ClickEventRepository
from shortlink.schemas import CategoryStats, ClickStatsResponse, DailyClickStats

__all__ = ["AnalyticsAggregator", "STATS_KEY_PREFIX", "build_breakdown"]

logger = logging.getLogger(__name__)

STATS_KEY_PREFIX = "stats:"

ANALYTICS_REQUESTS_TOTAL = Counter(
    "shortlink_analytics_requests_total",
    "Statistics requests by cache outcome",
    ["cache_hit"],
)


def build_breakdown(rows: list[tuple[str, int]], total: int) -> list[CategoryStats]:
    return [
        CategoryStats(
            category=category,
            count=count,
            percentage=(count * 100.0 / total) if total > 0 else 0.0,
        )
        for category, count in rows
    ]


class AnalyticsAggregator:
    def __init__(
        self,
        events: ClickEventRepository,
        cache: ResolutionCache,
        link_service: LinkResolutionService,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self._events = events
        self._cache = cache
        self._link_service = link_service
        self._ttl = settings.ANALYTICS_CACHE_TTL_SECONDS
        self._default_days = settings.ANALYTICS_DEFAULT_DAYS
        self._clock = clock

    @staticmethod
    def _key(code: str) -> str:
        return f"{STATS_KEY_PREFIX}{code}"

    async def get_stats(self, code: str) -> ClickStatsResponse:
        cached = await self._cache.get(self._key(code), ClickStatsResponse)
        if cached is not None:
            ANALYTICS_REQUESTS_TOTAL.labels(cache_hit=CacheStatus.HIT).inc()
            return cached

        ANALYTICS_REQUESTS_TOTAL.labels(cache_hit=CacheStatus.MISS).inc()
        stats = await self._compute(code)
        await self._cache.put(self._key(code), stats, self._ttl)
        return stats

    async def get_stats_for_owner(self, code: str, owner_id: str | None) -> ClickStatsResponse:
        await self._link_service.validate_ownership(code, owner_id)
        return await self.get_stats(code)

    async def refresh(self, code: str) -> ClickStatsResponse:
        await self._cache.delete(self._key(code))
        logger.info(f"Refreshing statistics for {code}")
        return await self.get_stats(code)

    async def clear_all(self) -> int:
        return await self._cache.evict_prefix(STATS_KEY_PREFIX)

    async def get_total_clicks(self, code: str) -> int:
        link = await self._link_service.get_link(code)
        return await self._events.count_by_link(link.id)

    async def get_click_count(self, code: str, start: datetime.datetime, end: datetime.datetime) -> int:
        link = await self._link_service.get_link(code)
        return await self._events.count_by_link_and_range(link.id, ensure_utc(start), ensure_utc(end))

    async def get_daily_stats(
        self,
        code: str,
        days: int | None = None,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> list[DailyClickStats]:
        """Daily series for the last ``days`` days, or for ``[start, end)``.

        A missing ``end`` means the end of today; a missing ``start`` means
        ``days`` (or the default window) before ``end``. Naive bounds are UTC.
        """
        link = await self._link_service.get_link(code)
        days = days or self._default_days
        if days < 1:
            raise InvalidInputError("days must be >= 1")
        if start is None and end is None:
            start, end = self._window(days)
        else:
            end = ensure_utc(end) if end is not None else self._window(1)[1]
            start = ensure_utc(start) if start is not None else end - datetime.timedelta(days=days)
            if start >= end:
                raise InvalidInputError("start must be before end")
        return await self._daily_series(link.id, start, end)

    def _window(self, days: int) -> tuple[datetime.datetime, datetime.datetime]:
        today = self._clock().date()
        first_day = today - datetime.timedelta(days=days - 1)
        start = datetime.datetime.combine(first_day, datetime.time.min, tzinfo=datetime.timezone.utc)
        end = datetime.datetime.combine(
            today + datetime.timedelta(days=1), datetime.time.min, tzinfo=datetime.timezone.utc
        )
        return start, end

    async def _daily_series(
        self, link_id: int, start: datetime.datetime, end: datetime.datetime
    ) -> list[DailyClickStats]:
        counts = dict(await self._events.daily_counts(link_id, start, end))
        series: list[DailyClickStats] = []
        day = start.date()
        while datetime.datetime.combine(day, datetime.time.min, tzinfo=datetime.timezone.utc) < end:
            series.append(DailyClickStats(date=day, count=counts.get(day, 0)))
            day += datetime.timedelta(days=1)
        return series

    async def _compute(self, code: str) -> ClickStatsResponse:
        link = await self._link_service.get_link(code)
        total = await self._events.count_by_link(link.id)
        start, end = self._window(self._default_days)

        stats = ClickStatsResponse(
            short_code=link.code,
            target=link.target,
            total_clicks=total,
            daily_stats=await self._daily_series(link.id, start, end),
            device_stats=build_breakdown(await self._events.counts_by_device(link.id), total),
            browser_stats=build_breakdown(await self._events.counts_by_browser(link.id), total),
            country_stats=build_breakdown(await self._events.counts_by_country(link.id), total),
            referrer_stats=build_breakdown(await self._events.counts_by_referrer(link.id), total),
            generated_at=self._clock(),
        )
        logger.debug(f"Computed statistics for {code}: {total} clicks")
        return stats
