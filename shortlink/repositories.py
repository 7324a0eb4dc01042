"""SQLAlchemy-backed store for short links and click events.

Each repository method opens its own session from the factory, commits when
it writes, and hands back frozen pydantic values instead of ORM instances.

Flow Diagram — Repository Call
==============================
::
    ┌─────────────┐
    │ Service     │
    │ calls repo  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Open session │
    │ (factory)    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ SELECT or    │
    │ INSERT/UPDATE│
    │ + commit     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Map rows to  │
    │ ShortLinkData│
    │ ClickEventData│
    └─────────────┘

Key Behaviours
===============
- Store errors (including ``IntegrityError`` on insert) propagate to the caller.
- Click counts are incremented with a single atomic UPDATE.
- Expired links are deactivated in one bulk UPDATE; no row is ever deleted.
- Daily counts bucket by the UTC calendar day on every backend.
- Category breakdowns bucket a missing country as ``Unknown`` and a missing
  referrer as ``Direct``, ordered by count descending then category.
"""

import datetime
from collections import Counter

from sqlalchemy import ColumnElement, Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.enums import UNKNOWN
from shortlink.models import ClickEvent, ShortLink
from shortlink.schemas import ClickEventData, ShortLinkData

__all__ = ["ShortLinkRepository", "ClickEventRepository", "DIRECT_REFERRER", "utc_day"]

DIRECT_REFERRER = "Direct"

SessionFactory = async_sessionmaker[AsyncSession]


def utc_day(column: ColumnElement, dialect_name: str) -> ColumnElement:
    """Calendar day of ``column`` in UTC, whatever the session time zone is."""
    if dialect_name == "postgresql":
        return func.date(func.timezone("UTC", column))
    # SQLite stores the UTC wall-clock value as text.
    return func.date(column)


class ShortLinkRepository:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def _first(self, stmt: Select) -> ShortLinkData | None:
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalars().first()
            return ShortLinkData.model_validate(row) if row is not None else None

    async def find_by_code(self, code: str) -> ShortLinkData | None:
        return await self._first(select(ShortLink).where(ShortLink.code == code))

    async def exists_by_code(self, code: str) -> bool:
        async with self._session_factory() as session:
            found = await session.scalar(select(ShortLink.id).where(ShortLink.code == code).limit(1))
            return found is not None

    async def find_by_target(self, target: str, owner_id: str | None) -> ShortLinkData | None:
        """Oldest link for ``target``; scoped to ``owner_id`` when one is given."""
        stmt = select(ShortLink).where(ShortLink.target == target)
        if owner_id is not None:
            stmt = stmt.where(ShortLink.owner_id == owner_id)
        return await self._first(stmt.order_by(ShortLink.id).limit(1))

    async def find_by_dedup_key(self, dedup_key: str) -> ShortLinkData | None:
        return await self._first(select(ShortLink).where(ShortLink.dedup_key == dedup_key))

    async def find_by_code_and_owner(self, code: str, owner_id: str) -> ShortLinkData | None:
        return await self._first(
            select(ShortLink).where(ShortLink.code == code, ShortLink.owner_id == owner_id)
        )

    async def save(
        self,
        code: str,
        target: str,
        owner_id: str | None = None,
        expires_at: datetime.datetime | None = None,
        dedup_key: str | None = None,
        created_at: datetime.datetime | None = None,
    ) -> ShortLinkData:
        row = ShortLink(
            code=code,
            target=target,
            owner_id=owner_id,
            expires_at=expires_at,
            dedup_key=dedup_key,
            active=True,
            click_count=0,
        )
        if created_at is not None:
            row.created_at = created_at
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            return ShortLinkData.model_validate(row)

    async def increment_click_count(self, code: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                update(ShortLink)
                .where(ShortLink.code == code)
                .values(click_count=ShortLink.click_count + 1)
            )
            await session.commit()
            return result.rowcount

    def _expired(self, now: datetime.datetime) -> ColumnElement[bool]:
        return (
            ShortLink.expires_at.is_not(None)
            & (ShortLink.expires_at < now)
            & ShortLink.active.is_(True)
        )

    async def deactivate_expired(self, now: datetime.datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                update(ShortLink).where(self._expired(now)).values(active=False)
            )
            await session.commit()
            return result.rowcount

    async def find_expired(self, now: datetime.datetime) -> list[ShortLinkData]:
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(ShortLink).where(self._expired(now)).order_by(ShortLink.id)
            )).scalars().all()
            return [ShortLinkData.model_validate(row) for row in rows]

    def _owned_by(self, owner_id: str, active_only: bool) -> list[ColumnElement[bool]]:
        clauses = [ShortLink.owner_id == owner_id]
        if active_only:
            clauses.append(ShortLink.active.is_(True))
        return clauses

    async def list_by_owner(
        self, owner_id: str, offset: int, limit: int, active_only: bool = False
    ) -> list[ShortLinkData]:
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(ShortLink)
                .where(*self._owned_by(owner_id, active_only))
                .order_by(ShortLink.created_at.desc(), ShortLink.id.desc())
                .offset(offset)
                .limit(limit)
            )).scalars().all()
            return [ShortLinkData.model_validate(row) for row in rows]

    async def count_by_owner(self, owner_id: str, active_only: bool = False) -> int:
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count(ShortLink.id)).where(*self._owned_by(owner_id, active_only))
            )
            return total or 0


class ClickEventRepository:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def save(
        self,
        link_id: int,
        occurred_at: datetime.datetime,
        device_type: str,
        browser: str,
        operating_system: str,
        ip_address_hash: str | None = None,
        user_agent: str | None = None,
        referrer: str | None = None,
        country: str | None = None,
        city: str | None = None,
    ) -> ClickEventData:
        row = ClickEvent(
            link_id=link_id,
            occurred_at=occurred_at,
            ip_address_hash=ip_address_hash,
            user_agent=user_agent,
            referrer=referrer,
            device_type=device_type,
            browser=browser,
            operating_system=operating_system,
            country=country,
            city=city,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            return ClickEventData.model_validate(row)

    async def count_by_link(self, link_id: int) -> int:
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count(ClickEvent.id)).where(ClickEvent.link_id == link_id)
            )
            return total or 0

    async def count_by_link_and_range(
        self, link_id: int, start: datetime.datetime, end: datetime.datetime
    ) -> int:
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count(ClickEvent.id)).where(
                    ClickEvent.link_id == link_id,
                    ClickEvent.occurred_at >= start,
                    ClickEvent.occurred_at < end,
                )
            )
            return total or 0

    async def daily_counts(
        self, link_id: int, start: datetime.datetime, end: datetime.datetime
    ) -> list[tuple[datetime.date, int]]:
        clicks = func.count(ClickEvent.id).label("clicks")
        async with self._session_factory() as session:
            day = utc_day(ClickEvent.occurred_at, session.get_bind().dialect.name).label("day")
            rows = (await session.execute(
                select(day, clicks)
                .where(
                    ClickEvent.link_id == link_id,
                    ClickEvent.occurred_at >= start,
                    ClickEvent.occurred_at < end,
                )
                .group_by(day)
                .order_by(day)
            )).all()
        # SQLite hands back DATE() as text.
        return [
            (datetime.date.fromisoformat(value) if isinstance(value, str) else value, count)
            for value, count in rows
        ]

    async def _grouped_counts(
        self, link_id: int, column: ColumnElement, fallback: str | None = None
    ) -> list[tuple[str, int]]:
        clicks = func.count(ClickEvent.id)
        async with self._session_factory() as session:
            rows = (await session.execute(
                select(column, clicks).where(ClickEvent.link_id == link_id).group_by(column)
            )).all()
        # NULL and empty values collapse into the fallback bucket.
        buckets: Counter[str] = Counter()
        for name, count in rows:
            buckets[name or fallback or UNKNOWN] += count
        return sorted(buckets.items(), key=lambda item: (-item[1], item[0]))

    async def counts_by_device(self, link_id: int) -> list[tuple[str, int]]:
        return await self._grouped_counts(link_id, ClickEvent.device_type)

    async def counts_by_browser(self, link_id: int) -> list[tuple[str, int]]:
        return await self._grouped_counts(link_id, ClickEvent.browser)

    async def counts_by_country(self, link_id: int) -> list[tuple[str, int]]:
        return await self._grouped_counts(link_id, ClickEvent.country, UNKNOWN)

    async def counts_by_referrer(self, link_id: int) -> list[tuple[str, int]]:
        return await self._grouped_counts(link_id, ClickEvent.referrer, DIRECT_REFERRER)
