"""Shared pytest fixtures: a throwaway SQLite store, an in-process Redis and the wired services."""

import datetime
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlink.cache import ResolutionCache
from shortlink.config import Settings
from shortlink.database import close_db, create_engine, create_session_factory, init_db
from shortlink.dependencies import ServiceManager
from shortlink.identifiers import IdentifierGenerator
from shortlink.link_service import LinkResolutionService
from shortlink.repositories import ClickEventRepository, ShortLinkRepository


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime.datetime):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + datetime.timedelta(**delta)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortlink.db'}",
        REDIS_URL="redis://localhost:6379/15",
        BASE_URL="http://sho.rt",
        CLICK_TRACKING_CORE_WORKERS=2,
        CLICK_TRACKING_MAX_WORKERS=4,
        CLICK_TRACKING_QUEUE_CAPACITY=10,
        CLICK_TRACKING_KEEP_ALIVE_SECONDS=1.0,
        CLICK_TRACKING_SHUTDOWN_GRACE_SECONDS=5.0,
        EXPIRATION_SWEEP_INTERVAL_SECONDS=3600.0,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime.datetime(2026, 3, 14, 12, 0, tzinfo=datetime.timezone.utc))


@pytest_asyncio.fixture(scope="function")
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine(settings)
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture(scope="function")
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def links(session_factory: async_sessionmaker[AsyncSession]) -> ShortLinkRepository:
    return ShortLinkRepository(session_factory)


@pytest.fixture
def events(session_factory: async_sessionmaker[AsyncSession]) -> ClickEventRepository:
    return ClickEventRepository(session_factory)


@pytest.fixture
def cache(redis_client: FakeAsyncRedis) -> ResolutionCache:
    return ResolutionCache(redis_client, link_ttl=3600)


@pytest.fixture
def link_service(
    links: ShortLinkRepository,
    cache: ResolutionCache,
    settings: Settings,
    clock: FrozenClock,
) -> LinkResolutionService:
    return LinkResolutionService(links, cache, IdentifierGenerator(links), settings, clock=clock)


@pytest_asyncio.fixture(scope="function")
async def manager(settings: Settings, redis_client: FakeAsyncRedis) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager()
    await manager.initialize(settings, redis_client=redis_client)
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture(scope="function")
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    from shortlink.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
