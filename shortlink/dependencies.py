"""Composition root: one ServiceManager builds and owns every shared component.

Startup Order
=============
::
    settings ─▶ logger ─▶ engine + session factory ─▶ create tables
        ─▶ Redis client ─▶ repositories ─▶ cache ─▶ identifier generator
        ─▶ link service ─▶ click pipeline (start) ─▶ analytics
        ─▶ expiration sweeper (start)

Shutdown runs the other way round: sweeper, click pipeline (graceful drain),
Redis, database engine.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlink.analytics import AnalyticsAggregator
from shortlink.cache import ResolutionCache
from shortlink.config import Settings, get_settings
from shortlink.database import close_db, create_engine, create_session_factory, init_db
from shortlink.identifiers import IdentifierGenerator
from shortlink.ingestion import ClickIngestionPipeline
from shortlink.link_service import LinkResolutionService
from shortlink.redis import close_redis, create_redis
from shortlink.repositories import ClickEventRepository, ShortLinkRepository
from shortlink.sweeper import ExpirationSweeper

__all__ = ["ServiceManager", "get_service_manager"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton holder of the engine, the Redis client and every service.

    Example:
        >>> manager = ServiceManager()
        >>> await manager.initialize()
        >>> target = await manager.link_service.resolve("4c92")
        >>> await manager.cleanup()
    """

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    settings: Settings
    logger: logging.Logger
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: redis.Redis
    cache: ResolutionCache
    links: ShortLinkRepository
    events: ClickEventRepository
    link_service: LinkResolutionService
    pipeline: ClickIngestionPipeline
    analytics: AnalyticsAggregator
    sweeper: ExpirationSweeper

    def __new__(cls) -> "ServiceManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        settings: Settings | None = None,
        redis_client: redis.Redis | None = None,
    ) -> None:
        """Build every component once. ``redis_client`` is used as-is when given."""
        if self._initialized:
            return

        self.settings = settings or get_settings()
        self.logger = self._setup_logger()

        self.engine = create_engine(self.settings)
        self.session_factory = create_session_factory(self.engine)
        await init_db(self.engine)

        self._owns_redis = redis_client is None
        self.redis = redis_client if redis_client is not None else create_redis(self.settings)

        self.links = ShortLinkRepository(self.session_factory)
        self.events = ClickEventRepository(self.session_factory)
        self.cache = ResolutionCache(self.redis, link_ttl=self.settings.URL_CACHE_TTL_SECONDS)
        generator = IdentifierGenerator(self.links, max_probes=self.settings.ID_MAX_PROBES)

        self.link_service = LinkResolutionService(self.links, self.cache, generator, self.settings)
        self.pipeline = ClickIngestionPipeline.from_settings(self.links, self.events, self.settings)
        self.pipeline.start()
        self.analytics = AnalyticsAggregator(self.events, self.cache, self.link_service, self.settings)
        self.sweeper = ExpirationSweeper(
            self.link_service, interval_seconds=self.settings.EXPIRATION_SWEEP_INTERVAL_SECONDS
        )
        self.sweeper.start()

        self._initialized = True
        self.logger.info(f"{self.settings.APP_NAME} initialized ({self.settings.APP_ENV})")

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("shortlink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def cleanup(self) -> None:
        """Stop background work and release connections, in reverse start order."""
        if not self._initialized:
            return
        await self.sweeper.stop()
        await self.pipeline.shutdown(self.settings.CLICK_TRACKING_SHUTDOWN_GRACE_SECONDS)
        if self._owns_redis:
            await close_redis(self.redis)
        await close_db(self.engine)
        self._initialized = False
        self.logger.info("Shutdown complete")


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager
