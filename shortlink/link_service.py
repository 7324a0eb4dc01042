"""Link Resolution Service - create, resolve and expire short links.

Architecture Overview
=====================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                 LinkResolutionService                       │
    │  ┌─────────────────┐  ┌─────────────────┐  ┌──────────────┐ │
    │  │  Create links   │  │ Resolve codes   │  │ Ownership &  │ │
    │  │ • validate URL  │  │ • cache first   │  │ expiry       │ │
    │  │ • dedup lookup  │  │ • store fallback│  │ • list/count │ │
    │  │ • probe code    │  │ • expiry check  │  │ • sweep      │ │
    │  └─────────────────┘  └─────────────────┘  └──────────────┘ │
    └─────────────────────────────────────────────────────────────┘
                │                    │                    │
                ▼                    ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────┐
    │ IdentifierGen.  │  │ ResolutionCache │  │ ShortLinkRepo   │
    │ (base62 probe)  │  │ (Redis, url:)   │  │ (PostgreSQL)    │
    └─────────────────┘  └─────────────────┘  └─────────────────┘

Link Creation Flow
------------------
::
    ┌─────────────┐
    │ create()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate URL │
    │ & expiry     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Duplicate?   │──YES──▶ re-cache and return existing link
    └──────┬──────┘
           │ NO
           ▼
    ┌─────────────┐
    │ Generate     │
    │ unique code  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ INSERT       │──IntegrityError──▶ return dedup winner or re-probe code
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache url:   │
    │ {code}       │
    └─────────────┘

Resolution Flow
---------------
::
    ┌─────────────┐
    │ resolve()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache lookup │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            │
┌─────────┐      │
│ Store   │──absent──▶ LinkNotFoundError
│ lookup  │      │
└────┬────┘      │
     ▼           │
┌─────────┐      │
│ Cache   │      │
│ result  │      │
└────┬────┘      │
     └─────┬─────┘
           ▼
    ┌─────────────┐
    │ Accessible?  │──NO──▶ LinkExpiredError
    └──────┬──────┘
           ▼
      return target
"""

import datetime
import hashlib
import logging
import time
from urllib.parse import urlsplit

import validators
from prometheus_client import Counter, Histogram
from sqlalchemy.exc import IntegrityError

from shortlink.cache import ResolutionCache
from shortlink.clock import Clock, ensure_utc, utcnow
from shortlink.config import Settings
from shortlink.enums import CacheStatus, RequestStatus
from shortlink.errors import (
    InvalidInputError,
    LinkExpiredError,
    LinkNotFoundError,
    UnauthorizedError,
)
from shortlink.identifiers import IdentifierGenerator
from shortlink.repositories import ShortLinkRepository
from shortlink.schemas import LinkPage, LinkSummary, ShortLinkData

__all__ = ["LinkResolutionService", "dedup_key_for"]

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = ("http", "https")

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlink_creation_requests_total",
    "Total link creation requests",
    ["status"],
)
LINK_RESOLUTION_REQUESTS_TOTAL = Counter(
    "shortlink_resolution_requests_total",
    "Total link resolution requests",
    ["status", "cache_hit"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
LINK_RESOLUTION_DURATION = Histogram(
    "shortlink_resolution_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
LINKS_DEACTIVATED_TOTAL = Counter(
    "shortlink_links_deactivated_total",
    "Links deactivated because their expiry passed",
)


def dedup_key_for(target: str, owner_id: str | None) -> str:
    """Stable key for the (owner, target) pair guarded by a unique index."""
    return hashlib.sha256(f"{owner_id or ''}\n{target}".encode("utf-8")).hexdigest()


class LinkResolutionService:
    """Orchestrates the identifier generator, the store and the cache.

    Example:
        >>> service = LinkResolutionService(links, cache, generator, settings)
        >>> link = await service.create("https://example.com/page")
        >>> await service.resolve(link.code)
        'https://example.com/page'
    """

    def __init__(
        self,
        links: ShortLinkRepository,
        cache: ResolutionCache,
        generator: IdentifierGenerator,
        settings: Settings,
        clock: Clock = utcnow,
    ):
        self._links = links
        self._cache = cache
        self._generator = generator
        self._settings = settings
        self._clock = clock

    # ========================================================================
    # CREATION
    # ========================================================================

    async def create(
        self,
        target: str | None,
        owner_id: str | None = None,
        expires_at: datetime.datetime | None = None,
    ) -> ShortLinkData:
        """Create a short link for ``target``, or return the existing duplicate.

        Raises:
            InvalidInputError: malformed/oversized target or an invalid expiry.
        """
        start_time = time.perf_counter()
        try:
            self._validate_target(target)
            expires_at = self._validate_expiry(expires_at)

            dedup_key = None
            if self._settings.ENABLE_DUPLICATE_DETECTION:
                existing = await self._links.find_by_target(target, owner_id)
                if existing is not None:
                    await self._cache.put_link(existing)
                    LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.DUPLICATE).inc()
                    logger.info(f"Returning existing link {existing.code} for {target}")
                    return existing
                dedup_key = dedup_key_for(target, owner_id)

            link = await self._insert(target, owner_id, expires_at, dedup_key)
            await self._cache.put_link(link)

            duration = time.perf_counter() - start_time
            LINK_CREATION_DURATION.observe(duration)
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            logger.info(f"Link created successfully: {link.code} in {duration:.3f}s")
            return link

        except InvalidInputError as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            logger.warning(f"Link creation rejected: {exc}")
            raise

        except Exception as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            logger.error(f"Link creation error: {exc}")
            raise

    async def _insert(
        self,
        target: str,
        owner_id: str | None,
        expires_at: datetime.datetime | None,
        dedup_key: str | None,
    ) -> ShortLinkData:
        attempts = self._settings.CREATE_CONFLICT_RETRIES + 1
        attempt = 0
        while True:
            attempt += 1
            code = await self._generator.generate_unique()
            try:
                return await self._links.save(
                    code=code,
                    target=target,
                    owner_id=owner_id,
                    expires_at=expires_at,
                    dedup_key=dedup_key,
                    created_at=self._clock(),
                )
            except IntegrityError:
                if dedup_key is not None:
                    winner = await self._links.find_by_dedup_key(dedup_key)
                    if winner is not None:
                        logger.info(f"Concurrent create for {target} won by {winner.code}")
                        return winner
                if attempt == attempts or not await self._links.exists_by_code(code):
                    raise
                logger.warning(f"Code {code} was taken concurrently, retrying ({attempt}/{attempts})")

    def _validate_target(self, target: str | None) -> None:
        if not target or not target.strip():
            raise InvalidInputError("URL must not be empty")
        if len(target) > self._settings.URL_MAX_LENGTH:
            raise InvalidInputError(
                f"URL exceeds maximum length of {self._settings.URL_MAX_LENGTH} characters"
            )
        if not validators.url(target):
            raise InvalidInputError(f"Invalid URL format: {target}")
        if urlsplit(target).scheme.lower() not in _ALLOWED_SCHEMES:
            raise InvalidInputError("URL scheme must be http or https")

    def _validate_expiry(self, expires_at: datetime.datetime | None) -> datetime.datetime | None:
        if expires_at is None:
            return None
        expires_at = ensure_utc(expires_at)
        now = self._clock()
        if expires_at <= now:
            raise InvalidInputError("Expiration date must be in the future")
        if expires_at > now + datetime.timedelta(days=self._settings.MAX_EXPIRATION_DAYS):
            raise InvalidInputError(
                f"Expiration date cannot be more than {self._settings.MAX_EXPIRATION_DAYS} days in the future"
            )
        return expires_at

    # ========================================================================
    # RESOLUTION
    # ========================================================================

    async def get_link(self, code: str) -> ShortLinkData:
        """Cache-aside lookup of a link regardless of its accessibility."""
        cached = await self._cache.get_link(code)
        if cached is not None:
            return cached

        link = await self._links.find_by_code(code)
        if link is None:
            raise LinkNotFoundError(code)
        await self._cache.put_link(link)
        return link

    async def resolve(self, code: str) -> str:
        start_time = time.perf_counter()
        cache_status = CacheStatus.MISS
        try:
            link = await self._cache.get_link(code)
            if link is not None:
                cache_status = CacheStatus.HIT
            else:
                link = await self._links.find_by_code(code)
                if link is None:
                    raise LinkNotFoundError(code)
                await self._cache.put_link(link)

            if not link.is_accessible(self._clock()):
                raise LinkExpiredError(code)

            LINK_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=cache_status).inc()
            logger.debug(f"Resolved {code} (cache hit: {cache_status})")
            return link.target

        except LinkNotFoundError:
            LINK_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND, cache_hit=cache_status).inc()
            raise
        except LinkExpiredError:
            LINK_RESOLUTION_REQUESTS_TOTAL.labels(status=RequestStatus.EXPIRED, cache_hit=cache_status).inc()
            raise
        finally:
            LINK_RESOLUTION_DURATION.observe(time.perf_counter() - start_time)

    async def is_expired(self, code: str) -> bool:
        try:
            link = await self.get_link(code)
        except LinkNotFoundError:
            return False
        return link.is_expired(self._clock())

    # ========================================================================
    # OWNERSHIP
    # ========================================================================

    async def is_owned_by(self, code: str, owner_id: str | None) -> bool:
        if owner_id is None:
            return False
        return await self._links.find_by_code_and_owner(code, owner_id) is not None

    async def validate_ownership(self, code: str, owner_id: str | None) -> None:
        if owner_id is None:
            raise UnauthorizedError("Authentication required")
        if not await self.is_owned_by(code, owner_id):
            raise UnauthorizedError(f"You don't have permission to access this link: {code}")

    async def list_for_owner(
        self, owner_id: str | None, page: int = 0, size: int = 20, active_only: bool = False
    ) -> LinkPage:
        if owner_id is None:
            raise ValueError("owner_id is required")
        if page < 0 or size < 1:
            raise InvalidInputError("page must be >= 0 and size must be >= 1")
        items = await self._links.list_by_owner(owner_id, page * size, size, active_only)
        total = await self._links.count_by_owner(owner_id, active_only)
        return LinkPage(items=items, total=total, page=page, size=size)

    async def count_for_owner(self, owner_id: str | None, active_only: bool = False) -> int:
        if owner_id is None:
            raise ValueError("owner_id is required")
        return await self._links.count_by_owner(owner_id, active_only)

    async def summarize_for_owner(self, owner_id: str | None) -> LinkSummary:
        total = await self.count_for_owner(owner_id)
        active = await self.count_for_owner(owner_id, active_only=True)
        return LinkSummary(total=total, active=active, inactive=total - active)

    # ========================================================================
    # EXPIRY
    # ========================================================================

    async def find_expired(self) -> list[ShortLinkData]:
        return await self._links.find_expired(self._clock())

    async def deactivate_expired(self) -> int:
        deactivated = await self._links.deactivate_expired(self._clock())
        if deactivated:
            LINKS_DEACTIVATED_TOTAL.inc(deactivated)
            logger.info(f"Deactivated {deactivated} expired links")
        return deactivated
