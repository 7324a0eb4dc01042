"""Cache-aside wrapper over Redis that never lets a backend failure escape.

Flow Diagram — ResolutionCache.get()
====================================
::
    ┌─────────────┐
    │ get(key,    │
    │ model)      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ redis GET    │
    └──────┬──────┘
    ERROR?  │
    ┌─────┴─────┐
    │ YES        │ NO
    ▼            ▼
┌─────────┐  ┌──────────────┐
│ Log,    │  │ Validate JSON │
│ return  │  │ against model │
│ None    │  └──────┬───────┘
└─────────┘   VALID? │
             ┌──────┴─────┐
             │ NO          │ YES
             ▼             ▼
         ┌────────┐   ┌─────────┐
         │ None   │   │ Return  │
         │ (miss) │   │ model   │
         └────────┘   └─────────┘

Key Behaviours
===============
- Connection failures and timeouts are logged as warnings, any other
  Redis error as an error; the operation then reports a miss, a no-op,
  ``False`` or ``0``.
- Values are stored as pydantic JSON with a per-call TTL.
- Link entries live under the ``url:`` prefix.
"""

import logging
from typing import TypeVar

import redis.asyncio as redis
from prometheus_client import Counter
from pydantic import BaseModel, ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shortlink.schemas import ShortLinkData

__all__ = ["ResolutionCache", "LINK_KEY_PREFIX"]

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

LINK_KEY_PREFIX = "url:"
DEFAULT_CACHE_TTL_SECONDS = 3600

CACHE_ERRORS_TOTAL = Counter(
    "shortlink_cache_errors_total",
    "Redis operations that failed and were degraded to a miss or no-op",
    ["operation"],
)


class ResolutionCache:
    def __init__(self, client: redis.Redis, link_ttl: int = DEFAULT_CACHE_TTL_SECONDS):
        self._client = client
        self._link_ttl = link_ttl

    def _log_failure(self, operation: str, key: str, exc: RedisError) -> None:
        CACHE_ERRORS_TOTAL.labels(operation=operation).inc()
        if isinstance(exc, (RedisConnectionError, RedisTimeoutError)):
            logger.warning(f"Cache {operation} unavailable for {key}: {exc}")
        else:
            logger.error(f"Cache {operation} failed for {key}: {exc}")

    async def get(self, key: str, model: type[M]) -> M | None:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            self._log_failure("get", key, exc)
            return None
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(f"Discarding unreadable cache entry {key}: {exc.error_count()} errors")
            return None

    async def put(self, key: str, value: BaseModel, ttl: int) -> None:
        try:
            await self._client.set(key, value.model_dump_json(), ex=ttl)
        except RedisError as exc:
            self._log_failure("put", key, exc)

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except RedisError as exc:
            self._log_failure("delete", key, exc)
            return False

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except RedisError as exc:
            self._log_failure("exists", key, exc)
            return False

    async def evict_prefix(self, prefix: str) -> int:
        evicted = 0
        try:
            async for key in self._client.scan_iter(match=f"{prefix}*"):
                evicted += await self._client.delete(key)
        except RedisError as exc:
            self._log_failure("evict", f"{prefix}*", exc)
        if evicted:
            logger.info(f"Evicted {evicted} cache entries with prefix {prefix}")
        return evicted

    async def get_link(self, code: str) -> ShortLinkData | None:
        return await self.get(f"{LINK_KEY_PREFIX}{code}", ShortLinkData)

    async def put_link(self, link: ShortLinkData) -> None:
        await self.put(f"{LINK_KEY_PREFIX}{link.code}", link, self._link_ttl)

    async def delete_link(self, code: str) -> bool:
        return await self.delete(f"{LINK_KEY_PREFIX}{code}")

    async def exists_link(self, code: str) -> bool:
        return await self.exists(f"{LINK_KEY_PREFIX}{code}")
