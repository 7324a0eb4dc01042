"""Redis client construction for the shortlink service.

Flow Diagram — Redis Client Lifecycle
=====================================
::
    ┌─────────────┐
    │ Composition │
    │ root start  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_     │
    │ redis()     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Resolution  │
    │ Cache wraps │
    │ the client  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_      │
    │ redis()     │
    └─────────────┘

Key Behaviours
===============
- UTF-8 encoding with decode_responses for string operations.
- Socket and connect timeouts bound how long a cache call can block.
- One client per process, owned by the composition root.
"""

import redis.asyncio as redis

from shortlink.config import Settings

__all__ = ["create_redis", "close_redis"]


def create_redis(settings: Settings) -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )


async def close_redis(client: redis.Redis) -> None:
    await client.aclose()
