"""Database configuration and session management for the shortlink service.

This module provides SQLAlchemy async engine setup, session factories,
and database lifecycle operations using PostgreSQL as the backend.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐
    │ Composition │
    │ root        │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_     │
    │ engine()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ create_     │
    │ session_    │
    │ factory()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Repositories│
    │ open one    │
    │ session per │
    │ operation   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()  │
    │ (dispose)   │
    └─────────────┘

How to Use
===========
**Step 1 — Build the engine on startup**::
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    await init_db(engine)  # Creates tables

**Step 2 — Hand the factory to repositories**::
    links = ShortLinkRepository(session_factory)

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- No engine is created at import time; the composition root owns it.
- Connection pooling is configured for production workloads.
- SQLite URLs (used by the test suite) skip the pool sizing options.
- Sessions do not expire attributes on commit, so returned rows stay readable.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Builds the async engine from settings.
    create_session_factory():  Builds the async session factory.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlink.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    options: dict[str, object] = {"pool_pre_ping": True}
    if not settings.DATABASE_URL.startswith("sqlite"):
        options.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
        )
    return create_async_engine(settings.DATABASE_URL, echo=False, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Importing models registers their tables on Base.metadata.
    from shortlink import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
