"""SQLAlchemy ORM models for the shortlink service.

This module defines the database schema using SQLAlchemy declarative models
with the indexes the resolution and analytics queries rely on.

Data Model Layout
=================
::
    short_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ code (VARCHAR(10) UNIQUE, INDEXED)
    ├─ target (VARCHAR(2048) NOT NULL)
    ├─ owner_id (VARCHAR(64) NULL, INDEXED)
    ├─ dedup_key (VARCHAR(64) NULL, UNIQUE)
    ├─ created_at (TIMESTAMPTZ)
    ├─ expires_at (TIMESTAMPTZ NULL)
    ├─ active (BOOLEAN DEFAULT TRUE)
    └─ click_count (BIGINT DEFAULT 0)

    click_events table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ link_id (FK short_links.id, INDEXED)
    ├─ occurred_at (TIMESTAMPTZ, INDEXED)
    ├─ ip_address_hash (VARCHAR(64) NULL)
    ├─ user_agent (VARCHAR(500) NULL)
    ├─ referrer (VARCHAR(500) NULL)
    ├─ device_type / browser / operating_system (VARCHAR)
    └─ country / city (VARCHAR(100) NULL)

Key Behaviours
===============
- code is indexed for fast lookups during redirects.
- dedup_key is only filled when duplicate detection is enabled; NULLs never
  collide, so the unique index enforces one row per (target, owner) only then.
- click_count is only ever changed through an atomic UPDATE.
- click_events rows are never deleted when a link is deactivated.

Classes:
    ShortLink:  A code → target mapping with expiry and click counter.
    ClickEvent:  One recorded visit of a ShortLink.
"""

import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.clock import utcnow
from shortlink.database import Base

__all__ = ["ShortLink", "ClickEvent"]


class ShortLink(Base):
    __tablename__ = "short_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(10), unique=True, index=True, nullable=False)
    target: Mapped[str] = mapped_column(String(2048), nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    dedup_key: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    click_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, code='{self.code}', clicks={self.click_count})>"


class ClickEvent(Base):
    __tablename__ = "click_events"
    __table_args__ = (Index("idx_click_events_link_occurred_at", "link_id", "occurred_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link_id: Mapped[int] = mapped_column(ForeignKey("short_links.id"), index=True, nullable=False)
    occurred_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True, nullable=False
    )
    ip_address_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    referrer: Mapped[str | None] = mapped_column(String(500), nullable=True)
    device_type: Mapped[str] = mapped_column(String(50), nullable=False)
    browser: Mapped[str] = mapped_column(String(100), nullable=False)
    operating_system: Mapped[str] = mapped_column(String(100), nullable=False)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<ClickEvent(id={self.id}, link_id={self.link_id}, device='{self.device_type}')>"
