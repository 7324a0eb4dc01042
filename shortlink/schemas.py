"""Pydantic schemas shared by the store, the cache and the HTTP surface.

This module defines frozen value models handed out by the repositories,
the payloads cached in Redis, and the request/response bodies of the router.

Schema Hierarchy
=================
::
    ShortLinkData (store value / cache payload under url:{code})
    ├─ id, code, target, owner_id
    ├─ created_at, expires_at
    └─ active, click_count

    ClientMetadata (what the redirect path knows about the client)
    └─ ip_address, user_agent, referrer, country, city

    ClickEventData (store value for one recorded click)

    ClickStatsResponse (cache payload under stats:{code})
    ├─ total_clicks
    ├─ daily_stats: list[DailyClickStats]
    └─ device/browser/country/referrer_stats: list[CategoryStats]

    ShortLinkCreate (input) / ShortLinkResponse (output) / LinkPage (output)
    HealthResponse (output)

Key Behaviours
===============
- Value models are frozen; two ShortLinkData values are equal iff their codes are.
- All datetime fields are normalised to timezone-aware UTC.
- Models are configured for ORM attribute mapping.
"""

import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shortlink.clock import ensure_utc
from shortlink.enums import HealthStatus

__all__ = [
    "ShortLinkData",
    "ClientMetadata",
    "ClickEventData",
    "CategoryStats",
    "DailyClickStats",
    "ClickStatsResponse",
    "LinkPage",
    "LinkSummary",
    "ShortLinkCreate",
    "ShortLinkResponse",
    "HealthResponse",
]


class ShortLinkData(BaseModel):
    """A fully materialised short link, as stored and as cached."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    code: str
    target: str
    owner_id: str | None = None
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None
    active: bool = True
    click_count: int = 0

    @field_validator("created_at", "expires_at")
    @classmethod
    def _normalise_utc(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return ensure_utc(v)

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def is_accessible(self, now: datetime.datetime) -> bool:
        return self.active and not self.is_expired(now)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShortLinkData):
            return NotImplemented
        return self.code == other.code

    def __hash__(self) -> int:
        return hash(self.code)


class ClientMetadata(BaseModel):
    """Client details captured on the redirect path, before any hashing."""

    model_config = ConfigDict(frozen=True)

    ip_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    country: str | None = None
    city: str | None = None


class ClickEventData(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    link_id: int
    occurred_at: datetime.datetime
    ip_address_hash: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    device_type: str
    browser: str
    operating_system: str
    country: str | None = None
    city: str | None = None

    @field_validator("occurred_at")
    @classmethod
    def _normalise_utc(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_utc(v)


class CategoryStats(BaseModel):
    category: str
    count: int
    percentage: float


class DailyClickStats(BaseModel):
    date: datetime.date
    count: int


class ClickStatsResponse(BaseModel):
    short_code: str
    target: str
    total_clicks: int
    daily_stats: list[DailyClickStats] = Field(default_factory=list)
    device_stats: list[CategoryStats] = Field(default_factory=list)
    browser_stats: list[CategoryStats] = Field(default_factory=list)
    country_stats: list[CategoryStats] = Field(default_factory=list)
    referrer_stats: list[CategoryStats] = Field(default_factory=list)
    generated_at: datetime.datetime


class LinkPage(BaseModel):
    items: list[ShortLinkData]
    total: int
    page: int
    size: int


class LinkSummary(BaseModel):
    """Link counts for one owner; inactive is total minus active."""

    total: int
    active: int
    inactive: int


class ShortLinkCreate(BaseModel):
    url: str
    expires_at: datetime.datetime | None = None


class ShortLinkResponse(BaseModel):
    code: str
    short_url: str
    target: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None
    active: bool
    click_count: int

    @classmethod
    def from_link(cls, link: ShortLinkData, base_url: str) -> "ShortLinkResponse":
        return cls(
            code=link.code,
            short_url=f"{base_url}/{link.code}",
            target=link.target,
            created_at=link.created_at,
            expires_at=link.expires_at,
            active=link.active,
            click_count=link.click_count,
        )


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
