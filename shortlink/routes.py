"""FastAPI route definitions for the shortlink REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/links
        ├─ ShortLinkCreate (request body), X-Owner-Id (optional)
        └─ ShortLinkResponse (201) or 400

    GET  /api/links?page=&size=&active_only=
        ├─ X-Owner-Id (required)
        └─ LinkPage (200) or 403

    GET  /api/links/summary
        ├─ X-Owner-Id (required)
        └─ LinkSummary (200) or 403

    GET  /api/links/:code
        ├─ X-Owner-Id (required, must own the link)
        └─ ShortLinkResponse (200) or 403

    GET  /api/analytics/:code
        ├─ X-Owner-Id (required, must own the link)
        └─ ClickStatsResponse (200) or 403/404

    GET  /api/analytics/:code/daily?days=&start=&end=
        └─ list[DailyClickStats] (200) or 400/403

    GET  /api/analytics/:code/total?start=&end=
        └─ {"total_clicks": n} (200) or 400/403

    POST /api/analytics/:code/refresh
        └─ ClickStatsResponse (200) or 403/404

    POST /api/maintenance/expire
        └─ {"deactivated": n}

    GET  /:code
        └─ 302 Redirect, 404 or 410

Key Behaviours
===============
- The redirect hands the click to the ingestion pipeline and never waits
  for it to be persisted.
- Client IP is the first X-Forwarded-For entry, then X-Real-IP, then the
  socket peer address.
- Service errors are rendered as ``{"error": {"code", "message"}}`` with the
  status carried by the error class.
"""

import datetime
from dataclasses import asdict

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import text

from shortlink.dependencies import ServiceManager, get_service_manager
from shortlink.enums import HealthStatus
from shortlink.errors import InvalidInputError, ShortLinkError, UnauthorizedError, to_api_error
from shortlink.schemas import (
    ClickStatsResponse,
    ClientMetadata,
    DailyClickStats,
    HealthResponse,
    LinkPage,
    LinkSummary,
    ShortLinkCreate,
    ShortLinkResponse,
)

__all__ = ["router", "shortlink_error_handler", "client_ip"]

router = APIRouter()


async def shortlink_error_handler(request: Request, exc: ShortLinkError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": asdict(to_api_error(exc))})


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(manager: ServiceManager = Depends(get_service_manager)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        async with manager.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        manager.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        await manager.redis.ping()
    except Exception as e:
        manager.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/api/links", response_model=ShortLinkResponse, status_code=201, tags=["links"])
async def create_link(
    payload: ShortLinkCreate,
    owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
    manager: ServiceManager = Depends(get_service_manager),
) -> ShortLinkResponse:
    link = await manager.link_service.create(payload.url, owner_id=owner_id, expires_at=payload.expires_at)
    return ShortLinkResponse.from_link(link, manager.settings.BASE_URL)


@router.get("/api/links", response_model=LinkPage, tags=["links"])
async def list_links(
    page: int = Query(default=0, ge=0),
    size: int = Query(default=20, ge=1, le=100),
    active_only: bool = False,
    owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
    manager: ServiceManager = Depends(get_service_manager),
) -> LinkPage:
    if owner_id is None:
        raise UnauthorizedError("Authentication required")
    return await manager.link_service.list_for_owner(owner_id, page, size, active_only)


@router.get("/api/links/summary", response_model=LinkSummary, tags=["links"])
async def link_summary(
    owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
    manager: ServiceManager = Depends(get_service_manager),
) -> LinkSummary:
    if owner_id is None:
        raise UnauthorizedError("Authentication required")
    return await manager.link_service.summarize_for_owner(owner_id)


@router.get("/api/links/{short_code}", response_model=ShortLinkResponse, tags=["links"])
async def link_details(
    short_code: str,
    owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
    manager: ServiceManager = Depends(get_service_manager),
) -> ShortLinkResponse:
    await manager.link_service.validate_ownership(short_code, owner_id)
    link = await manager.link_service.get_link(short_code)
    return ShortLinkResponse.from_link(link, manager.settings.BASE_URL)


@router.get("/api/analytics/{short_code}", response_model=ClickStatsResponse, tags=["analytics"])
async def get_analytics(
    short_code: str,
    owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
    manager: ServiceManager = Depends(get_service_manager),
) -> ClickStatsResponse:
    return await manager.analytics.get_stats_for_owner(short_code, owner_id)


@router.get("/api/analytics/{short_code}/daily", response_model=list[DailyClickStats], tags=["analytics"])
async def daily_analytics(
    short_code: str,
    days: int | None = Query(default=None, ge=1, le=365),
    start: datetime.datetime | None = None,
    end: datetime.datetime | None = None,
    owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
    manager: ServiceManager = Depends(get_service_manager),
) -> list[DailyClickStats]:
    await manager.link_service.validate_ownership(short_code, owner_id)
    return await manager.analytics.get_daily_stats(short_code, days=days, start=start, end=end)


@router.get("/api/analytics/{short_code}/total", tags=["analytics"])
async def total_clicks(
    short_code: str,
    start: datetime.datetime | None = None,
    end: datetime.datetime | None = None,
    owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
    manager: ServiceManager = Depends(get_service_manager),
) -> dict[str, int]:
    await manager.link_service.validate_ownership(short_code, owner_id)
    if start is None and end is None:
        return {"total_clicks": await manager.analytics.get_total_clicks(short_code)}
    if start is None or end is None:
        raise InvalidInputError("start and end must be given together")
    return {"total_clicks": await manager.analytics.get_click_count(short_code, start, end)}


@router.post("/api/analytics/{short_code}/refresh", response_model=ClickStatsResponse, tags=["analytics"])
async def refresh_analytics(
    short_code: str,
    owner_id: str | None = Header(default=None, alias="X-Owner-Id"),
    manager: ServiceManager = Depends(get_service_manager),
) -> ClickStatsResponse:
    await manager.link_service.validate_ownership(short_code, owner_id)
    return await manager.analytics.refresh(short_code)


@router.post("/api/maintenance/expire", tags=["maintenance"])
async def expire_links(manager: ServiceManager = Depends(get_service_manager)) -> dict[str, int]:
    return {"deactivated": await manager.sweeper.run_once()}


@router.get("/{short_code}", tags=["redirect"])
async def redirect(
    short_code: str,
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RedirectResponse:
    target = await manager.link_service.resolve(short_code)
    metadata = ClientMetadata(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
    )
    await manager.pipeline.record(short_code, metadata)
    return RedirectResponse(url=target, status_code=302)
