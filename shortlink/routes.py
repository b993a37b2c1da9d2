"""FastAPI route definitions for the shortlink HTTP boundary.

This module maps core outcomes to HTTP. It holds no business rules: creation
errors and resolution statuses come from the services and are translated
to status codes and redirects here.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /api/shorten
        ├─ URLCreate (request body)
        └─ URLResponse (201), 409 conflict, 422 invalid,
           500 slug space exhausted, 503 store unavailable

    GET  /api/analytics/:slug
        └─ AnalyticsResponse (200) or 404

    GET  /:slug
        ├─ 307 -> original URL with UTM params      (found)
        ├─ 307 -> {FRONTEND_URL}/expired?slug=...   (expired)
        ├─ 307 -> {FRONTEND_URL}/404                (not found)
        └─ 400 malformed slug

Key Behaviours
===============
- Redirects never fail with 5xx: resolution degrades to not-found.
- Not-found and expired stay distinguishable up to the redirect target.
- Referrer and user agent are read from the request headers and recorded
  by the resolution side effects.
"""

from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from shortlink.analytics import AnalyticsService
from shortlink.creation import CreationService
from shortlink.dependencies import (
    RequestContext,
    ServiceManager,
    get_analytics_service,
    get_creation_service,
    get_request_context,
    get_resolution_service,
    get_service_manager,
)
from shortlink.enums import HealthStatus, ResolutionStatus
from shortlink.exceptions import (
    SlugConflictError,
    SlugGenerationExhaustedError,
    StoreUnavailableError,
    ValidationFailureError,
)
from shortlink.resolution import ResolutionService
from shortlink.schemas import AnalyticsResponse, ClickLogResponse, HealthResponse, URLCreate, URLResponse
from shortlink.slugs import is_valid_slug

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    try:
        await manager.store.ping()
    except StoreUnavailableError as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    return HealthResponse(status=db_status, database=db_status)


@router.post("/api/shorten", response_model=URLResponse, status_code=201, tags=["urls"])
async def shorten_url(
    payload: URLCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: CreationService = Depends(get_creation_service),
) -> URLResponse:
    ctx.add_tag("url_creation")
    ctx.logger.info(f"URL shortening requested: {payload.original_url}")

    try:
        record = await service.create_shortened_url(payload)
    except SlugConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValidationFailureError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except SlugGenerationExhaustedError as exc:
        raise HTTPException(status_code=500, detail="Failed to create shortened URL") from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Storage temporarily unavailable") from exc

    ctx.logger.info(f"URL shortened successfully: {record.slug} in {ctx.get_duration():.1f}ms")
    return URLResponse(
        id=record.id,
        original_url=record.original_url,
        short_url=f"{ctx.settings.BASE_URL}/{record.slug}",
        slug=record.slug,
        expiration_date=record.expiration_date,
        utm_params=record.utm_params,
        click_count=record.click_count,
        created_at=record.created_at,
    )


@router.get("/api/analytics/{slug}", response_model=AnalyticsResponse, tags=["urls"])
async def get_analytics(
    slug: str,
    ctx: RequestContext = Depends(get_request_context),
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResponse:
    try:
        report = await service.get_analytics(slug)
    except StoreUnavailableError as exc:
        ctx.logger.error(f"Analytics unavailable for {slug}: {exc}")
        raise HTTPException(status_code=503, detail="Storage temporarily unavailable") from exc

    if report is None:
        raise HTTPException(status_code=404, detail="Short URL not found")

    return AnalyticsResponse(
        url=report.record,
        clicks=[ClickLogResponse.model_validate(click) for click in report.clicks],
        is_expired=report.is_expired,
    )


@router.get("/{slug}", tags=["redirect"])
async def redirect_to_url(
    slug: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ResolutionService = Depends(get_resolution_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")
    if not is_valid_slug(slug, ctx.settings.SLUG_LENGTH):
        raise HTTPException(status_code=400, detail="Invalid slug format")

    result = await service.resolve(slug, ctx.referrer, ctx.user_agent)

    if result.status is ResolutionStatus.FOUND:
        ctx.logger.info(f"Redirect successful: {slug} -> {result.redirect_url}")
        return RedirectResponse(url=result.redirect_url, status_code=307)

    if result.status is ResolutionStatus.EXPIRED:
        ctx.logger.info(f"Redirect to expired page: {slug}")
        target = f"{ctx.settings.FRONTEND_URL}/expired?{urlencode({'slug': slug})}"
        return RedirectResponse(url=target, status_code=307)

    ctx.logger.warning(f"Redirect failed - slug not found: {slug}")
    return RedirectResponse(url=f"{ctx.settings.FRONTEND_URL}/404", status_code=307)
