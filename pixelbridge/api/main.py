"""FastAPI application for Shopify webhooks, pixel tracking and dashboard reporting."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy import text
from sqlalchemy.engine import Engine

from pixelbridge.config import AppConfig, configure_logging, load_config
from pixelbridge.db.session import create_engine_from_config
from pixelbridge.errors import InvalidPayload, PixelbridgeError, TenantNotFound
from pixelbridge.forward import ConversionForwarder, MetaGraphClient, Sent
from pixelbridge.ingest.models import Tenant, TenantSettings
from pixelbridge.ingest.webhooks import receive_webhook
from pixelbridge.logic import analytics
from pixelbridge.pipeline import EventPipeline
from pixelbridge.store import EventStore, TenantStore
from pixelbridge.utils.dates import range_start

logger = logging.getLogger(__name__)

CACHE_HEADERS = {"Cache-Control": "public, max-age=60"}

router = APIRouter()


class SettingsUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    meta_pixel_enabled: bool | None = None
    meta_access_token: str | None = None
    meta_pixel_id: str | None = None
    meta_test_event_code: str | None = None
    meta_business_id: str | None = None
    currency: str | None = None
    track_pageviews: bool | None = None
    track_add_to_cart: bool | None = None
    track_checkouts: bool | None = None
    track_purchases: bool | None = None
    record_ip: bool | None = None


class TrackRequest(BaseModel):
    """Storefront pixel event. Unknown keys are kept and passed to the normalizer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    app_id: str = Field(min_length=1)
    event_name: str = Field(min_length=1)
    url: str | None = None
    session_id: str | None = None
    product_id: str | int | None = None
    product_name: str | None = None
    value: Any = None
    quantity: Any = None
    currency: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    referrer: str | None = None
    custom_data: dict[str, Any] | None = None


class CustomEventRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(min_length=1)
    meta_event_name: str | None = None
    is_active: bool = True


class CatalogRequest(BaseModel):
    name: str


def mask_token(token: str | None) -> str | None:
    if not token:
        return None
    return f"****{token[-4:]}" if len(token) > 8 else "****"


def settings_response(settings: TenantSettings) -> dict[str, Any]:
    return {
        "metaPixelEnabled": settings.meta_pixel_enabled,
        "metaAccessToken": mask_token(settings.meta_access_token),
        "hasAccessToken": bool(settings.meta_access_token),
        "metaPixelId": settings.meta_pixel_id,
        "metaTestEventCode": settings.meta_test_event_code,
        "metaBusinessId": settings.meta_business_id,
        "currency": settings.currency,
        "trackPageviews": settings.track_pageviews,
        "trackAddToCart": settings.track_add_to_cart,
        "trackCheckouts": settings.track_checkouts,
        "trackPurchases": settings.track_purchases,
        "recordIp": settings.record_ip,
    }


def get_engine(request: Request) -> Engine:
    return request.app.state.engine


def get_tenants(request: Request) -> TenantStore:
    return request.app.state.tenants


def get_events(request: Request) -> EventStore:
    return request.app.state.events


def get_pipeline(request: Request) -> EventPipeline:
    return request.app.state.pipeline


def get_tenant(app_id: str | None = Query(None, alias="appId"), tenants: TenantStore = Depends(get_tenants)) -> Tenant:
    if not app_id:
        raise InvalidPayload("App ID required")
    tenant = tenants.by_app_id(app_id)
    if tenant is None:
        raise TenantNotFound()
    return tenant


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else None)


async def _line_item_webhook(topic: str, request: Request) -> JSONResponse:
    state = request.app.state
    webhook = receive_webhook(await request.body(), request.headers, state.config, topic=topic)
    tenant = state.tenants.by_shop_domain(webhook.shop_domain) if webhook.shop_domain else None
    if tenant is None:
        # Acknowledge anyway so Shopify does not keep retrying for a shop we do not know.
        logger.warning("No tenant for shop %s on %s webhook", webhook.shop_domain, topic)
        return JSONResponse({"status": "ok", "events": 0})
    settings = state.tenants.settings_for(tenant.id)
    outcomes = await state.pipeline.process_webhook(topic, webhook.data, tenant, settings)
    return JSONResponse({"status": "ok", "events": len(outcomes)})


@router.post("/webhooks/carts/create")
async def carts_create(request: Request) -> JSONResponse:
    return await _line_item_webhook("carts/create", request)


@router.post("/webhooks/checkouts/create")
async def checkouts_create(request: Request) -> JSONResponse:
    return await _line_item_webhook("checkouts/create", request)


@router.post("/webhooks/orders/create")
async def orders_create(request: Request) -> JSONResponse:
    return await _line_item_webhook("orders/create", request)


@router.post("/webhooks/app/uninstalled")
async def app_uninstalled(request: Request) -> JSONResponse:
    state = request.app.state
    webhook = receive_webhook(await request.body(), request.headers, state.config, topic="app/uninstalled")
    tenant = state.tenants.by_shop_domain(webhook.shop_domain) if webhook.shop_domain else None
    if tenant is None:
        logger.info("Uninstall for unknown shop %s", webhook.shop_domain)
        return JSONResponse({"status": "ok", "events": 0})
    removed = state.events.purge_tenant(tenant.id)
    return JSONResponse({"status": "ok", "events": removed})


@router.post("/track")
async def track(
    request: Request,
    tenants: TenantStore = Depends(get_tenants),
    pipeline: EventPipeline = Depends(get_pipeline),
) -> JSONResponse:
    try:
        body = TrackRequest.model_validate_json(await request.body())
    except ValidationError as exc:
        raise InvalidPayload("Missing required fields") from exc
    tenant = tenants.by_app_id(body.app_id)
    if tenant is None:
        raise TenantNotFound()
    settings = tenants.settings_for(tenant.id)
    outcome = await pipeline.process_pixel_event(
        body.model_dump(by_alias=True, exclude_none=True),
        tenant,
        settings,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if outcome is None:
        return JSONResponse({"success": True, "eventId": None, "forwarded": False, "skipped": "tracking disabled"})
    return JSONResponse(
        {
            "success": True,
            "eventId": outcome.event_id,
            "forwarded": isinstance(outcome.result, Sent),
            "forward": outcome.result.to_dict(),
        }
    )


@router.get("/api/events")
async def list_events(
    tenant: Tenant = Depends(get_tenant),
    limit: int = Query(50, ge=0),
    offset: int = Query(0, ge=0),
    event_name: str | None = Query(None, alias="eventName"),
    events: EventStore = Depends(get_events),
) -> JSONResponse:
    rows = events.query(tenant.id, event_name=event_name, limit=limit, offset=offset)
    total = events.count(tenant.id, event_name=event_name)
    return JSONResponse({"events": [row.to_dict() for row in rows], "total": total}, headers=CACHE_HEADERS)


@router.get("/api/analytics")
async def dashboard_analytics(
    tenant: Tenant = Depends(get_tenant),
    range_: str = Query("7d", alias="range"),
    engine: Engine = Depends(get_engine),
) -> JSONResponse:
    since = range_start(range_, default="7d")
    return JSONResponse(
        {
            "range": range_,
            "overview": analytics.overview(engine, tenant.id, since),
            "eventsByName": analytics.event_name_counts(engine, tenant.id, since),
            "dailyStats": analytics.daily_counts(engine, tenant.id, since),
        },
        headers=CACHE_HEADERS,
    )


@router.get("/api/utm-analytics")
async def utm_analytics(
    tenant: Tenant = Depends(get_tenant),
    range_: str = Query("30d", alias="range"),
    report_type: str = Query("facebook", alias="type"),
    engine: Engine = Depends(get_engine),
) -> JSONResponse:
    if report_type not in analytics.REPORT_TYPES:
        raise InvalidPayload("Invalid type parameter")
    since = range_start(range_, default="30d")
    return JSONResponse(analytics.utm_report(engine, tenant.id, report_type, since))


@router.get("/api/app-settings")
async def read_settings(tenant: Tenant = Depends(get_tenant), tenants: TenantStore = Depends(get_tenants)) -> dict[str, Any]:
    return settings_response(tenants.settings_for(tenant.id))


@router.put("/api/app-settings")
async def write_settings(
    changes: SettingsUpdate,
    tenant: Tenant = Depends(get_tenant),
    tenants: TenantStore = Depends(get_tenants),
) -> dict[str, Any]:
    values = changes.model_dump(exclude_unset=True)
    settings = tenants.update_settings(tenant.id, values)
    return settings_response(settings)


def custom_events_response(tenants: TenantStore, tenant_id: int) -> dict[str, Any]:
    return {"customEvents": tenants.list_custom_events(tenant_id), "mappings": tenants.custom_event_names(tenant_id)}


@router.get("/api/custom-events")
async def read_custom_events(
    tenant: Tenant = Depends(get_tenant), tenants: TenantStore = Depends(get_tenants)
) -> dict[str, Any]:
    return custom_events_response(tenants, tenant.id)


@router.post("/api/custom-events")
async def write_custom_event(
    body: CustomEventRequest,
    tenant: Tenant = Depends(get_tenant),
    tenants: TenantStore = Depends(get_tenants),
) -> dict[str, Any]:
    tenants.set_custom_event(tenant.id, body.name, body.meta_event_name, is_active=body.is_active)
    logger.info("Mapped custom event %s to %s for tenant %s", body.name, body.meta_event_name, tenant.app_id)
    return custom_events_response(tenants, tenant.id)


@router.post("/api/catalog")
async def create_catalog(
    body: CatalogRequest,
    request: Request,
    tenant: Tenant = Depends(get_tenant),
    tenants: TenantStore = Depends(get_tenants),
) -> dict[str, Any]:
    settings = tenants.settings_for(tenant.id)
    if not settings.meta_business_id or not settings.meta_access_token:
        raise HTTPException(status_code=400, detail="Meta business id and access token required")
    client: MetaGraphClient = request.app.state.graph_client
    catalog_id = await client.create_catalog(settings.meta_business_id, body.name, settings.meta_access_token)
    catalog = tenants.add_catalog(tenant.id, catalog_id=catalog_id, name=body.name, pixel_id=settings.meta_pixel_id)
    logger.info("Created catalog %s for tenant %s", catalog.catalog_id, tenant.app_id)
    return {"catalogId": catalog.catalog_id, "name": catalog.name, "pixelId": catalog.pixel_id}


@router.get("/health")
async def health(engine: Engine = Depends(get_engine)) -> dict[str, str]:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok"}


async def handle_pixelbridge_error(request: Request, exc: PixelbridgeError) -> JSONResponse:
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


def create_app(
    config: AppConfig | None = None,
    *,
    engine: Engine | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the application with its engine, stores and Graph client on ``app.state``."""
    config = config or load_config()
    configure_logging(config.log_level)
    engine = engine or create_engine_from_config(config)
    graph_client = MetaGraphClient(config, session=http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if http_client is None:
            await graph_client.close()

    app = FastAPI(title="Pixelbridge API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_exception_handler(PixelbridgeError, handle_pixelbridge_error)

    events = EventStore(engine)
    tenants = TenantStore(engine)
    app.state.config = config
    app.state.engine = engine
    app.state.events = events
    app.state.tenants = tenants
    app.state.graph_client = graph_client
    app.state.pipeline = EventPipeline(events, tenants, ConversionForwarder(graph_client))

    app.include_router(router)
    return app
