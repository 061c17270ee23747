"""Store-then-forward processing for webhook and pixel events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pixelbridge.forward import ConversionForwarder, ForwardResult
from pixelbridge.ingest import normalize
from pixelbridge.ingest.models import EventRecord, Tenant, TenantSettings
from pixelbridge.store import EventStore, TenantStore

logger = logging.getLogger(__name__)

Normalizer = Callable[..., list[EventRecord]]

# topic -> (normalizer, settings toggle)
WEBHOOK_TOPICS: dict[str, tuple[Normalizer, str]] = {
    "carts/create": (normalize.normalize_cart, "track_add_to_cart"),
    "checkouts/create": (normalize.normalize_checkout, "track_checkouts"),
    "orders/create": (normalize.normalize_order, "track_purchases"),
}


@dataclass(slots=True)
class EventOutcome:
    event_id: int
    event_name: str
    result: ForwardResult

    def to_dict(self) -> dict[str, Any]:
        return {"eventId": self.event_id, "eventName": self.event_name, "forward": self.result.to_dict()}


class EventPipeline:
    def __init__(self, events: EventStore, tenants: TenantStore, forwarder: ConversionForwarder) -> None:
        self.events = events
        self.tenants = tenants
        self.forwarder = forwarder

    def _catalog_id(self, tenant: Tenant, settings: TenantSettings) -> str | None:
        catalog = self.tenants.active_catalog(tenant.id, settings.meta_pixel_id)
        if catalog:
            logger.debug("Using catalog %s for tenant %s", catalog.catalog_id, tenant.app_id)
            return catalog.catalog_id
        return None

    async def process_webhook(
        self,
        topic: str,
        payload: Mapping[str, Any],
        tenant: Tenant,
        settings: TenantSettings,
    ) -> list[EventOutcome]:
        normalizer, toggle = WEBHOOK_TOPICS[topic]
        if not getattr(settings, toggle):
            logger.info("Tracking disabled for %s on tenant %s", topic, tenant.app_id)
            return []
        if not payload.get("line_items"):
            logger.info("No line items in %s webhook for tenant %s", topic, tenant.app_id)
            return []
        # One catalog lookup per batch, not per line item.
        records = normalizer(payload, catalog_id=self._catalog_id(tenant, settings), currency=settings.currency)
        outcomes = await self._store_and_forward(tenant, settings, records)
        logger.info("Tracked %s events from %s for tenant %s", len(outcomes), topic, tenant.app_id)
        return outcomes

    async def process_pixel_event(
        self,
        payload: Mapping[str, Any],
        tenant: Tenant,
        settings: TenantSettings,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> EventOutcome | None:
        record = normalize.normalize_pixel_event(
            payload,
            ip_address=ip_address if settings.record_ip else None,
            user_agent=user_agent,
            catalog_id=self._catalog_id(tenant, settings),
        )
        if record.event_name in normalize.PAGEVIEW_NAMES and not settings.track_pageviews:
            logger.info("Pageview tracking disabled for tenant %s", tenant.app_id)
            return None
        overrides = self.tenants.custom_event_names(tenant.id)
        outcomes = await self._store_and_forward(tenant, settings, [record], overrides)
        return outcomes[0]

    async def _store_and_forward(
        self,
        tenant: Tenant,
        settings: TenantSettings,
        records: list[EventRecord],
        overrides: Mapping[str, str] | None = None,
    ) -> list[EventOutcome]:
        outcomes: list[EventOutcome] = []
        for record in records:
            event_id = self.events.append(tenant.id, record)
            stored = self.events.get(event_id)
            # A failed forward never removes the stored event.
            result = await self.forwarder.forward(stored, settings, overrides)
            outcomes.append(EventOutcome(event_id=event_id, event_name=record.event_name, result=result))
        return outcomes
