"""Meta Conversions API forwarding."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

import httpx

from pixelbridge.config import AppConfig
from pixelbridge.errors import MetaAPIError
from pixelbridge.forward.results import Failed, ForwardResult, Sent, Skipped
from pixelbridge.ingest.models import SOURCE_WEBHOOK, StoredEvent, TenantSettings
from pixelbridge.ingest.normalize import to_int
from pixelbridge.utils.dates import unix_time

logger = logging.getLogger(__name__)

PLACEHOLDER_IP = "0.0.0.0"
PLACEHOLDER_USER_AGENT = "Shopify Webhook"

CANONICAL_EVENT_NAMES = {
    "PageView": ("pageview", "page_view"),
    "ViewContent": ("viewContent", "view_content"),
    "AddToCart": ("addToCart", "add_to_cart"),
    "InitiateCheckout": ("initiateCheckout", "initiate_checkout"),
    "AddPaymentInfo": ("addPaymentInfo", "add_payment_info"),
    "Purchase": ("purchase",),
    "Lead": ("lead",),
    "Contact": ("contact",),
    "Search": ("search",),
}
EVENT_NAME_MAP = {
    alias: canonical
    for canonical, aliases in CANONICAL_EVENT_NAMES.items()
    for alias in (canonical, *aliases)
}

# Keys that are stored for reporting but never sent to Meta.
INTERNAL_KEYS = {"source", "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content", "referrer", "test_event"}


def meta_event_name(name: str, overrides: Mapping[str, str] | None = None) -> str:
    if overrides and overrides.get(name):
        return overrides[name]
    return EVENT_NAME_MAP.get(name, name)


class MetaGraphClient:
    def __init__(self, config: AppConfig, *, session: httpx.AsyncClient | None = None) -> None:
        self.base_url = config.graph_base
        self.session = session or httpx.AsyncClient(timeout=config.forward_timeout)

    async def close(self) -> None:
        await self.session.aclose()

    async def send_events(self, pixel_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self._post(f"{self.base_url}/{pixel_id}/events", json=payload)

    async def create_catalog(self, business_id: str, name: str, access_token: str) -> str:
        data = await self._post(
            f"{self.base_url}/{business_id}/owned_product_catalogs",
            data={"name": name, "access_token": access_token},
        )
        catalog_id = data.get("id")
        if not catalog_id:
            raise MetaAPIError("Catalog creation returned no id")
        return str(catalog_id)

    async def _post(self, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self.session.post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise MetaAPIError(f"Network error calling Meta: {exc}") from exc
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        if response.status_code >= 400:
            error = body.get("error") if isinstance(body, dict) else None
            message = error.get("message") if isinstance(error, dict) else response.text
            raise MetaAPIError(f"Meta API error {response.status_code}: {message}", status=response.status_code)
        return body if isinstance(body, dict) else {}


def build_payload(
    event: StoredEvent,
    settings: TenantSettings,
    *,
    event_name: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Conversions API request body for a single stored event."""
    if event.source == SOURCE_WEBHOOK:
        # Webhooks carry no browser context.
        user_data = {"client_ip_address": PLACEHOLDER_IP, "client_user_agent": PLACEHOLDER_USER_AGENT}
    else:
        user_data = {
            "client_ip_address": event.ip_address or PLACEHOLDER_IP,
            "client_user_agent": event.user_agent or "",
        }
        if event.session_id:
            user_data["external_id"] = event.session_id

    custom_data: dict[str, Any] = {
        key: value for key, value in event.custom_data.items() if key not in INTERNAL_KEYS and value is not None
    }
    if event.product_id:
        custom_data["content_ids"] = [event.product_id]
        custom_data["content_type"] = "product"
    if event.product_name:
        custom_data["content_name"] = event.product_name
    custom_data["value"] = event.value
    custom_data["currency"] = event.currency or settings.currency
    custom_data["num_items"] = event.quantity

    meta_event: dict[str, Any] = {
        "event_name": event_name,
        "event_time": unix_time(now),
        "event_id": f"{event.event_name}_{event.id}",
        "action_source": "website",
        "user_data": user_data,
        "custom_data": custom_data,
    }
    if event.url:
        meta_event["event_source_url"] = event.url

    payload: dict[str, Any] = {"data": [meta_event], "access_token": settings.meta_access_token}
    if settings.meta_test_event_code:
        payload["test_event_code"] = settings.meta_test_event_code
    return payload


def skip_reason(event: StoredEvent, settings: TenantSettings) -> str | None:
    if not settings.meta_pixel_enabled:
        return "meta pixel disabled"
    if not settings.meta_access_token:
        return "no access token"
    if not settings.meta_pixel_id:
        return "no pixel id"
    if event.custom_data.get("test_event") is True and not settings.meta_test_event_code:
        return "test event without test event code"
    return None


class ConversionForwarder:
    """Sends stored events to Meta; never raises, always returns a ForwardResult."""

    def __init__(self, client: MetaGraphClient) -> None:
        self.client = client

    async def forward(
        self,
        event: StoredEvent,
        settings: TenantSettings,
        overrides: Mapping[str, str] | None = None,
    ) -> ForwardResult:
        reason = skip_reason(event, settings)
        if reason:
            logger.info("Skipped forwarding event %s (%s): %s", event.id, event.event_name, reason)
            return Skipped(reason)

        name = meta_event_name(event.event_name, overrides)
        payload = build_payload(event, settings, event_name=name)
        try:
            response = await self.client.send_events(settings.meta_pixel_id, payload)
        except MetaAPIError as exc:
            logger.error("Forwarding event %s as %s failed: %s", event.id, name, exc)
            return Failed(str(exc))
        trace = response.get("fbtrace_id")
        result = Sent(
            events_received=to_int(response.get("events_received")),
            fbtrace_id=str(trace) if trace is not None else None,
        )
        logger.info(
            "Forwarded event %s as %s to pixel %s (fbtrace_id=%s)",
            event.id,
            name,
            settings.meta_pixel_id,
            result.fbtrace_id,
        )
        return result
