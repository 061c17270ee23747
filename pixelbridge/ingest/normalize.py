"""Map Shopify and storefront payloads into event records."""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping

from pixelbridge.errors import InvalidPayload
from pixelbridge.ingest.models import SOURCE_PIXEL, SOURCE_WEBHOOK, EventRecord

logger = logging.getLogger(__name__)

ADD_TO_CART = "addToCart"
INITIATE_CHECKOUT = "initiateCheckout"
PURCHASE = "purchase"
PAGEVIEW = "pageview"
PAGEVIEW_NAMES = (PAGEVIEW, "page_view", "PageView")

UTM_FIELDS = {
    "utmSource": "utm_source",
    "utmMedium": "utm_medium",
    "utmCampaign": "utm_campaign",
    "utmTerm": "utm_term",
    "utmContent": "utm_content",
}


def to_float(value: Any) -> float:
    """Parse a price-like value; absent, unparsable and non-finite values are 0."""
    if value in (None, ""):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_int(value: Any) -> int:
    return int(to_float(value))


def _str_or_none(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return str(value)


def normalize_line_items(
    payload: Mapping[str, Any],
    *,
    event_name: str,
    catalog_id: str | None = None,
    currency: str = "USD",
    extra: Mapping[str, Any] | None = None,
    url: str | None = None,
) -> list[EventRecord]:
    """One record per entry in ``line_items``; an empty cart yields nothing."""
    items = payload.get("line_items") or []
    currency = payload.get("currency") or currency
    records: list[EventRecord] = []
    for item in items:
        if not isinstance(item, Mapping):
            logger.warning("Skipping malformed line item in %s payload", event_name)
            continue
        custom_data: dict[str, Any] = {
            "variant_id": item.get("variant_id"),
            "sku": item.get("sku"),
            "source": SOURCE_WEBHOOK,
        }
        if extra:
            custom_data.update(extra)
        if catalog_id:
            custom_data["catalog_id"] = catalog_id
        records.append(
            EventRecord(
                event_name=event_name,
                source=SOURCE_WEBHOOK,
                product_id=_str_or_none(item.get("product_id")),
                product_name=item.get("title"),
                value=to_float(item.get("price")),
                quantity=to_int(item.get("quantity")),
                currency=currency,
                url=url,
                custom_data=custom_data,
            )
        )
    return records


def normalize_cart(payload: Mapping[str, Any], *, catalog_id: str | None = None, currency: str = "USD") -> list[EventRecord]:
    return normalize_line_items(payload, event_name=ADD_TO_CART, catalog_id=catalog_id, currency=currency)


def normalize_checkout(payload: Mapping[str, Any], *, catalog_id: str | None = None, currency: str = "USD") -> list[EventRecord]:
    return normalize_line_items(
        payload,
        event_name=INITIATE_CHECKOUT,
        catalog_id=catalog_id,
        currency=currency,
        extra={"checkout_token": payload.get("token")},
        url=payload.get("abandoned_checkout_url"),
    )


def normalize_order(payload: Mapping[str, Any], *, catalog_id: str | None = None, currency: str = "USD") -> list[EventRecord]:
    order_id = _str_or_none(payload.get("id")) or payload.get("name")
    return normalize_line_items(
        payload,
        event_name=PURCHASE,
        catalog_id=catalog_id,
        currency=currency,
        extra={"order_id": order_id, "order_name": payload.get("name")},
        url=payload.get("order_status_url"),
    )


def normalize_pixel_event(
    payload: Mapping[str, Any],
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    catalog_id: str | None = None,
) -> EventRecord:
    """Single record for a pageview or custom event fired by the storefront pixel."""
    event_name = payload.get("eventName")
    if not event_name or not isinstance(event_name, str):
        raise InvalidPayload()
    custom_data: dict[str, Any] = {}
    extra = payload.get("customData") or payload.get("properties") or {}
    if isinstance(extra, Mapping):
        custom_data.update(extra)
    for camel, snake in UTM_FIELDS.items():
        if payload.get(camel):
            custom_data[snake] = payload[camel]
    if payload.get("referrer"):
        custom_data["referrer"] = payload["referrer"]
    custom_data["source"] = SOURCE_PIXEL
    if catalog_id and payload.get("productId"):
        custom_data["catalog_id"] = catalog_id
    return EventRecord(
        event_name=event_name,
        source=SOURCE_PIXEL,
        product_id=_str_or_none(payload.get("productId")),
        product_name=payload.get("productName"),
        value=to_float(payload.get("value")),
        quantity=to_int(payload.get("quantity")),
        currency=payload.get("currency"),
        url=payload.get("url"),
        session_id=payload.get("sessionId"),
        ip_address=ip_address,
        user_agent=user_agent,
        custom_data=custom_data,
    )
