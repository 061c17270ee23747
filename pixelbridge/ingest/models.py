"""Ingestion data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

SOURCE_WEBHOOK = "webhook"
SOURCE_PIXEL = "pixel"


@dataclass(slots=True)
class Tenant:
    id: int
    app_id: str
    name: str
    shop_domain: str
    owner: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class TenantSettings:
    tenant_id: int
    meta_pixel_enabled: bool = False
    meta_access_token: str | None = None
    meta_pixel_id: str | None = None
    meta_test_event_code: str | None = None
    meta_business_id: str | None = None
    currency: str = "USD"
    track_pageviews: bool = True
    track_add_to_cart: bool = True
    track_checkouts: bool = True
    track_purchases: bool = True
    record_ip: bool = True


@dataclass(slots=True)
class Catalog:
    id: int
    tenant_id: int
    catalog_id: str
    name: str
    pixel_id: str | None
    pixel_enabled: bool
    created_at: datetime


@dataclass(slots=True)
class WebhookPayload:
    topic: str
    shop_domain: str | None
    data: Mapping[str, Any]


@dataclass(slots=True)
class EventRecord:
    """A normalized event that has not been stored yet."""

    event_name: str
    source: str
    product_id: str | None = None
    product_name: str | None = None
    value: float = 0.0
    quantity: int = 0
    currency: str | None = None
    url: str | None = None
    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    custom_data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(slots=True)
class StoredEvent:
    id: int
    tenant_id: int
    event_name: str
    source: str
    product_id: str | None
    product_name: str | None
    value: float
    quantity: int
    currency: str | None
    url: str | None
    session_id: str | None
    ip_address: str | None
    user_agent: str | None
    custom_data: dict[str, Any]
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventName": self.event_name,
            "source": self.source,
            "productId": self.product_id,
            "productName": self.product_name,
            "value": self.value,
            "quantity": self.quantity,
            "currency": self.currency,
            "url": self.url,
            "sessionId": self.session_id,
            "customData": self.custom_data,
            "createdAt": self.created_at.isoformat(),
        }
