"""Tenant, settings and catalog lookups."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine, RowMapping

from pixelbridge.db.tables import catalogs, custom_events, tenant_settings, tenants
from pixelbridge.ingest.models import Catalog, Tenant, TenantSettings
from pixelbridge.utils.dates import utc_now

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "meta_pixel_enabled",
    "meta_access_token",
    "meta_pixel_id",
    "meta_test_event_code",
    "meta_business_id",
    "currency",
    "track_pageviews",
    "track_add_to_cart",
    "track_checkouts",
    "track_purchases",
    "record_ip",
)
# Only these may be cleared; a null for any other setting is ignored.
NULLABLE_SETTINGS = {"meta_access_token", "meta_pixel_id", "meta_test_event_code", "meta_business_id"}


class TenantStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, *, app_id: str, name: str, shop_domain: str, owner: str | None = None, **settings: Any) -> Tenant:
        """Register an installation together with its settings row."""
        now = utc_now()
        with self.engine.begin() as conn:
            result = conn.execute(
                insert(tenants).values(app_id=app_id, name=name, shop_domain=shop_domain, owner=owner, created_at=now)
            )
            tenant_id = int(result.inserted_primary_key[0])
            conn.execute(insert(tenant_settings).values(tenant_id=tenant_id, **_defaults(settings)))
        logger.info("Registered tenant %s for %s", app_id, shop_domain)
        return Tenant(id=tenant_id, app_id=app_id, name=name, shop_domain=shop_domain, owner=owner, created_at=now)

    def by_app_id(self, app_id: str) -> Tenant | None:
        return self._one(tenants.c.app_id == app_id)

    def by_shop_domain(self, shop_domain: str) -> Tenant | None:
        return self._one(tenants.c.shop_domain == shop_domain)

    def _one(self, clause) -> Tenant | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(tenants).where(clause)).mappings().first()
        if row is None:
            return None
        return Tenant(
            id=row["id"],
            app_id=row["app_id"],
            name=row["name"],
            shop_domain=row["shop_domain"],
            owner=row["owner"],
            created_at=row["created_at"],
        )

    def settings_for(self, tenant_id: int) -> TenantSettings:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(tenant_settings).where(tenant_settings.c.tenant_id == tenant_id)
            ).mappings().first()
        if row is None:
            return TenantSettings(tenant_id=tenant_id)
        return _to_settings(row)

    def update_settings(self, tenant_id: int, changes: Mapping[str, Any]) -> TenantSettings:
        values = {
            key: value
            for key, value in changes.items()
            if key in SETTINGS_FIELDS and (value is not None or key in NULLABLE_SETTINGS)
        }
        with self.engine.begin() as conn:
            exists = conn.execute(
                select(tenant_settings.c.tenant_id).where(tenant_settings.c.tenant_id == tenant_id)
            ).first()
            if exists is None:
                conn.execute(insert(tenant_settings).values(tenant_id=tenant_id, **_defaults(values)))
            elif values:
                conn.execute(
                    update(tenant_settings).where(tenant_settings.c.tenant_id == tenant_id).values(**values)
                )
        logger.info("Updated settings for tenant %s: %s", tenant_id, sorted(values))
        return self.settings_for(tenant_id)

    def active_catalog(self, tenant_id: int, pixel_id: str | None) -> Catalog | None:
        """Newest pixel-enabled catalog linked to the tenant's current pixel."""
        if not pixel_id:
            return None
        stmt = (
            select(catalogs)
            .where(
                catalogs.c.tenant_id == tenant_id,
                catalogs.c.pixel_id == pixel_id,
                catalogs.c.pixel_enabled.is_(True),
            )
            .order_by(catalogs.c.created_at.desc(), catalogs.c.id.desc())
            .limit(1)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return _to_catalog(row) if row else None

    def add_catalog(self, tenant_id: int, *, catalog_id: str, name: str, pixel_id: str | None) -> Catalog:
        now = utc_now()
        with self.engine.begin() as conn:
            result = conn.execute(
                insert(catalogs).values(
                    tenant_id=tenant_id,
                    catalog_id=catalog_id,
                    name=name,
                    pixel_id=pixel_id,
                    pixel_enabled=True,
                    created_at=now,
                )
            )
            row_id = int(result.inserted_primary_key[0])
        return Catalog(
            id=row_id,
            tenant_id=tenant_id,
            catalog_id=catalog_id,
            name=name,
            pixel_id=pixel_id,
            pixel_enabled=True,
            created_at=now,
        )

    def set_custom_event(self, tenant_id: int, name: str, meta_event_name: str | None, *, is_active: bool = True) -> None:
        with self.engine.begin() as conn:
            existing = conn.execute(
                select(custom_events.c.id).where(custom_events.c.tenant_id == tenant_id, custom_events.c.name == name)
            ).scalar_one_or_none()
            if existing is None:
                conn.execute(
                    insert(custom_events).values(
                        tenant_id=tenant_id, name=name, meta_event_name=meta_event_name, is_active=is_active
                    )
                )
            else:
                conn.execute(
                    update(custom_events)
                    .where(custom_events.c.id == existing)
                    .values(meta_event_name=meta_event_name, is_active=is_active)
                )

    def list_custom_events(self, tenant_id: int) -> list[dict[str, Any]]:
        stmt = (
            select(custom_events.c.name, custom_events.c.meta_event_name, custom_events.c.is_active)
            .where(custom_events.c.tenant_id == tenant_id)
            .order_by(custom_events.c.name)
        )
        with self.engine.connect() as conn:
            return [
                {"name": name, "metaEventName": meta_name, "isActive": bool(active)}
                for name, meta_name, active in conn.execute(stmt)
            ]

    def custom_event_names(self, tenant_id: int) -> dict[str, str]:
        """Active ``name -> meta_event_name`` overrides for a tenant."""
        stmt = select(custom_events.c.name, custom_events.c.meta_event_name).where(
            custom_events.c.tenant_id == tenant_id,
            custom_events.c.is_active.is_(True),
            custom_events.c.meta_event_name.is_not(None),
        )
        with self.engine.connect() as conn:
            return {name: meta_name for name, meta_name in conn.execute(stmt)}


def _defaults(values: Mapping[str, Any]) -> dict[str, Any]:
    base = TenantSettings(tenant_id=0)
    merged = {key: getattr(base, key) for key in SETTINGS_FIELDS}
    merged.update({key: value for key, value in values.items() if key in SETTINGS_FIELDS})
    return merged


def _to_settings(row: RowMapping) -> TenantSettings:
    return TenantSettings(tenant_id=row["tenant_id"], **{key: row[key] for key in SETTINGS_FIELDS})


def _to_catalog(row: RowMapping) -> Catalog:
    return Catalog(
        id=row["id"],
        tenant_id=row["tenant_id"],
        catalog_id=row["catalog_id"],
        name=row["name"],
        pixel_id=row["pixel_id"],
        pixel_enabled=bool(row["pixel_enabled"]),
        created_at=row["created_at"],
    )
