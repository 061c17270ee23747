"""Append-only event storage."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine, RowMapping

from pixelbridge.db.tables import catalogs, custom_events, events, tenant_settings, tenants
from pixelbridge.ingest.models import EventRecord, StoredEvent
from pixelbridge.utils.dates import utc_now

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


class EventStore:
    """Events are only ever inserted; there is no update path."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def append(self, tenant_id: int, record: EventRecord) -> int:
        values = {
            "tenant_id": tenant_id,
            "event_name": record.event_name,
            "product_id": record.product_id,
            "product_name": record.product_name,
            "value": record.value,
            "quantity": record.quantity,
            "currency": record.currency,
            "url": record.url,
            "session_id": record.session_id,
            "ip_address": record.ip_address,
            "user_agent": record.user_agent,
            "custom_data": record.custom_data or {},
            "source": record.source,
            "created_at": record.created_at or utc_now(),
        }
        with self.engine.begin() as conn:
            result = conn.execute(insert(events).values(**values))
            event_id = int(result.inserted_primary_key[0])
        logger.debug("Stored %s event %s for tenant %s", record.event_name, event_id, tenant_id)
        return event_id

    def get(self, event_id: int) -> StoredEvent | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(events).where(events.c.id == event_id)).mappings().first()
        return _to_stored(row) if row else None

    def query(
        self,
        tenant_id: int,
        *,
        event_name: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> list[StoredEvent]:
        """Most recent first. Offset pagination, so concurrent inserts can shift pages."""
        limit = max(0, min(limit, MAX_LIMIT))
        offset = max(0, offset)
        stmt = (
            filter_events(select(events), tenant_id, since, until, event_name)
            .order_by(events.c.created_at.desc(), events.c.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_to_stored(row) for row in rows]

    def count(
        self,
        tenant_id: int,
        *,
        event_name: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> int:
        stmt = filter_events(select(func.count()).select_from(events), tenant_id, since, until, event_name)
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def purge_tenant(self, tenant_id: int) -> int:
        """Delete everything owned by a tenant. Only called on uninstall."""
        with self.engine.begin() as conn:
            removed = conn.execute(delete(events).where(events.c.tenant_id == tenant_id)).rowcount
            conn.execute(delete(catalogs).where(catalogs.c.tenant_id == tenant_id))
            conn.execute(delete(custom_events).where(custom_events.c.tenant_id == tenant_id))
            conn.execute(delete(tenant_settings).where(tenant_settings.c.tenant_id == tenant_id))
            conn.execute(delete(tenants).where(tenants.c.id == tenant_id))
        logger.info("Purged tenant %s (%s events)", tenant_id, removed)
        return removed


def filter_events(
    stmt,
    tenant_id: int,
    since: datetime | None = None,
    until: datetime | None = None,
    event_name: str | None = None,
):
    """Restrict an events select to one tenant and an optional window and name."""
    stmt = stmt.where(events.c.tenant_id == tenant_id)
    if event_name:
        stmt = stmt.where(events.c.event_name == event_name)
    if since:
        stmt = stmt.where(events.c.created_at >= since)
    if until:
        stmt = stmt.where(events.c.created_at <= until)
    return stmt


def load_json(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return {}
    return dict(value) if isinstance(value, dict) else {}


def _to_stored(row: RowMapping) -> StoredEvent:
    return StoredEvent(
        id=row["id"],
        tenant_id=row["tenant_id"],
        event_name=row["event_name"],
        source=row["source"],
        product_id=row["product_id"],
        product_name=row["product_name"],
        value=float(row["value"] or 0.0),
        quantity=int(row["quantity"] or 0),
        currency=row["currency"],
        url=row["url"],
        session_id=row["session_id"],
        ip_address=row["ip_address"],
        user_agent=row["user_agent"],
        custom_data=load_json(row["custom_data"]),
        created_at=row["created_at"],
    )
