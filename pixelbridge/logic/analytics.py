"""Dashboard aggregates computed from the events table."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

import pandas as pd
from sqlalchemy import case, distinct, func, select
from sqlalchemy.engine import Engine

from pixelbridge.db.tables import events
from pixelbridge.ingest.normalize import PAGEVIEW_NAMES
from pixelbridge.store.events import filter_events, load_json
from pixelbridge.utils.dates import as_date_string

ADD_TO_CART_NAMES = ("addToCart", "add_to_cart", "AddToCart")
CHECKOUT_NAMES = ("initiateCheckout", "initiate_checkout", "InitiateCheckout")
PURCHASE_NAMES = ("purchase", "Purchase")
CONVERSION_NAMES = ("purchase", "Purchase", "checkout_completed", "lead", "Lead")
FACEBOOK_SOURCES = ("facebook", "instagram", "fb", "ig")

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign")
FRAME_COLUMNS = ["event_name", "value", "session_id", "order_key", *UTM_KEYS]

REPORT_TYPES = ("facebook", "campaigns", "sources")

# Line-item rows hold a unit price; pixel rows without a quantity hold the total.
LINE_TOTAL = case((events.c.quantity > 0, events.c.value * events.c.quantity), else_=events.c.value)


def _revenue(names: Sequence[str]):
    return func.sum(case((events.c.event_name.in_(names), LINE_TOTAL), else_=0.0))


def event_name_counts(
    engine: Engine, tenant_id: int, since: datetime | None = None, until: datetime | None = None
) -> list[dict[str, Any]]:
    count = func.count().label("count")
    stmt = filter_events(select(events.c.event_name, count), tenant_id, since, until)
    stmt = stmt.group_by(events.c.event_name).order_by(count.desc(), events.c.event_name)
    with engine.connect() as conn:
        return [{"event": name, "count": int(total)} for name, total in conn.execute(stmt)]


def daily_counts(
    engine: Engine, tenant_id: int, since: datetime | None = None, until: datetime | None = None
) -> list[dict[str, Any]]:
    day = func.date(events.c.created_at).label("day")
    stmt = filter_events(
        select(
            day,
            func.count().label("events"),
            func.sum(case((events.c.event_name.in_(PAGEVIEW_NAMES), 1), else_=0)).label("pageviews"),
            func.sum(case((events.c.event_name.in_(PURCHASE_NAMES), 1), else_=0)).label("purchases"),
            _revenue(PURCHASE_NAMES).label("revenue"),
        ),
        tenant_id,
        since,
        until,
    )
    stmt = stmt.group_by(day).order_by(day)
    with engine.connect() as conn:
        return [
            {
                "date": as_date_string(row.day),
                "events": int(row.events),
                "pageviews": int(row.pageviews or 0),
                "purchases": int(row.purchases or 0),
                "revenue": float(row.revenue or 0.0),
            }
            for row in conn.execute(stmt)
        ]


def overview(
    engine: Engine, tenant_id: int, since: datetime | None = None, until: datetime | None = None
) -> dict[str, Any]:
    def _count(names: Sequence[str]):
        return func.sum(case((events.c.event_name.in_(names), 1), else_=0))

    stmt = filter_events(
        select(
            func.count().label("total"),
            _count(PAGEVIEW_NAMES).label("pageviews"),
            _count(ADD_TO_CART_NAMES).label("add_to_cart"),
            _count(CHECKOUT_NAMES).label("checkouts"),
            _count(PURCHASE_NAMES).label("purchases"),
            _revenue(PURCHASE_NAMES).label("revenue"),
            func.count(distinct(events.c.session_id)).label("sessions"),
        ),
        tenant_id,
        since,
        until,
    )
    with engine.connect() as conn:
        row = conn.execute(stmt).one()
    return {
        "totalEvents": int(row.total or 0),
        "pageviews": int(row.pageviews or 0),
        "addToCartEvents": int(row.add_to_cart or 0),
        "initiateCheckoutEvents": int(row.checkouts or 0),
        "purchaseEvents": int(row.purchases or 0),
        "totalRevenue": float(row.revenue or 0.0),
        "sessions": int(row.sessions or 0),
    }


def load_frame(
    engine: Engine, tenant_id: int, since: datetime | None = None, until: datetime | None = None
) -> pd.DataFrame:
    """Events in range with UTM fields lifted out of ``custom_data``.

    ``value`` is the line total, so revenue sums account for quantity.
    """
    stmt = filter_events(
        select(events.c.id, events.c.event_name, LINE_TOTAL.label("value"), events.c.session_id, events.c.custom_data),
        tenant_id,
        since,
        until,
    )
    records = []
    with engine.connect() as conn:
        for event_id, name, value, session_id, custom_data in conn.execute(stmt):
            data = load_json(custom_data)
            # Line items of one order share its order_id and count as one conversion.
            order_key = f"order:{data['order_id']}" if data.get("order_id") else f"event:{event_id}"
            record = {
                "event_name": name,
                "value": float(value or 0.0),
                "session_id": session_id,
                "order_key": order_key,
            }
            for key in UTM_KEYS:
                record[key] = data.get(key) or None
            records.append(record)
    return pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)


def _summarize(frame: pd.DataFrame, keys: list[str]) -> list[dict[str, Any]]:
    if frame.empty:
        return []
    work = frame.assign(
        is_pageview=frame["event_name"].isin(PAGEVIEW_NAMES),
        is_conversion=frame["event_name"].isin(CONVERSION_NAMES),
    )
    work["conversion_value"] = work["value"].where(work["is_conversion"])
    work["conversion_key"] = work["order_key"].where(work["is_conversion"])
    grouped = (
        work.groupby(keys, sort=False)
        .agg(
            sessions=("session_id", "nunique"),
            pageviews=("is_pageview", "sum"),
            events=("event_name", "count"),
            conversions=("conversion_key", "nunique"),
            revenue=("conversion_value", "sum"),
        )
        .reset_index()
        .sort_values("revenue", ascending=False, kind="stable")
    )
    results = []
    for row in grouped.to_dict(orient="records"):
        sessions = int(row["sessions"])
        conversions = int(row["conversions"])
        revenue = float(row["revenue"])
        entry = {key.removeprefix("utm_"): row[key] for key in keys}
        entry.update(
            sessions=sessions,
            pageviews=int(row["pageviews"]),
            events=int(row["events"]),
            conversions=conversions,
            revenue=revenue,
            conversionRate=(conversions / sessions * 100) if sessions else 0.0,
            averageOrderValue=(revenue / conversions) if conversions else 0.0,
        )
        results.append(entry)
    return results


def utm_campaign_performance(
    engine: Engine, tenant_id: int, since: datetime | None = None, until: datetime | None = None
) -> list[dict[str, Any]]:
    frame = load_frame(engine, tenant_id, since, until)
    frame = frame[frame["utm_campaign"].notna()]
    return _summarize(frame, ["utm_campaign"])


def utm_source_medium_breakdown(
    engine: Engine, tenant_id: int, since: datetime | None = None, until: datetime | None = None
) -> list[dict[str, Any]]:
    frame = load_frame(engine, tenant_id, since, until)
    frame = frame.fillna({"utm_source": "direct", "utm_medium": "none"})
    return _summarize(frame, ["utm_source", "utm_medium"])


def facebook_ads_analytics(
    engine: Engine, tenant_id: int, since: datetime | None = None, until: datetime | None = None
) -> dict[str, Any]:
    frame = load_frame(engine, tenant_id, since, until)
    frame = frame[frame["utm_source"].fillna("").str.lower().isin(FACEBOOK_SOURCES)]
    frame = frame.fillna({"utm_campaign": "unknown", "utm_medium": "unknown"})
    campaigns = _summarize(frame, ["utm_campaign"])
    return {
        "totalSessions": int(frame["session_id"].nunique()),
        "totalPageviews": int(frame["event_name"].isin(PAGEVIEW_NAMES).sum()),
        "totalEvents": int(len(frame)),
        "totalConversions": int(frame.loc[frame["event_name"].isin(CONVERSION_NAMES), "order_key"].nunique()),
        "totalRevenue": float(frame.loc[frame["event_name"].isin(PURCHASE_NAMES), "value"].sum()),
        "campaigns": campaigns,
        "sourceMediumBreakdown": _summarize(frame, ["utm_source", "utm_medium"]),
        "topCampaigns": campaigns[:10],
    }


def utm_report(
    engine: Engine, tenant_id: int, report_type: str, since: datetime | None = None, until: datetime | None = None
) -> Any:
    if report_type == "facebook":
        return facebook_ads_analytics(engine, tenant_id, since, until)
    if report_type == "campaigns":
        return utm_campaign_performance(engine, tenant_id, since, until)
    if report_type == "sources":
        return utm_source_medium_breakdown(engine, tenant_id, since, until)
    raise ValueError(f"Unknown report type: {report_type}")
