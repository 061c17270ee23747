"""SQLAlchemy Core table definitions mirroring schema.sql."""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

tenants = Table(
    "tenants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("app_id", Text, nullable=False, unique=True),
    Column("name", Text, nullable=False),
    Column("shop_domain", Text, nullable=False, unique=True),
    Column("owner", Text),
    Column("created_at", DateTime, nullable=False),
)

tenant_settings = Table(
    "tenant_settings",
    metadata,
    Column("tenant_id", Integer, ForeignKey("tenants.id", ondelete="CASCADE"), primary_key=True),
    Column("meta_pixel_enabled", Boolean, nullable=False, default=False),
    Column("meta_access_token", Text),
    Column("meta_pixel_id", Text),
    Column("meta_test_event_code", Text),
    Column("meta_business_id", Text),
    Column("currency", Text, nullable=False, default="USD"),
    Column("track_pageviews", Boolean, nullable=False, default=True),
    Column("track_add_to_cart", Boolean, nullable=False, default=True),
    Column("track_checkouts", Boolean, nullable=False, default=True),
    Column("track_purchases", Boolean, nullable=False, default=True),
    Column("record_ip", Boolean, nullable=False, default=True),
)

events = Table(
    "events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
    Column("event_name", Text, nullable=False),
    Column("product_id", Text),
    Column("product_name", Text),
    Column("value", Float, nullable=False, default=0.0),
    Column("quantity", Integer, nullable=False, default=0),
    Column("currency", Text),
    Column("url", Text),
    Column("session_id", Text),
    Column("ip_address", Text),
    Column("user_agent", Text),
    Column("custom_data", JSON),
    Column("source", Text, nullable=False),
    Column("created_at", DateTime, nullable=False),
    Index("events_tenant_created_idx", "tenant_id", "created_at"),
    Index("events_tenant_name_idx", "tenant_id", "event_name"),
)

catalogs = Table(
    "catalogs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
    Column("catalog_id", Text, nullable=False, unique=True),
    Column("name", Text, nullable=False),
    Column("pixel_id", Text),
    Column("pixel_enabled", Boolean, nullable=False, default=True),
    Column("created_at", DateTime, nullable=False),
)

custom_events = Table(
    "custom_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
    Column("name", Text, nullable=False),
    Column("meta_event_name", Text),
    Column("is_active", Boolean, nullable=False, default=True),
    UniqueConstraint("tenant_id", "name"),
)
