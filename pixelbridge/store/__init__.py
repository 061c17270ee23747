"""Persistence for tenants and events."""

from pixelbridge.store.events import EventStore
from pixelbridge.store.tenants import TenantStore

__all__ = ["EventStore", "TenantStore"]
