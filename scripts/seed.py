"""Seed database with demo installations."""

from __future__ import annotations

from pixelbridge.config import load_config
from pixelbridge.db.session import create_engine_from_config
from pixelbridge.ingest import load_tenants
from pixelbridge.store import TenantStore


def main() -> None:
    engine = create_engine_from_config(load_config())
    store = TenantStore(engine)
    for item in load_tenants():
        if store.by_app_id(item["app_id"]) is not None:
            continue
        store.create(**item)
    print("Seed complete")


if __name__ == "__main__":
    main()
