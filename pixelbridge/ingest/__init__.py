"""Ingestion helpers."""

from __future__ import annotations

import pathlib
from typing import Any

import yaml

TENANTS_PATH = pathlib.Path(__file__).with_name("tenants.yml")


def load_tenants(path: pathlib.Path | None = None, limit: int | None = None) -> list[dict[str, Any]]:
    """Installations to seed, each with ``app_id``, ``name``, ``shop_domain`` and optional settings."""
    data = yaml.safe_load((path or TENANTS_PATH).read_text()) or []
    tenants = [dict(item) for item in data]
    if limit:
        return tenants[:limit]
    return tenants
