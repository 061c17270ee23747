"""Database engine helpers."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from pixelbridge.config import AppConfig


def create_engine_from_config(config: AppConfig) -> Engine:
    """Create an engine for the configured DATABASE_URL."""
    return create_engine(config.database_url, pool_pre_ping=True, future=True)
