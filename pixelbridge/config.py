"""Process configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "postgresql://user:pass@db:5432/pixelbridge"
DEFAULT_GRAPH_URL = "https://graph.facebook.com"
DEFAULT_GRAPH_VERSION = "v24.0"


@dataclass(slots=True)
class AppConfig:
    database_url: str = DEFAULT_DATABASE_URL
    shopify_api_secret: str | None = None
    environment: str = "production"
    graph_url: str = DEFAULT_GRAPH_URL
    graph_api_version: str = DEFAULT_GRAPH_VERSION
    forward_timeout: float = 10.0
    default_currency: str = "USD"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def graph_base(self) -> str:
        return f"{self.graph_url.rstrip('/')}/{self.graph_api_version}"


def load_config() -> AppConfig:
    """Build the config from the environment, reading a local .env first."""
    load_dotenv()
    return AppConfig(
        database_url=os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL),
        shopify_api_secret=os.environ.get("SHOPIFY_API_SECRET") or None,
        environment=os.environ.get("APP_ENV", "production"),
        graph_url=os.environ.get("META_GRAPH_URL", DEFAULT_GRAPH_URL),
        graph_api_version=os.environ.get("META_GRAPH_API_VERSION", DEFAULT_GRAPH_VERSION),
        forward_timeout=float(os.environ.get("META_FORWARD_TIMEOUT", 10.0)),
        default_currency=os.environ.get("DEFAULT_CURRENCY", "USD"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
