"""Shopify webhook verification and parsing."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from typing import Mapping

from pixelbridge.config import AppConfig
from pixelbridge.errors import InvalidPayload, InvalidSignature
from pixelbridge.ingest.models import WebhookPayload

logger = logging.getLogger(__name__)

HMAC_HEADER = "x-shopify-hmac-sha256"
SHOP_HEADER = "x-shopify-shop-domain"
TOPIC_HEADER = "x-shopify-topic"


def compute_hmac(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_hmac(body: bytes, header: str | None, secret: str | None) -> bool:
    """Check the base64 HMAC-SHA256 signature Shopify sends with each webhook."""
    if not secret:
        logger.error("SHOPIFY_API_SECRET not configured")
        return False
    if not header:
        logger.warning("Missing %s header", HMAC_HEADER)
        return False
    return hmac.compare_digest(compute_hmac(body, secret).encode("utf-8"), header.encode("utf-8"))


def receive_webhook(
    body: bytes,
    headers: Mapping[str, str],
    config: AppConfig,
    *,
    topic: str | None = None,
) -> WebhookPayload:
    """Verify and parse a webhook body.

    Outside production a bad signature is logged and the payload is still
    accepted, so local stores can be pointed at a dev tunnel.
    """
    shop = headers.get(SHOP_HEADER)
    topic = topic or headers.get(TOPIC_HEADER) or "unknown"
    if not verify_hmac(body, headers.get(HMAC_HEADER), config.shopify_api_secret):
        if config.is_production:
            logger.warning("Rejected %s webhook from %s: bad signature", topic, shop)
            raise InvalidSignature()
        logger.warning("Accepting unsigned %s webhook from %s (%s)", topic, shop, config.environment)
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("Failed to parse %s webhook from %s: %s", topic, shop, exc)
        raise InvalidPayload() from exc
    if not isinstance(data, dict):
        logger.error("Unexpected %s webhook body from %s: %s", topic, shop, type(data).__name__)
        raise InvalidPayload()
    return WebhookPayload(topic=topic, shop_domain=shop, data=data)
