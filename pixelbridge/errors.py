"""Exceptions raised across the ingestion pipeline."""

from __future__ import annotations


class PixelbridgeError(Exception):
    status_code = 500
    detail = "Internal error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class InvalidSignature(PixelbridgeError):
    status_code = 401
    detail = "Invalid webhook signature"


class InvalidPayload(PixelbridgeError):
    status_code = 400
    detail = "Invalid payload"


class TenantNotFound(PixelbridgeError):
    status_code = 404
    detail = "App not found"


class MetaAPIError(PixelbridgeError):
    """The Graph API was unreachable or rejected the request."""

    status_code = 502
    detail = "Meta API error"

    def __init__(self, message: str, *, status: int | None = None) -> None:
        Exception.__init__(self, message)
        self.status = status
