"""Forwarding of stored events to the Meta Conversions API."""

from pixelbridge.forward.meta_capi import ConversionForwarder, MetaGraphClient, build_payload, meta_event_name
from pixelbridge.forward.results import Failed, ForwardResult, Sent, Skipped

__all__ = [
    "ConversionForwarder",
    "Failed",
    "ForwardResult",
    "MetaGraphClient",
    "Sent",
    "Skipped",
    "build_payload",
    "meta_event_name",
]
