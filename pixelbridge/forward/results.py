"""Outcome of forwarding one stored event."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(slots=True, frozen=True)
class Sent:
    events_received: int = 0
    fbtrace_id: str | None = None

    status = "sent"

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "events_received": self.events_received, "fbtrace_id": self.fbtrace_id}


@dataclass(slots=True, frozen=True)
class Skipped:
    reason: str

    status = "skipped"

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "reason": self.reason}


@dataclass(slots=True, frozen=True)
class Failed:
    error: str

    status = "failed"

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "error": self.error}


ForwardResult = Union[Sent, Skipped, Failed]
