"""Event data structure for platform events."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional


def _now_ms() -> int:
    return int(time.time() * 1000)


class EventPayloadError(ValueError):
    """Raised when an emitted payload is not shaped like {eventName, data}."""

    pass


@dataclass(frozen=True)
class Event:
    """A single platform event.

    Attributes:
        name: Event name rules match against (e.g. "chat", "gift").
        data: Event payload.
        platform: Source platform, if any.
        timestamp: Milliseconds since the epoch.
    """

    name: str
    data: dict[str, Any] = field(default_factory=dict)
    platform: Optional[str] = None
    timestamp: int = field(default_factory=_now_ms)

    @classmethod
    def from_payload(cls, platform: Optional[str], payload: dict[str, Any]) -> "Event":
        """Build an event from the adapter wire shape ``{"eventName", "data"}``.

        Raises:
            EventPayloadError: If eventName is missing or data is not a mapping.
        """
        if not isinstance(payload, dict):
            raise EventPayloadError(f"Event payload must be a dict, got {type(payload).__name__}")

        name = payload.get("eventName") or payload.get("event_name")
        if not name or not isinstance(name, str):
            raise EventPayloadError("Event payload is missing 'eventName'")

        data = payload.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise EventPayloadError(f"Event data for '{name}' must be a dict")

        return cls(name=name, data=data, platform=platform)

    def to_payload(self) -> dict[str, Any]:
        return {"eventName": self.name, "data": self.data}
