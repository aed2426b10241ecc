"""Platform events and the bus that carries them."""

from .bus import EventHandler, PlatformEventBus, WILDCARD
from .event import Event, EventPayloadError

__all__ = [
    "Event",
    "EventHandler",
    "EventPayloadError",
    "PlatformEventBus",
    "WILDCARD",
]
