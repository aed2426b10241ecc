"""Context object handed to each plugin's on_load hook."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from ..events.bus import EventHandler, PlatformEventBus
from ..events.event import Event
from .storage import PluginStorage

if TYPE_CHECKING:
    from .manager import PluginManager
    from .plugin import Plugin


T = TypeVar("T")


class PluginLogAdapter(logging.LoggerAdapter):
    """Prefixes every record with the plugin name."""

    def process(self, msg, kwargs):
        return f"[{self.extra['plugin']}] {msg}", kwargs


class PluginContext:
    """Services available to one plugin.

    Attributes:
        name: Plugin name the context belongs to.
        storage: Persistent key/value storage scoped to the plugin.
        log: Logger adapter prefixed with the plugin name.
        settings: Effective settings (manifest defaults for directory plugins).
    """

    def __init__(
        self,
        name: str,
        manager: "PluginManager",
        bus: PlatformEventBus,
        storage: PluginStorage,
        settings: Optional[dict[str, Any]] = None,
    ) -> None:
        self.name = name
        self._manager = manager
        self._bus = bus
        self.storage = storage
        self.settings = dict(settings or {})
        self.log = PluginLogAdapter(logging.getLogger(f"cuebridge.plugins.{name}"), {"plugin": name})
        self._subscriptions: list[tuple[str, EventHandler]] = []

    def on(self, platform: str, handler: EventHandler) -> None:
        """Subscribe to events from a platform (``"*"`` for every platform)."""
        self._bus.on(platform, handler)
        self._subscriptions.append((platform, handler))

    async def emit(self, platform: str, payload: dict[str, Any]) -> int:
        """Emit ``{"eventName": ..., "data": {...}}`` on behalf of a platform.

        Returns:
            Number of handlers that received the event.

        Raises:
            EventPayloadError: If the payload is malformed.
        """
        event = Event.from_payload(platform, payload)
        return await self._bus.emit(event)

    def emit_nowait(self, platform: str, payload: dict[str, Any]) -> asyncio.Task:
        """Schedule an emit from synchronous adapter code on the running loop."""
        event = Event.from_payload(platform, payload)
        return self._bus.emit_nowait(event)

    def get_plugin(self, name: str) -> Optional["Plugin"]:
        return self._manager.get_plugin(name)

    def get_capability(self, capability: type[T]) -> Optional[T]:
        """First loaded plugin implementing a capability protocol."""
        return self._manager.find_capability(capability)

    def detach(self) -> None:
        """Drop every bus subscription made through this context."""
        for platform, handler in self._subscriptions:
            self._bus.off(platform, handler)
        self._subscriptions.clear()
