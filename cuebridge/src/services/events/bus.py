"""Platform event bus connecting adapters, plugins and the host."""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Optional

from .event import Event


logger = logging.getLogger(__name__)


# Type alias for event handlers; may be sync or async
EventHandler = Callable[[Event], Any]

WILDCARD = "*"


class PlatformEventBus:
    """Pub/sub bus keyed by platform name.

    Handlers subscribed to ``"*"`` receive events from every platform.
    A failing handler is logged and never prevents the remaining
    handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def on(self, platform: str, handler: EventHandler) -> None:
        """Subscribe a handler to one platform (or ``"*"`` for all)."""
        self._handlers[platform].append(handler)
        logger.debug(f"Subscribed handler to {platform}")

    def subscribe_all(self, handler: EventHandler) -> None:
        self.on(WILDCARD, handler)

    def off(self, platform: str, handler: EventHandler) -> bool:
        """Unsubscribe a handler.

        Returns:
            True if handler was removed, False if not found.
        """
        try:
            self._handlers[platform].remove(handler)
            return True
        except ValueError:
            return False

    def _handlers_for(self, platform: Optional[str]) -> list[EventHandler]:
        handlers = list(self._handlers.get(WILDCARD, ()))
        if platform is not None and platform != WILDCARD:
            handlers.extend(self._handlers.get(platform, ()))
        return handlers

    async def emit(self, event: Event) -> int:
        """Deliver an event to matching handlers in subscription order.

        Returns:
            Number of handlers that completed without raising.
        """
        delivered = 0
        for handler in self._handlers_for(event.platform):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.error(f"Error in event handler for {event.platform}/{event.name}: {e}")

        logger.debug(f"Dispatched event {event.name} from {event.platform} to {delivered} handlers")
        return delivered

    def emit_nowait(self, event: Event) -> asyncio.Task:
        """Schedule delivery on the running loop and return the task."""
        task = asyncio.get_running_loop().create_task(self.emit(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every task scheduled by emit_nowait."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def clear(self) -> None:
        self._handlers.clear()

    @property
    def handler_count(self) -> int:
        return sum(len(h) for h in self._handlers.values())
