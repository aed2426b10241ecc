"""Event recorder plugin: snapshots the latest payload of every event.

Each platform event is written to ``<data_dir>/<eventName>.json``,
overwriting the previous snapshot. The simulator can replay them.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Iterable, Optional

from ..events.event import Event
from ..plugins.context import PluginContext
from ..plugins.plugin import ExposesRegistry, Plugin


_UNSAFE_NAME = re.compile(r"[^\w.-]")

TRUTHY = {"true", "1", "yes", "on"}


class EventRecorderPlugin(Plugin):
    """Subscribes to each platform and saves event payloads as JSON.

    The ``autosave`` action switches recording on or off; its
    ``message`` (or ``enabled``) param is read as a boolean.
    """

    name = "save-events"
    version = "1.0.0"

    def __init__(self, data_dir: Path, platforms: Iterable[str]) -> None:
        self.data_dir = data_dir
        self.platforms = tuple(platforms)
        self.save = True
        self._context: Optional[PluginContext] = None

    def on_load(self, context: PluginContext) -> None:
        self._context = context
        registries = context.get_capability(ExposesRegistry)
        if registries is not None:
            registries.action_registry.register("autosave", self.autosave)

        for platform in self.platforms:
            context.on(platform, self.record)
        context.log.info(f"Recording events from {', '.join(self.platforms)} into {self.data_dir}")

    def path_for(self, event_name: str) -> Path:
        return self.data_dir / f"{_UNSAFE_NAME.sub('_', event_name)}.json"

    def record(self, event: Event) -> Optional[Path]:
        if not self.save or not event.name:
            return None

        path = self.path_for(event.name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(event.data, indent=2, default=str), encoding="utf-8")
        except OSError as e:
            self._context.log.error(f"Error saving snapshot of {event.name}: {e}")
            return None
        return path

    def autosave(self, invocation: Any, context: Any = None) -> Optional[bool]:
        params = invocation.params
        value = params.get("enabled", params.get("message"))
        if value is None or value == "":
            return None
        self.save = value if isinstance(value, bool) else str(value).strip().lower() in TRUTHY
        return self.save
