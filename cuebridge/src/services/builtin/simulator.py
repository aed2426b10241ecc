"""Simulator plugin: replays saved event payloads as if a platform sent them.

Useful for exercising rules without a live stream. Pairs with the
event recorder, which writes the JSON files this plugin reads.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from ..plugins.context import PluginContext
from ..plugins.plugin import ExposesRegistry, Plugin


DEFAULT_PLATFORM = "tiktok"


class SimulatorPlugin(Plugin):
    """Registers ``emit_event`` and ``toggle_simulator``.

    ``emit_event`` params:
    - eventName: name of the event to simulate (required)
    - filePath: JSON file holding the event data, relative to base_dir
    - data: inline event data, used when filePath is absent
    - platform: platform to emit on (default tiktok)
    """

    name = "simulator"
    version = "1.0.0"

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self.base_dir = base_dir or Path.cwd()
        self.enabled = True
        self._context: Optional[PluginContext] = None

    def on_load(self, context: PluginContext) -> None:
        self._context = context
        registries = context.get_capability(ExposesRegistry)
        if registries is None:
            context.log.error("No plugin exposes the action registry; simulator actions unavailable")
            return

        registries.action_registry.register("emit_event", self.emit_event)
        registries.action_registry.register("toggle_simulator", self.toggle)
        context.log.info('Action "emit_event" registered')

    def _resolve(self, file_path: str) -> Path:
        path = Path(file_path).expanduser()
        return path if path.is_absolute() else self.base_dir / path

    async def emit_event(self, invocation: Any, context: Any = None) -> bool:
        log = self._context.log
        if not self.enabled:
            log.info("Simulator is disabled")
            return False

        params = invocation.params
        event_name = str(params.get("eventName") or "")
        file_path = str(params.get("filePath") or "")
        platform = str(params.get("platform") or DEFAULT_PLATFORM)

        if not event_name or not (file_path or "data" in params):
            log.error("Missing required params: eventName and filePath (or data)")
            return False

        if file_path:
            path = self._resolve(file_path)
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                log.error(f"Data file not found at: {path}")
                return False
            except (OSError, json.JSONDecodeError) as e:
                log.error(f"Cannot read event data from {path}: {e}")
                return False
            log.info(f'Simulating event "{event_name}" on "{platform}" with data from {path}')
        else:
            data = params.get("data") or {}
            log.info(f'Simulating event "{event_name}" on "{platform}"')

        # Scheduled rather than awaited so a rule that simulates its own
        # event cannot recurse inside the current dispatch.
        self._context.emit_nowait(platform, {"eventName": event_name, "data": data})
        return True

    def toggle(self, invocation: Any, context: Any = None) -> bool:
        value = invocation.params.get("enabled")
        self.enabled = value if isinstance(value, bool) else not self.enabled
        self._context.log.info(f"Simulator is now {'ENABLED' if self.enabled else 'DISABLED'}")
        return self.enabled
