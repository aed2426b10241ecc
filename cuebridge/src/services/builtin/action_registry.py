"""Core plugin that publishes the shared registries to other plugins."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from ..plugins.context import PluginContext
from ..plugins.plugin import Plugin
from ..registry.actions import ActionHandler, ActionRegistry
from ..registry.helpers import HelperRegistry
from .text_cleaner import TextCleaner


ACTION_REGISTRY_PLUGIN = "action-registry"


class ActionRegistryPlugin(Plugin):
    """Always registered first; other plugins find it by the ExposesRegistry capability.

    Registers two helpers on load:
    - ``last()``: cleaned text of the newest message seen by the cleaner
    - ``clean(text)``: the cleaned form of any text
    """

    name = ACTION_REGISTRY_PLUGIN
    version = "1.0.0"
    description = "Shared action and helper registries"

    def __init__(
        self,
        action_registry: ActionRegistry,
        helper_registry: HelperRegistry,
        cleaner: Optional[TextCleaner] = None,
    ) -> None:
        self.action_registry = action_registry
        self.helper_registry = helper_registry
        self.cleaner = cleaner or TextCleaner()

    def on_load(self, context: PluginContext) -> None:
        self.helper_registry.register("last", self.cleaner.last)
        self.helper_registry.register("clean", lambda text=None: self.cleaner.clean("" if text is None else str(text)))
        context.log.info(
            f"Registries ready ({len(self.action_registry)} actions, {len(self.helper_registry)} helpers)"
        )

    def on_unload(self) -> None:
        self.helper_registry.unregister("last")
        self.helper_registry.unregister("clean")

    # Convenience surface for plugins that hold this object directly

    def register(self, name: str, handler: ActionHandler) -> None:
        self.action_registry.register(name, handler)

    def get(self, name: str) -> Optional[ActionHandler]:
        return self.action_registry.get(name)

    def register_helper(self, name: str, fn: Callable[..., Any]) -> None:
        self.helper_registry.register(name, fn)

    @property
    def helpers(self) -> Mapping[str, Callable[..., Any]]:
        return self.helper_registry.get_all()
