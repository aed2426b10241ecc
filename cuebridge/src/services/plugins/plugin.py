"""Plugin base class, manifest definitions and capability protocols.

A plugin is a Python object with a name, a version and two lifecycle
hooks. Hooks may be plain functions or coroutines.

Capabilities replace untyped shared-API lookups: a plugin that offers
something to other plugins implements a runtime-checkable Protocol,
and consumers ask the manager for the first plugin satisfying it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..registry.actions import ActionRegistry
    from ..registry.helpers import HelperRegistry
    from .context import PluginContext


class Plugin:
    """Base class for plugins.

    Subclasses set ``name`` and ``version`` and override the hooks
    they need. ``on_load`` is called exactly once, after every plugin
    loaded before it; ``on_unload`` is called in reverse load order.
    """

    name: str = ""
    version: str = "0.0.0"
    description: str = ""

    def on_load(self, context: "PluginContext") -> Any:
        return None

    def on_unload(self) -> Any:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} v{self.version}>"


@runtime_checkable
class ExposesRegistry(Protocol):
    """Capability: direct access to the shared action and helper registries."""

    action_registry: "ActionRegistry"
    helper_registry: "HelperRegistry"


@runtime_checkable
class ExposesPlaylist(Protocol):
    """Capability: a playlist other plugins can enqueue audio into."""

    playlist: Any


@dataclass
class PluginSetting:
    """A configurable plugin setting declared in a manifest.

    Attributes:
        name: Human-readable setting name.
        type: Data type ("integer", "float", "string", "boolean").
        default: Default value for the setting.
        description: What this setting controls.
        min_value: Minimum value for numeric types.
        max_value: Maximum value for numeric types.
        options: Valid options for string settings.
    """

    name: str
    type: str
    default: Any
    description: str = ""
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: Optional[list[str]] = None

    def validate(self) -> list[str]:
        """Validate the setting declaration.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        valid_types = {"integer", "float", "string", "boolean"}
        if self.type not in valid_types:
            errors.append(f"Invalid setting type: {self.type}. Must be one of: {valid_types}")
            return errors

        ok, message = self.validate_value(self.default)
        if not ok:
            errors.append(f"Default value invalid: {message}")

        if self.options is not None and self.type != "string":
            errors.append("Options can only be specified for string type settings")

        return errors

    def validate_value(self, value: Any) -> tuple[bool, str]:
        """Validate a value against this setting's constraints.

        Returns:
            Tuple of (is_valid, error_message).
        """
        if self.type == "integer":
            if not isinstance(value, int) or isinstance(value, bool):
                return False, f"Value must be an integer, got: {type(value).__name__}"
        elif self.type == "float":
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                return False, f"Value must be a number, got: {type(value).__name__}"
        elif self.type == "string":
            if not isinstance(value, str):
                return False, f"Value must be a string, got: {type(value).__name__}"
        elif self.type == "boolean":
            if not isinstance(value, bool):
                return False, f"Value must be a boolean, got: {type(value).__name__}"

        if self.type in ("integer", "float"):
            if self.min_value is not None and value < self.min_value:
                return False, f"Value {value} is below minimum {self.min_value}"
            if self.max_value is not None and value > self.max_value:
                return False, f"Value {value} is above maximum {self.max_value}"

        if self.options is not None and value not in self.options:
            return False, f"Value '{value}' is not in allowed options: {self.options}"

        return True, ""


@dataclass
class PluginManifest:
    """Metadata read from a plugin directory's manifest.toml.

    Attributes:
        id: Unique identifier (kebab-case).
        name: Display name.
        version: Semantic version string.
        description: What the plugin provides.
        entry: Import target ``"module:attribute"`` relative to source_dir.
        requires: Names of plugins that must be registered first.
        settings: Declared settings.
        source_dir: Directory the manifest was read from.
    """

    id: str
    name: str
    version: str
    entry: str
    description: str = ""
    requires: list[str] = field(default_factory=list)
    settings: dict[str, PluginSetting] = field(default_factory=dict)
    source_dir: str = ""

    def validate(self) -> list[str]:
        errors = []

        if not re.match(r"^[a-z0-9-]+$", self.id):
            errors.append(f"Plugin ID must be kebab-case: {self.id}")

        if not re.match(r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?(\+[a-zA-Z0-9.]+)?$", self.version):
            errors.append(f"Version must be semantic versioning format: {self.version}")

        module, _, attribute = self.entry.partition(":")
        if not module or not attribute:
            errors.append(f"Entry must look like 'module:Attribute', got: {self.entry!r}")

        for setting_id, setting in self.settings.items():
            for error in setting.validate():
                errors.append(f"Setting '{setting_id}': {error}")

        return errors

    def default_settings(self) -> dict[str, Any]:
        return {setting_id: s.default for setting_id, s in self.settings.items()}


__all__ = [
    "ExposesPlaylist",
    "ExposesRegistry",
    "Plugin",
    "PluginManifest",
    "PluginSetting",
]
