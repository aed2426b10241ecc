"""Plugin loader for manifest-based plugin discovery.

A plugin directory looks like:

    plugins/
      echo/
        manifest.toml
        plugin.py

with a manifest such as:

    [plugin]
    id = "echo"
    version = "1.0.0"
    entry = "plugin:EchoPlugin"

    [capabilities]
    requires = ["action-registry"]

    [settings.prefix]
    type = "string"
    default = ">>"

The entry's module is imported from the plugin directory and its
attribute may be a Plugin subclass, a zero-argument factory, or a
ready instance.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any

import toml

from .plugin import Plugin, PluginManifest, PluginSetting


logger = logging.getLogger(__name__)


MANIFEST_NAME = "manifest.toml"


class PluginLoadError(Exception):
    """Raised when plugin loading or validation fails."""

    pass


class PluginDependencyError(Exception):
    """Raised when a plugin requires plugins that are not registered."""

    pass


@dataclass
class DiscoveredPlugin:
    """A plugin instance together with the manifest it came from."""

    plugin: Plugin
    manifest: PluginManifest


class PluginLoader:
    """Discovers and instantiates plugins from a directory.

    Example:
        loader = PluginLoader(Path("plugins/"))
        for found in loader.load_all(skip_invalid=True):
            print(f"Found plugin: {found.manifest.id}")
    """

    def __init__(self, plugins_dir: Path) -> None:
        self.plugins_dir = plugins_dir

    def scan_plugins(self) -> list[Path]:
        """Plugin directories (those with a manifest) in sorted order."""
        if not self.plugins_dir.is_dir():
            return []
        return [
            item
            for item in sorted(self.plugins_dir.iterdir())
            if item.is_dir() and (item / MANIFEST_NAME).exists()
        ]

    def load_all(self, skip_invalid: bool = True) -> list[DiscoveredPlugin]:
        """Load every plugin in the directory.

        Raises:
            PluginLoadError: If a plugin is invalid and skip_invalid is False.
        """
        found: list[DiscoveredPlugin] = []

        if not self.plugins_dir.exists():
            logger.warning(f"Plugins directory does not exist: {self.plugins_dir}")
            return found

        for plugin_dir in self.scan_plugins():
            try:
                found.append(self.load_plugin(plugin_dir))
            except PluginLoadError as e:
                if skip_invalid:
                    logger.warning(f"Skipping invalid plugin in {plugin_dir}: {e}")
                else:
                    raise

        logger.info(f"Discovered {len(found)} plugins in {self.plugins_dir}")
        return found

    def load_manifest(self, plugin_dir: Path) -> PluginManifest:
        """Parse and validate a plugin directory's manifest.

        Raises:
            PluginLoadError: If the manifest is missing or invalid.
        """
        manifest_path = plugin_dir / MANIFEST_NAME

        try:
            data = toml.loads(manifest_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise PluginLoadError(f"Manifest not found: {manifest_path}")
        except toml.TomlDecodeError as e:
            raise PluginLoadError(f"TOML parse error in {manifest_path}: {e}")

        if "plugin" not in data:
            raise PluginLoadError(f"Missing [plugin] section in {manifest_path}")

        try:
            manifest = self._parse_manifest(data, plugin_dir)
        except (KeyError, TypeError, ValueError) as e:
            raise PluginLoadError(f"Error parsing manifest from {manifest_path}: {e}")

        errors = manifest.validate()
        if errors:
            raise PluginLoadError(
                f"Validation errors in {manifest_path}:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )
        return manifest

    def load_plugin(self, plugin_dir: Path) -> DiscoveredPlugin:
        """Import a plugin's entry point and instantiate it.

        Raises:
            PluginLoadError: If the manifest, import or instantiation fails.
        """
        manifest = self.load_manifest(plugin_dir)
        module_name, _, attribute = manifest.entry.partition(":")

        module = self._import_module(plugin_dir, manifest.id, module_name)
        target = getattr(module, attribute, None)
        if target is None:
            raise PluginLoadError(f"Entry '{manifest.entry}' not found in plugin {manifest.id}")

        plugin = self._instantiate(target, manifest)
        if not plugin.name:
            plugin.name = manifest.id
        if plugin.version == Plugin.version:
            plugin.version = manifest.version

        return DiscoveredPlugin(plugin=plugin, manifest=manifest)

    def _parse_manifest(self, data: dict[str, Any], plugin_dir: Path) -> PluginManifest:
        plugin_data = data["plugin"]
        plugin_id = plugin_data["id"]

        requires = data.get("capabilities", {}).get("requires", [])
        if not isinstance(requires, list):
            raise ValueError("capabilities.requires must be a list")

        settings: dict[str, PluginSetting] = {}
        for setting_id, setting_config in data.get("settings", {}).items():
            if not isinstance(setting_config, dict):
                continue
            settings[setting_id] = self._parse_setting(setting_id, setting_config)

        return PluginManifest(
            id=plugin_id,
            name=plugin_data.get("name", plugin_id),
            version=plugin_data.get("version", "1.0.0"),
            entry=plugin_data.get("entry", "plugin:Plugin"),
            description=plugin_data.get("description", ""),
            requires=[str(r) for r in requires],
            settings=settings,
            source_dir=str(plugin_dir),
        )

    def _parse_setting(self, setting_id: str, data: dict[str, Any]) -> PluginSetting:
        setting_type = data.get("type", "string")
        default = data.get("default")

        if default is None:
            default = {"integer": 0, "float": 0.0, "string": "", "boolean": False}.get(setting_type)

        return PluginSetting(
            name=data.get("name", setting_id),
            type=setting_type,
            default=default,
            description=data.get("description", ""),
            min_value=data.get("min"),
            max_value=data.get("max"),
            options=data.get("options"),
        )

    def _import_module(self, plugin_dir: Path, plugin_id: str, module_name: str) -> ModuleType:
        relative = Path(*module_name.split("."))
        candidates = [plugin_dir / relative.with_suffix(".py"), plugin_dir / relative / "__init__.py"]
        source = next((c for c in candidates if c.exists()), None)
        if source is None:
            raise PluginLoadError(f"Module '{module_name}' not found in {plugin_dir}")

        qualified = re.sub(r"\W", "_", f"cuebridge_plugin_{plugin_id}_{module_name}")
        spec = importlib.util.spec_from_file_location(
            qualified,
            source,
            submodule_search_locations=[str(source.parent)] if source.name == "__init__.py" else None,
        )
        if spec is None or spec.loader is None:
            raise PluginLoadError(f"Cannot import {source}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[qualified] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(qualified, None)
            raise PluginLoadError(f"Error importing {source}: {e}") from e
        return module

    @staticmethod
    def _instantiate(target: Any, manifest: PluginManifest) -> Plugin:
        try:
            if isinstance(target, Plugin):
                plugin = target
            elif inspect.isclass(target) or callable(target):
                plugin = target()
            else:
                plugin = target
        except Exception as e:
            raise PluginLoadError(f"Cannot instantiate plugin {manifest.id}: {e}") from e

        if not isinstance(plugin, Plugin):
            raise PluginLoadError(
                f"Entry '{manifest.entry}' of plugin {manifest.id} did not produce a Plugin "
                f"(got {type(plugin).__name__})"
            )
        return plugin


__all__ = [
    "DiscoveredPlugin",
    "MANIFEST_NAME",
    "PluginDependencyError",
    "PluginLoadError",
    "PluginLoader",
]
