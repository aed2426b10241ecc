"""Plugin system: plugin contract, discovery, storage and lifecycle."""

from .context import PluginContext, PluginLogAdapter
from .loader import DiscoveredPlugin, PluginDependencyError, PluginLoadError, PluginLoader
from .manager import LoadReport, PluginManager, PluginRecord, PluginState
from .plugin import ExposesPlaylist, ExposesRegistry, Plugin, PluginManifest, PluginSetting
from .storage import PluginStorage, StorageService

__all__ = [
    "DiscoveredPlugin",
    "ExposesPlaylist",
    "ExposesRegistry",
    "LoadReport",
    "Plugin",
    "PluginContext",
    "PluginDependencyError",
    "PluginLoadError",
    "PluginLoader",
    "PluginLogAdapter",
    "PluginManager",
    "PluginManifest",
    "PluginRecord",
    "PluginSetting",
    "PluginState",
    "PluginStorage",
    "StorageService",
]
