"""Plugin manager: registration, ordered loading and reverse unloading."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, TypeVar

from ..events.bus import PlatformEventBus
from .context import PluginContext
from .loader import PluginDependencyError, PluginLoadError, PluginLoader
from .plugin import Plugin, PluginManifest
from .storage import StorageService


logger = logging.getLogger(__name__)


T = TypeVar("T")

DEFAULT_LOAD_TIMEOUT = 30.0


class PluginState(str, Enum):
    """Lifecycle state of a registered plugin."""

    REGISTERED = "registered"
    LOADED = "loaded"
    FAILED = "failed"
    UNLOADED = "unloaded"


@dataclass
class PluginRecord:
    """Bookkeeping for one registered plugin.

    Attributes:
        plugin: The plugin instance.
        state: Current lifecycle state.
        manifest: Manifest for directory plugins (None for in-process ones).
        context: Context created at load time.
        error: Failure message if loading failed.
        load_time_ms: Time spent in on_load.
    """

    plugin: Plugin
    state: PluginState = PluginState.REGISTERED
    manifest: Optional[PluginManifest] = None
    context: Optional[PluginContext] = None
    error: Optional[str] = None
    load_time_ms: Optional[float] = None

    @property
    def name(self) -> str:
        return self.plugin.name

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.plugin.name,
            "version": self.plugin.version,
            "state": self.state.value,
            "source": self.manifest.source_dir if self.manifest else "builtin",
            "error": self.error,
        }


@dataclass
class LoadReport:
    """Outcome of one load_all() pass."""

    loaded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


async def _call_hook(hook: Any, *args: Any) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class PluginManager:
    """Loads plugins in registration order and unloads them in reverse.

    Each ``on_load`` runs under a timeout; a plugin that raises or
    times out is marked failed and the remaining plugins still load.
    Synchronous hooks run inline on the loop and cannot be interrupted.

    Example:
        manager = PluginManager(bus, StorageService("data/plugins.db"))
        manager.register(ActionRegistryPlugin(actions, helpers))
        manager.load_from_directory(Path("plugins/"))
        await manager.load_all()
        ...
        await manager.unload_all()
    """

    def __init__(
        self,
        bus: PlatformEventBus,
        storage: Optional[StorageService] = None,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
    ) -> None:
        self._bus = bus
        self._storage = storage or StorageService()
        self._load_timeout = load_timeout
        self._records: dict[str, PluginRecord] = {}
        self._load_order: list[str] = []

    @property
    def bus(self) -> PlatformEventBus:
        return self._bus

    @property
    def storage(self) -> StorageService:
        return self._storage

    @property
    def load_timeout(self) -> float:
        return self._load_timeout

    def register(self, plugin: Plugin, manifest: Optional[PluginManifest] = None) -> None:
        """Add a plugin to the load queue.

        Raises:
            PluginLoadError: If the plugin has no name or the name is taken.
            PluginDependencyError: If a manifest requires plugins not yet registered.
        """
        if not plugin.name:
            raise PluginLoadError(f"Plugin {type(plugin).__name__} has no name")
        if plugin.name in self._records:
            raise PluginLoadError(f"Plugin already registered: {plugin.name}")

        if manifest is not None:
            missing = [r for r in manifest.requires if r not in self._records]
            if missing:
                raise PluginDependencyError(
                    f"Plugin '{plugin.name}' requires plugins not available: {missing}. "
                    f"Registered plugins: {sorted(self._records)}"
                )

        self._records[plugin.name] = PluginRecord(plugin=plugin, manifest=manifest)
        logger.debug(f"Registered plugin: {plugin.name} v{plugin.version}")

    def load_from_directory(self, plugins_dir: Path) -> list[str]:
        """Discover directory plugins and register them in sorted order.

        Invalid plugins and plugins with missing dependencies are skipped
        with a warning.

        Returns:
            Names of the plugins registered.
        """
        plugins_dir.mkdir(parents=True, exist_ok=True)
        registered = []
        for found in PluginLoader(plugins_dir).load_all(skip_invalid=True):
            try:
                self.register(found.plugin, found.manifest)
                registered.append(found.plugin.name)
            except (PluginLoadError, PluginDependencyError) as e:
                logger.warning(f"Skipping plugin {found.manifest.id}: {e}")
        return registered

    async def load_all(self) -> LoadReport:
        """Call on_load on every registered, not yet loaded plugin, in order."""
        report = LoadReport()

        for name, record in list(self._records.items()):
            if record.state != PluginState.REGISTERED:
                continue

            settings = record.manifest.default_settings() if record.manifest else {}
            context = PluginContext(
                name=name,
                manager=self,
                bus=self._bus,
                storage=self._storage.for_plugin(name),
                settings=settings,
            )
            record.context = context

            start_time = time.perf_counter()
            try:
                await asyncio.wait_for(
                    _call_hook(record.plugin.on_load, context),
                    timeout=self._load_timeout,
                )
            except asyncio.TimeoutError:
                record.error = f"on_load timed out after {self._load_timeout}s"
            except Exception as e:
                record.error = f"on_load failed: {e}"
            finally:
                record.load_time_ms = (time.perf_counter() - start_time) * 1000

            if record.error:
                record.state = PluginState.FAILED
                context.detach()
                report.failed[name] = record.error
                logger.error(f"Plugin {name} failed to load: {record.error}")
                continue

            record.state = PluginState.LOADED
            self._load_order.append(name)
            report.loaded.append(name)
            logger.info(f"Loaded plugin {name} v{record.plugin.version} ({record.load_time_ms:.1f}ms)")

        return report

    async def unload_all(self) -> None:
        """Call on_unload on loaded plugins in reverse load order."""
        for name in reversed(self._load_order):
            record = self._records[name]
            try:
                await asyncio.wait_for(
                    _call_hook(record.plugin.on_unload),
                    timeout=self._load_timeout,
                )
            except asyncio.TimeoutError:
                logger.error(f"Plugin {name} on_unload timed out")
            except Exception as e:
                logger.error(f"Plugin {name} failed to unload: {e}")
            finally:
                if record.context is not None:
                    record.context.detach()
                record.state = PluginState.UNLOADED
                logger.info(f"Unloaded plugin {name}")

        self._load_order.clear()

    def get_plugin(self, name: str) -> Optional[Plugin]:
        """Plugin by name, only once its on_load has completed."""
        record = self._records.get(name)
        if record is None or record.state != PluginState.LOADED:
            return None
        return record.plugin

    def find_capability(self, capability: type[T]) -> Optional[T]:
        """First loaded plugin (in load order) implementing a capability protocol."""
        for name in self._load_order:
            plugin = self._records[name].plugin
            if isinstance(plugin, capability):
                return plugin
        return None

    def state_of(self, name: str) -> Optional[PluginState]:
        record = self._records.get(name)
        return record.state if record else None

    def list_plugins(self) -> list[PluginRecord]:
        return list(self._records.values())

    @property
    def load_order(self) -> list[str]:
        return list(self._load_order)
