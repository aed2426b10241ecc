"""Composition root: wires registries, plugins, rules and the event bus together."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .services.builtin import (
    ActionRegistryPlugin,
    EventRecorderPlugin,
    Responder,
    SimulatorPlugin,
    SpeechPlugin,
    SpeechSynthesizer,
    TextCleaner,
)
from .services.config import AppConfig, get_config
from .services.events import Event, PlatformEventBus
from .services.playlist import AudioBackend, PlaylistManager, SimulatedAudioBackend
from .services.plugins import LoadReport, PluginManager, StorageService
from .services.registry import ActionRegistry, HelperRegistry
from .services.rules import (
    DispatchResult,
    RuleEngine,
    RuleLoader,
    RuleStore,
    RuleStoreError,
    RuleWatcher,
)

logger = logging.getLogger(__name__)


class Host:
    """Owns every long-lived service of a running cuebridge process.

    Startup order:
    1. Built-in plugins register, then directory plugins; all load in order
    2. Rules load from the rules directory
    3. The engine subscribes to every configured platform
    4. The watcher starts hot-reloading rule files

    Example:
        host = Host()
        await host.start()
        await host.emulate_event("chat", {"comment": "hi"})
        await host.stop()
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        audio_backend: Optional[AudioBackend] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
        responder: Optional[Responder] = None,
        load_directory_plugins: bool = True,
    ) -> None:
        self.config = config or get_config()
        self._load_directory_plugins = load_directory_plugins

        self.actions = ActionRegistry(strict=self.config.strict_actions)
        self.helpers = HelperRegistry()
        self.bus = PlatformEventBus()
        self.storage = StorageService(self.config.data_dir / "plugins.db")
        self.plugins = PluginManager(
            self.bus, storage=self.storage, load_timeout=self.config.plugin_load_timeout
        )

        self.rules = RuleStore(RuleLoader(self.config.rules_dir))
        self.engine = RuleEngine(
            self.rules,
            self.actions,
            helpers=self.helpers,
            action_timeout=self.config.action_timeout,
        )
        self.watcher = RuleWatcher(self.rules, debounce_ms=self.config.reload_debounce_ms)
        self.watcher.on_error(self._on_watcher_error)

        self.cleaner = TextCleaner()
        self.playlist = PlaylistManager(
            audio_backend or SimulatedAudioBackend(),
            settle_delay=self.config.settle_delay,
            next_track_delay=self.config.next_track_delay,
            idle_timeout=self.config.idle_timeout,
            poll_interval=self.config.poll_interval,
        )
        self._synthesizer = synthesizer
        self._responder = responder
        self._started = False

    def _register_builtins(self) -> None:
        self.plugins.register(ActionRegistryPlugin(self.actions, self.helpers, cleaner=self.cleaner))
        self.plugins.register(
            SpeechPlugin(
                self.playlist,
                synthesizer=self._synthesizer,
                responder=self._responder,
                cleaner=self.cleaner,
            )
        )
        self.plugins.register(SimulatorPlugin(base_dir=self.config.base_dir))
        self.plugins.register(EventRecorderPlugin(self.config.data_dir, self.config.platforms))

    async def _on_platform_event(self, event: Event) -> None:
        if not event.name:
            logger.debug(f"Ignoring event without a name from {event.platform}")
            return
        await self.engine.dispatch(event)

    def _on_watcher_error(self, exc: Exception) -> None:
        logger.error(f"Rule watcher error: {exc}")

    async def start(self) -> LoadReport:
        """Load plugins and rules, subscribe the engine and start watching.

        Returns:
            The plugin load report.
        """
        if self._started:
            raise RuntimeError("Host already started")
        self._started = True

        for platform in self.config.platforms:
            self.bus.on(platform, self._on_platform_event)

        self._register_builtins()
        if self._load_directory_plugins:
            self.plugins.load_from_directory(self.config.plugins_dir)
        report = await self.plugins.load_all()

        try:
            rule_set = self.rules.reload()
            logger.info(f"Loaded {len(rule_set)} rules from {self.config.rules_dir}")
        except RuleStoreError as e:
            logger.error(f"Starting without rules: {e}")

        self.watcher.start()
        logger.info(
            f"Host ready: {len(report.loaded)} plugins, {len(self.actions)} actions, "
            f"platforms {', '.join(self.config.platforms)}"
        )
        return report

    async def stop(self) -> None:
        """Stop watching, let in-flight emits finish, then unload plugins."""
        if not self._started:
            return
        self._started = False

        self.watcher.stop()
        await self.bus.drain()
        await self.plugins.unload_all()
        self.bus.clear()
        self.storage.close()
        logger.info("Host stopped")

    async def emulate_event(
        self,
        event_name: str,
        data: Optional[dict[str, Any]] = None,
        platform: Optional[str] = None,
    ) -> DispatchResult:
        """Run a synthetic event through the rule engine."""
        return await self.engine.emulate_event(event_name, data, platform=platform)

    async def __aenter__(self) -> "Host":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
