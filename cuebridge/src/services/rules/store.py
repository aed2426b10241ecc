"""Rule store with atomic snapshot swaps and a watchdog-based hot loader.

The store always holds one immutable RuleSet. Reloads build a complete
new set and replace the reference in one assignment, so a dispatch that
took a snapshot keeps seeing the old set until it finishes.

The watcher runs watchdog's observer thread and hands every change
back to the asyncio loop; the store is only ever touched from the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .loader import RuleLoader, is_rule_file
from .rule import Rule


logger = logging.getLogger(__name__)


ChangeListener = Callable[["RuleSet"], None]
ErrorListener = Callable[[Exception], None]


class RuleStoreError(Exception):
    """Raised when the rule directory cannot be read at all."""

    pass


@dataclass(frozen=True)
class RuleSet:
    """Immutable snapshot of the active rules.

    Attributes:
        rules: Rules in declaration order.
        generation: Incremented on every swap.
        loaded_at: Wall-clock time of the swap.
    """

    rules: tuple[Rule, ...] = ()
    generation: int = 0
    loaded_at: float = field(default_factory=time.time)

    def for_event(self, event_name: str) -> list[Rule]:
        """Enabled rules whose event name matches exactly, in order."""
        return [r for r in self.rules if r.enabled and r.event_name == event_name]

    def get(self, rule_id: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def __len__(self) -> int:
        return len(self.rules)


class RuleStore:
    """Holds the current RuleSet and replaces it atomically."""

    def __init__(self, loader: RuleLoader) -> None:
        self._loader = loader
        self._current = RuleSet()
        self._listeners: list[ChangeListener] = []

    @property
    def loader(self) -> RuleLoader:
        return self._loader

    @property
    def rules_dir(self) -> Path:
        return self._loader.rules_dir

    def current(self) -> RuleSet:
        """Return the active snapshot. Callers must not cache it across dispatches."""
        return self._current

    def on_change(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def reload(self) -> RuleSet:
        """Re-read the rules directory and swap in the result.

        Invalid files and rules are skipped by the loader. The current
        set is kept when the directory itself is missing.

        Raises:
            RuleStoreError: If the rules directory does not exist.
        """
        if not self._loader.rules_dir.is_dir():
            raise RuleStoreError(f"Rules directory not found: {self._loader.rules_dir}")

        rules = self._loader.load_all(skip_invalid=True)
        return self.update_rules(rules)

    def update_rules(self, rules: Iterable[Rule]) -> RuleSet:
        """Swap in a caller-provided rule list."""
        new_set = RuleSet(rules=tuple(rules), generation=self._current.generation + 1)
        self._current = new_set
        logger.info(f"Rule set generation {new_set.generation} active with {len(new_set)} rules")

        for listener in list(self._listeners):
            try:
                listener(new_set)
            except Exception as e:
                logger.error(f"Error in rule change listener: {e}")
        return new_set


class _RuleFileHandler(FileSystemEventHandler):
    """Forwards relevant watchdog events to the RuleWatcher."""

    def __init__(self, watcher: "RuleWatcher") -> None:
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in ("created", "modified", "deleted", "moved"):
            return

        src = Path(str(event.src_path))
        if event.is_directory:
            if event.event_type in ("deleted", "moved") and src == self._watcher.rules_dir:
                self._watcher.notify_error(
                    RuleStoreError(f"Rules directory {event.event_type}: {src}")
                )
            return

        paths = [src]
        dest = getattr(event, "dest_path", None)
        if dest:
            paths.append(Path(str(dest)))

        if any(is_rule_file(p) for p in paths):
            logger.debug(f"Rule file {event.event_type}: {src}")
            self._watcher.notify_change()


class RuleWatcher:
    """Watches the rules directory and reloads the store on changes.

    Bursts of file events are debounced on the event loop so that one
    save (which may produce several events) triggers a single reload.

    Example:
        watcher = RuleWatcher(store, debounce_ms=200)
        watcher.on_error(lambda exc: logger.error(exc))
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        store: RuleStore,
        debounce_ms: int = 200,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._store = store
        self._debounce_ms = debounce_ms
        self._loop = loop
        self._observer: Optional[Observer] = None
        self._pending: Optional[asyncio.TimerHandle] = None
        self._error_listeners: list[ErrorListener] = []
        self._reload_listeners: list[ChangeListener] = []

    @property
    def rules_dir(self) -> Path:
        return self._store.rules_dir.resolve()

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def on_reload(self, listener: ChangeListener) -> None:
        self._reload_listeners.append(listener)

    def start(self) -> bool:
        """Start the observer thread.

        Must be called from the event loop thread unless a loop was
        passed to the constructor.

        Returns:
            True if watching started, False if it failed (the failure
            is reported to error listeners).
        """
        if self._observer is not None:
            return True

        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        observer = Observer()
        try:
            observer.schedule(_RuleFileHandler(self), str(self.rules_dir), recursive=False)
            observer.start()
        except OSError as e:
            self._report_error(e)
            return False

        self._observer = observer
        logger.info(f"Started watching {self.rules_dir} for rule changes")
        return True

    def stop(self) -> None:
        """Stop the observer and drop any pending reload."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
            logger.info("Stopped watching for rule changes")

    # Called from the watchdog thread

    def notify_change(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._schedule_reload)

    def notify_error(self, exc: Exception) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._report_error, exc)

    # Loop thread

    def _schedule_reload(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self._loop.call_later(self._debounce_ms / 1000.0, self._apply_reload)

    def _apply_reload(self) -> None:
        self._pending = None
        try:
            rule_set = self._store.reload()
        except (RuleStoreError, OSError) as e:
            self._report_error(e)
            return

        for listener in list(self._reload_listeners):
            try:
                listener(rule_set)
            except Exception as e:
                logger.error(f"Error in rule reload listener: {e}")

    def _report_error(self, exc: Exception) -> None:
        if not self._error_listeners:
            logger.error(f"Rule watcher error: {exc}")
            return
        for listener in list(self._error_listeners):
            try:
                listener(exc)
            except Exception as e:
                logger.error(f"Error in rule watcher error listener: {e}")
