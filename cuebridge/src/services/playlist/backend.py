"""Audio device protocol and playback completion monitoring.

The playlist never talks to an audio library directly. It drives an
AudioBackend and learns that a track finished through a
CompletionMonitor. The default monitor polls ``is_playing()``; a
backend with native end-of-stream callbacks can supply its own.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from .track import SUPPORTED_FORMATS


logger = logging.getLogger(__name__)


CompletionCallback = Callable[[], Union[Awaitable[Any], Any]]


@runtime_checkable
class AudioBackend(Protocol):
    """Minimal surface of an audio output device."""

    async def load_file(self, path: str) -> None: ...

    async def load_buffer(self, data: bytes) -> None: ...

    async def play(self) -> None: ...

    async def stop(self) -> None: ...

    def pause(self) -> None: ...

    def is_playing(self) -> bool: ...

    def set_volume(self, volume: float) -> None: ...

    def get_volume(self) -> float: ...

    def supports_format(self, extension: str) -> bool: ...


class CompletionMonitor(Protocol):
    """Signals once when the current track stops on its own."""

    def start(self, on_complete: CompletionCallback) -> None: ...

    def stop(self) -> None: ...

    @property
    def running(self) -> bool: ...


class PollingCompletionMonitor:
    """Polls ``backend.is_playing()`` until it turns false.

    The callback fires at most once per ``start()``; stopping the
    monitor cancels the polling task without firing it.
    """

    def __init__(self, backend: AudioBackend, interval: float = 0.5) -> None:
        self._backend = backend
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, on_complete: CompletionCallback) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._poll(on_complete))

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _poll(self, on_complete: CompletionCallback) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                if not self._backend.is_playing():
                    break
        except Exception as e:
            logger.error(f"Playback monitor error: {e}")
            return

        self._task = None
        result = on_complete()
        if inspect.isawaitable(result):
            await result


class SimulatedAudioBackend:
    """Backend with no audio output; each track "plays" for a fixed time.

    Used when no real device is wired in (CLI dry runs, tests). Loaded
    tracks are recorded in ``history``.
    """

    def __init__(self, duration: float = 0.0, formats: frozenset[str] = SUPPORTED_FORMATS) -> None:
        self.duration = duration
        self.formats = formats
        self.history: list[Union[str, bytes]] = []
        self._loaded: Optional[Union[str, bytes]] = None
        self._ends_at: Optional[float] = None
        self._paused_remaining: Optional[float] = None
        self._volume = 1.0

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    async def load_file(self, path: str) -> None:
        self._loaded = path

    async def load_buffer(self, data: bytes) -> None:
        self._loaded = bytes(data)

    async def play(self) -> None:
        if self._loaded is None:
            raise RuntimeError("No track loaded")
        if self._paused_remaining is not None:
            self._ends_at = self._now() + self._paused_remaining
            self._paused_remaining = None
            return
        self.history.append(self._loaded)
        self._ends_at = self._now() + self.duration

    async def stop(self) -> None:
        self._ends_at = None
        self._paused_remaining = None

    def pause(self) -> None:
        if self._ends_at is not None:
            self._paused_remaining = max(0.0, self._ends_at - self._now())
            self._ends_at = None

    def is_playing(self) -> bool:
        return self._ends_at is not None and self._now() < self._ends_at

    def set_volume(self, volume: float) -> None:
        self._volume = volume

    def get_volume(self) -> float:
        return self._volume

    def supports_format(self, extension: str) -> bool:
        return extension.lower() in self.formats
