"""Playlist manager that serializes access to one audio device.

State machine:

    Idle -> Loading -> Playing -> (Completed | ManuallyStopped) -> Idle

Only one "busy" operation (loading and starting a track) runs at a
time. A second ``play_current_track()`` while busy is a logged no-op;
navigation calls (next/previous/go_to/resume) wait for the busy
operation with a bounded timeout and then go ahead anyway.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Optional

from .backend import AudioBackend, CompletionMonitor, PollingCompletionMonitor
from .track import Track, TrackError, check_track, track_label


logger = logging.getLogger(__name__)


TRACK_START = "track_start"
TRACK_END = "track_end"
PLAYLIST_END = "playlist_end"
PLAYLIST_EVENTS = (TRACK_START, TRACK_END, PLAYLIST_END)

END_COMPLETED = "completed"
END_MANUAL = "manual"


class PlaylistError(Exception):
    """Raised for invalid playlist operations (no tracks, bad index)."""

    pass


class PlaybackError(PlaylistError):
    """Raised when the backend fails to load or start a track."""

    pass


class PlaylistManager:
    """Ordered track queue driving a single AudioBackend.

    Example:
        playlist = PlaylistManager(backend)
        await playlist.load_tracks(["intro.mp3", "outro.mp3"])
        playlist.on("playlist_end", lambda: print("done"))
        await playlist.play_current_track()
    """

    def __init__(
        self,
        backend: AudioBackend,
        monitor: Optional[CompletionMonitor] = None,
        settle_delay: float = 0.1,
        next_track_delay: float = 0.05,
        idle_timeout: float = 1.0,
        poll_interval: float = 0.5,
    ) -> None:
        """Initialize the playlist.

        Args:
            backend: Audio device to drive.
            monitor: Completion monitor (default: polling the backend).
            settle_delay: Pause after stopping a track before loading the next.
            next_track_delay: Pause between a finished track and the next one.
            idle_timeout: Upper bound for waiting on a busy operation.
            poll_interval: Poll period for the default monitor.
        """
        self._backend = backend
        self._monitor = monitor or PollingCompletionMonitor(backend, interval=poll_interval)
        self._settle_delay = settle_delay
        self._next_track_delay = next_track_delay
        self._idle_timeout = idle_timeout

        self._tracks: list[Track] = []
        self._current_index = 0
        self._is_playing = False
        self._is_stopping = False
        self._loop_enabled = False
        self._busy = asyncio.Lock()
        self._advance_task: Optional[asyncio.Task] = None
        self._listeners: dict[str, list[Callable[..., Any]]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Track list
    # ------------------------------------------------------------------

    def _check(self, track: Track) -> Optional[str]:
        return check_track(track, self._backend.supports_format)

    async def load_tracks(self, tracks: list[Track]) -> int:
        """Replace the track list, dropping unusable entries with a warning.

        Returns:
            Number of tracks kept.
        """
        logger.info(f"Loading {len(tracks)} tracks")
        valid: list[Track] = []
        for track in tracks:
            problem = self._check(track)
            if problem:
                logger.warning(f"Skipping track: {problem}")
                continue
            valid.append(track)

        self._tracks = valid
        if self._current_index > len(self._tracks):
            self._current_index = 0
        logger.info(f"Loaded {len(self._tracks)} tracks")
        return len(self._tracks)

    async def add_track(self, track: Track) -> int:
        """Append one track.

        Returns:
            New track count.

        Raises:
            TrackError: If the track is unusable.
        """
        problem = self._check(track)
        if problem:
            raise TrackError(problem)
        self._tracks.append(track)
        logger.info(f"Added track. Total tracks: {len(self._tracks)}")
        return len(self._tracks)

    async def remove_track(self, index: int) -> Optional[Track]:
        """Remove a track, keeping the current index on the same track.

        Removing the playing track stops the device and rewinds to the
        first track, as stop() does.
        """
        if index < 0 or index >= len(self._tracks):
            return None

        if index == self._current_index and self._is_playing:
            await self.stop()

        removed = self._tracks.pop(index)
        if index < self._current_index:
            self._current_index -= 1

        logger.info(f"Removed track at index {index}. Remaining: {len(self._tracks)}")
        return removed

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    async def play_current_track(self) -> bool:
        """Load and start the track at the current index.

        Returns:
            True if playback started, False if another operation was busy.

        Raises:
            PlaylistError: If there are no tracks.
            PlaybackError: If the backend fails to load or play.
        """
        if self._busy.locked():
            logger.info("Playlist operation in progress; ignoring play request")
            return False

        if not self._tracks:
            raise PlaylistError("No tracks in playlist")

        async with self._busy:
            self._is_stopping = False
            self._monitor.stop()

            if self._current_index >= len(self._tracks):
                self._current_index = 0
            index = self._current_index
            track = self._tracks[index]
            logger.info(f"Playing track {index + 1}/{len(self._tracks)}: {track_label(track, index)}")

            if self._is_playing:
                await self._backend.stop()
                await asyncio.sleep(self._settle_delay)

            try:
                if isinstance(track, (bytes, bytearray)):
                    await self._backend.load_buffer(bytes(track))
                else:
                    await self._backend.load_file(str(track))
                await self._backend.play()
            except Exception as e:
                self._is_playing = False
                logger.error(f"Playback error on track {index + 1}: {e}")
                raise PlaybackError(f"Cannot play {track_label(track, index)}: {e}") from e

            self._is_playing = True
            self._emit(TRACK_START, track, index)
            self._monitor.start(self._on_track_complete)

        return True

    async def _on_track_complete(self) -> None:
        if self._is_stopping or not self._is_playing:
            return

        self._is_playing = False
        index = self._current_index
        if index < len(self._tracks):
            self._emit(TRACK_END, self._tracks[index], index, END_COMPLETED)

        # Advance outside the monitor task; play_current_track stops the monitor.
        self._advance_task = asyncio.get_running_loop().create_task(self._advance())

    async def _advance(self) -> None:
        if self._is_stopping:
            return
        try:
            await self.next_track()
        except PlaylistError as e:
            logger.error(f"Cannot advance playlist: {e}")

    async def wait_for_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until no busy operation is running.

        Returns:
            True if idle was reached, False if the timeout expired first.
        """
        timeout = self._idle_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self._busy.locked():
            if loop.time() >= deadline:
                logger.warning(f"Timed out after {timeout}s waiting for playlist to become idle")
                return False
            await asyncio.sleep(0.05)
        return True

    async def next_track(self) -> bool:
        """Advance to the next track, looping or ending the playlist at the end.

        Returns:
            True if a track started playing.
        """
        if self._busy.locked():
            logger.info("Playlist operation in progress; waiting")
            await self.wait_for_idle()

        self._current_index += 1

        if self._current_index >= len(self._tracks):
            if self._loop_enabled and self._tracks:
                self._current_index = 0
                logger.info("Looping playlist")
            else:
                logger.info("End of playlist")
                self._is_playing = False
                self._monitor.stop()
                self._emit(PLAYLIST_END)
                return False

        await asyncio.sleep(self._next_track_delay)
        return await self.play_current_track()

    async def previous_track(self) -> bool:
        if self._busy.locked():
            await self.wait_for_idle()

        self._current_index = max(0, self._current_index - 1)
        return await self.play_current_track()

    async def go_to_track(self, index: int) -> bool:
        """Jump to a 0-based track index and play it.

        Raises:
            PlaylistError: If index is out of range.
        """
        if index < 0 or index >= len(self._tracks):
            raise PlaylistError(f"Invalid track index: {index}")

        if self._busy.locked():
            await self.wait_for_idle()

        self._current_index = index
        return await self.play_current_track()

    def pause(self) -> None:
        self._backend.pause()
        self._is_playing = False
        self._monitor.stop()
        logger.info("Playback paused")

    async def resume(self) -> None:
        if self._busy.locked():
            await self.wait_for_idle()

        if not self._is_playing and self._tracks:
            await self._backend.play()
            self._is_playing = True
            self._is_stopping = False
            self._monitor.start(self._on_track_complete)
            logger.info("Playback resumed")

    def _halt(self) -> bool:
        """Mark stopping, stop monitoring, reset the index.

        Returns:
            True if a track was playing.
        """
        self._is_stopping = True
        self._monitor.stop()
        was_playing = self._is_playing
        if was_playing:
            index = min(self._current_index, len(self._tracks) - 1)
            if index >= 0:
                self._emit(TRACK_END, self._tracks[index], index, END_MANUAL)
        self._is_playing = False
        self._current_index = 0
        return was_playing

    async def stop(self) -> None:
        """Stop playback and reset to the first track."""
        self._halt()
        try:
            await self._backend.stop()
        except Exception as e:
            logger.error(f"Error stopping playback: {e}")
        logger.info("Playback stopped")

    async def skip(self) -> bool:
        """Stop the current track and play the one after it."""
        index = self._current_index
        await self.stop()
        self._current_index = index
        self._is_stopping = False
        return await self.next_track()

    def set_loop(self, enabled: bool) -> None:
        self._loop_enabled = enabled
        logger.info(f"Loop mode {'enabled' if enabled else 'disabled'}")

    def set_volume(self, volume: float) -> None:
        if not 0.0 <= volume <= 1.0:
            raise ValueError(f"Volume must be between 0.0 and 1.0, got {volume}")
        self._backend.set_volume(volume)

    def get_volume(self) -> float:
        return self._backend.get_volume()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """Subscribe to ``track_start``, ``track_end`` or ``playlist_end``."""
        if event not in PLAYLIST_EVENTS:
            raise ValueError(f"Unknown playlist event: {event}")
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Optional[Callable[..., Any]] = None) -> None:
        """Remove one callback, or every callback for the event."""
        if callback is None:
            self._listeners.pop(event, None)
            return
        try:
            self._listeners[event].remove(callback)
        except ValueError:
            pass

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)
            except Exception as e:
                logger.error(f"Error in playlist {event} listener: {e}")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def tracks(self) -> list[Track]:
        return list(self._tracks)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def total_tracks(self) -> int:
        return len(self._tracks)

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    @property
    def is_stopping(self) -> bool:
        return self._is_stopping

    @property
    def loop(self) -> bool:
        return self._loop_enabled

    def status(self) -> dict[str, Any]:
        index = self._current_index
        track = self._tracks[index] if index < len(self._tracks) else None
        return {
            "total_tracks": len(self._tracks),
            # None once the playlist has run past its last track
            "current_track": index + 1 if track is not None else None,
            "current_track_label": track_label(track, index) if track is not None else None,
            "is_playing": self._is_playing,
            "loop": self._loop_enabled,
            "volume": self._backend.get_volume(),
            "is_busy": self.is_busy,
            "is_stopping": self._is_stopping,
        }

    async def dispose(self) -> None:
        """Stop playback, drop tracks and listeners."""
        await self.stop()
        if self._advance_task is not None and not self._advance_task.done():
            self._advance_task.cancel()
        self._advance_task = None
        self._tracks = []
        self._listeners.clear()
        logger.info("Playlist disposed")
