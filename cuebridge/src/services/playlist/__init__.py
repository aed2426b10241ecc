"""Audio playlist sequencing behind a pluggable audio backend."""

from .backend import (
    AudioBackend,
    CompletionMonitor,
    PollingCompletionMonitor,
    SimulatedAudioBackend,
)
from .manager import (
    END_COMPLETED,
    END_MANUAL,
    PLAYLIST_END,
    TRACK_END,
    TRACK_START,
    PlaybackError,
    PlaylistError,
    PlaylistManager,
)
from .track import SUPPORTED_FORMATS, Track, TrackError, check_track, track_label

__all__ = [
    "AudioBackend",
    "CompletionMonitor",
    "END_COMPLETED",
    "END_MANUAL",
    "PLAYLIST_END",
    "PlaybackError",
    "PlaylistError",
    "PlaylistManager",
    "PollingCompletionMonitor",
    "SUPPORTED_FORMATS",
    "SimulatedAudioBackend",
    "TRACK_END",
    "TRACK_START",
    "Track",
    "TrackError",
    "check_track",
    "track_label",
]
