"""Track type and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, Union

Track = Union[str, Path, bytes]

SUPPORTED_FORMATS = frozenset({"mp3", "wav", "flac", "ogg"})


class TrackError(ValueError):
    """Raised when a track cannot be added to a playlist."""

    pass


def track_extension(track: Union[str, Path]) -> str:
    return Path(track).suffix.lstrip(".").lower()


def track_label(track: Track, index: int) -> str:
    """Human-readable label: the path for files, ``Buffer #n`` for in-memory audio."""
    if isinstance(track, (bytes, bytearray)):
        return f"Buffer #{index + 1}"
    return str(track)


def check_track(
    track: Track,
    supports_format: Optional[Callable[[str], bool]] = None,
) -> Optional[str]:
    """Return why a track is unusable, or None if it is valid.

    Args:
        track: File path or in-memory audio buffer.
        supports_format: Predicate for file extensions; defaults to
            SUPPORTED_FORMATS membership.
    """
    supports = supports_format or (lambda ext: ext in SUPPORTED_FORMATS)

    if isinstance(track, (bytes, bytearray)):
        if len(track) == 0:
            return "empty audio buffer"
        return None

    if isinstance(track, (str, Path)):
        if not str(track).strip():
            return "empty track path"
        extension = track_extension(track)
        if not extension or not supports(extension):
            return f"unsupported format: {track}"
        if not Path(track).is_file():
            return f"file not found: {track}"
        return None

    return f"invalid track type: {type(track).__name__}"
