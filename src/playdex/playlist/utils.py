"""Identifier generation, duration and name validation helpers."""

from typing import Iterable, Optional
from uuid import uuid4

from playdex.errors import ValidationError

MAX_NAME_LENGTH = 100


def generate_playlist_id() -> str:
    """Generate a new playlist ID."""
    return f"playlist_{uuid4().hex}"


def generate_entry_id() -> str:
    """Generate a new playlist entry ID."""
    return f"item_{uuid4().hex}"


def generate_history_id() -> str:
    """Generate a new history entry ID."""
    return f"history_{uuid4().hex}"


def validate_playlist_name(name: Optional[str]) -> bool:
    """Check that a name has 1-100 characters once trimmed."""
    if not isinstance(name, str):
        return False
    trimmed = name.strip()
    return 0 < len(trimmed) <= MAX_NAME_LENGTH


def normalize_playlist_name(name: Optional[str]) -> str:
    """Return the trimmed name or raise ValidationError.

    Args:
        name: Name supplied by the caller

    Returns:
        The name with surrounding whitespace removed
    """
    if not validate_playlist_name(name):
        raise ValidationError(
            f"Playlist name must be 1-{MAX_NAME_LENGTH} characters: {name!r}"
        )
    return name.strip()


def calculate_total_duration(entries: Iterable) -> float:
    """Sum the media durations of playlist entries."""
    return float(sum(entry.media.duration for entry in entries))


def format_duration(seconds: float) -> str:
    """Format seconds as m:ss, or h:mm:ss for an hour or more."""
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def playlist_summary(playlist) -> str:
    """Short display line such as '3 items • 12:04'."""
    count = len(playlist.entries)
    noun = "item" if count == 1 else "items"
    return f"{count} {noun} • {format_duration(playlist.total_duration)}"
