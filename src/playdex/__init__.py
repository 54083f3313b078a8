"""Playlist management and playback state engine."""

from playdex.engine import PlaybackEngine
from playdex.errors import PlaydexError

__version__ = "0.1.0"

__all__ = ["PlaybackEngine", "PlaydexError"]
