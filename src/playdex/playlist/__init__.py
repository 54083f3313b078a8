"""Playlist models and the in-memory playlist store."""

from playdex.playlist.models import (HistoryEntry, MediaItem, PlaybackStatus, Playlist,
                                     PlaylistEntry, RepeatMode)
from playdex.playlist.store import PlaylistStore

__all__ = [
    "HistoryEntry", "MediaItem", "PlaybackStatus", "Playlist",
    "PlaylistEntry", "RepeatMode", "PlaylistStore",
]
