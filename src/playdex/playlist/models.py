"""Data models for playlists, playback state and history."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from playdex.errors import ValidationError
from playdex.playlist.utils import (calculate_total_duration, generate_entry_id,
                                    generate_history_id, generate_playlist_id)


class PlaybackStatus(Enum):
    """Status of the playback cursor."""
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    LOADING = "loading"
    ERROR = "error"


class RepeatMode(Enum):
    """How playback repeats."""
    OFF = "off"
    ONE = "one"  # replay the current item when it finishes
    ALL = "all"  # wrap around the playlist


@dataclass(frozen=True)
class MediaItem:
    """A playable item supplied by the library scanner."""
    id: str
    title: str
    duration: float  # seconds
    file_path: Optional[str] = None
    format: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PlaylistEntry:
    """A media item placed in a playlist."""
    media: MediaItem
    position: int
    id: str = field(default_factory=generate_entry_id)
    added_at: datetime = field(default_factory=datetime.now)
    play_count: int = 0
    last_played: Optional[datetime] = None
    custom_title: Optional[str] = None
    notes: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.custom_title or self.media.title


@dataclass
class Playlist:
    """An ordered collection of playlist entries."""
    name: str
    id: str = field(default_factory=generate_playlist_id)
    description: Optional[str] = None
    entries: List[PlaylistEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    thumbnail_path: Optional[str] = None
    is_favorite: bool = False
    total_duration: float = 0.0
    play_count: int = 0
    last_played: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    is_public: bool = False

    def __len__(self) -> int:
        return len(self.entries)

    def touch(self) -> None:
        """Refresh the modification timestamp."""
        self.updated_at = datetime.now()

    def renumber(self) -> None:
        """Rewrite entry positions to match list order and refresh the duration."""
        for index, entry in enumerate(self.entries):
            entry.position = index
        self.total_duration = calculate_total_duration(self.entries)

    def index_of(self, entry_id: str) -> Optional[int]:
        for index, entry in enumerate(self.entries):
            if entry.id == entry_id:
                return index
        return None


@dataclass(frozen=True)
class HistoryEntry:
    """Record of one playback session.

    Playlist name and media title are copied at creation so the record
    survives renames and deletions.
    """
    playlist_id: str
    media_id: str
    media_title: str
    duration_played: float
    completion_percentage: float
    playlist_name: Optional[str] = None
    played_at: datetime = field(default_factory=datetime.now)
    device_info: Optional[str] = None
    id: str = field(default_factory=generate_history_id)

    def __post_init__(self):
        if not 0 <= self.completion_percentage <= 100:
            raise ValidationError(
                f"Completion percentage must be within 0-100: {self.completion_percentage}"
            )
        if self.duration_played < 0:
            raise ValidationError(f"Duration played cannot be negative: {self.duration_played}")
