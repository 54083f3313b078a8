"""Aggregate statistics over the playlist library."""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from playdex.playlist.models import Playlist


@dataclass
class PlaylistStats:
    total_playlists: int = 0
    total_entries: int = 0
    total_duration: float = 0.0
    most_played: Optional[Playlist] = None
    recently_played: List[Playlist] = field(default_factory=list)
    favorites: List[Playlist] = field(default_factory=list)


def compute_stats(playlists: Iterable[Playlist], recent_limit: int = 5) -> PlaylistStats:
    """Summarize playlists.

    Totals are summed from each playlist's entries rather than from running
    averages, so the figures do not depend on mutation order.
    """
    playlists = list(playlists)
    played = [playlist for playlist in playlists if playlist.play_count > 0]

    most_played = max(played, key=lambda p: p.play_count) if played else None
    recently_played = sorted(
        (p for p in playlists if p.last_played is not None),
        key=lambda p: p.last_played,
        reverse=True,
    )[:recent_limit]

    return PlaylistStats(
        total_playlists=len(playlists),
        total_entries=sum(len(p.entries) for p in playlists),
        total_duration=float(sum(entry.media.duration for p in playlists for entry in p.entries)),
        most_played=most_played,
        recently_played=recently_played,
        favorites=[p for p in playlists if p.is_favorite],
    )
