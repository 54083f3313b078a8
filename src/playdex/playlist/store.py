"""In-memory playlist store."""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union

from playdex.errors import InvariantError, NotFoundError, ValidationError
from playdex.playlist.models import MediaItem, Playlist, PlaylistEntry
from playdex.playlist.utils import (MAX_NAME_LENGTH, calculate_total_duration,
                                    normalize_playlist_name)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    'name', 'description', 'thumbnail_path', 'tags', 'is_public', 'is_favorite'
})

COPY_SUFFIX = " (copy)"


class PlaylistStore:
    """Owns every playlist and keeps entry positions and durations consistent.

    All validation happens before a playlist is touched, so a failed call
    leaves the store unchanged.
    """

    def __init__(self, playlists: Optional[Iterable[Playlist]] = None):
        self._playlists: Dict[str, Playlist] = {}
        if playlists:
            self.replace_all(playlists)

    def __len__(self) -> int:
        return len(self._playlists)

    def __contains__(self, playlist_id: str) -> bool:
        return playlist_id in self._playlists

    def all(self) -> List[Playlist]:
        """Playlists in creation order."""
        return list(self._playlists.values())

    def get(self, playlist_id: str) -> Optional[Playlist]:
        return self._playlists.get(playlist_id)

    def require(self, playlist_id: str) -> Playlist:
        """Get a playlist or raise NotFoundError."""
        playlist = self._playlists.get(playlist_id)
        if playlist is None:
            raise NotFoundError(f"Playlist not found: {playlist_id}")
        return playlist

    def replace_all(self, playlists: Iterable[Playlist]) -> None:
        """Replace the store contents, e.g. with a loaded snapshot."""
        loaded = {}
        for playlist in playlists:
            self.verify(playlist)
            loaded[playlist.id] = playlist
        self._playlists = loaded

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        is_public: bool = False,
        thumbnail_path: Optional[str] = None,
    ) -> Playlist:
        """Create an empty playlist.

        Args:
            name: Playlist name, 1-100 characters after trimming
            description: Optional description
            tags: Optional free-form tags
            is_public: Whether the playlist is public
            thumbnail_path: Optional cover image path

        Returns:
            The new playlist
        """
        playlist = Playlist(
            name=normalize_playlist_name(name),
            description=description,
            tags=list(tags or []),
            is_public=bool(is_public),
            thumbnail_path=thumbnail_path,
        )
        self._playlists[playlist.id] = playlist
        logger.debug(f"Created playlist {playlist.name} (ID: {playlist.id})")
        return playlist

    def update(self, playlist_id: str, **fields) -> Playlist:
        """Update playlist metadata fields and refresh updated_at."""
        playlist = self.require(playlist_id)

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update playlist fields: {', '.join(sorted(unknown))}")
        if 'name' in fields:
            fields['name'] = normalize_playlist_name(fields['name'])
        if 'tags' in fields:
            fields['tags'] = list(fields['tags'] or [])

        for key, value in fields.items():
            setattr(playlist, key, value)
        playlist.touch()
        return playlist

    def delete(self, playlist_id: str) -> Playlist:
        """Remove a playlist and return it."""
        self.require(playlist_id)
        return self._playlists.pop(playlist_id)

    def duplicate(self, playlist_id: str, new_name: Optional[str] = None) -> Playlist:
        """Copy a playlist with fresh entry IDs and reset play counters."""
        original = self.require(playlist_id)
        if new_name is None:
            base = original.name[:MAX_NAME_LENGTH - len(COPY_SUFFIX)]
            new_name = f"{base}{COPY_SUFFIX}"

        copy = Playlist(
            name=normalize_playlist_name(new_name),
            description=original.description,
            thumbnail_path=original.thumbnail_path,
            is_favorite=original.is_favorite,
            tags=list(original.tags),
            is_public=original.is_public,
        )
        copy.entries = [
            PlaylistEntry(
                media=entry.media,
                position=entry.position,
                custom_title=entry.custom_title,
                notes=entry.notes,
            )
            for entry in original.entries
        ]
        copy.renumber()
        self._playlists[copy.id] = copy
        return copy

    def set_favorite(self, playlist_id: str, is_favorite: bool) -> Playlist:
        return self.update(playlist_id, is_favorite=bool(is_favorite))

    def toggle_favorite(self, playlist_id: str) -> Playlist:
        playlist = self.require(playlist_id)
        return self.update(playlist_id, is_favorite=not playlist.is_favorite)

    def add_entry(
        self,
        playlist_id: str,
        media: MediaItem,
        custom_title: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PlaylistEntry:
        """Append a media item to the end of a playlist."""
        playlist = self.require(playlist_id)
        _check_media(media)

        entry = PlaylistEntry(
            media=media,
            position=len(playlist.entries),
            custom_title=custom_title,
            notes=notes,
        )
        playlist.entries.append(entry)
        self._after_mutation(playlist)
        return entry

    def add_entries(self, playlist_id: str, media_items: Sequence[MediaItem]) -> List[PlaylistEntry]:
        """Append several media items; nothing is added if any item is invalid."""
        playlist = self.require(playlist_id)
        for media in media_items:
            _check_media(media)

        added = []
        for media in media_items:
            entry = PlaylistEntry(media=media, position=len(playlist.entries))
            playlist.entries.append(entry)
            added.append(entry)
        self._after_mutation(playlist)
        return added

    def remove_entry(self, playlist_id: str, entry_id: str) -> int:
        """Remove an entry and return the index it occupied."""
        playlist = self.require(playlist_id)
        index = playlist.index_of(entry_id)
        if index is None:
            raise NotFoundError(f"Entry {entry_id} not found in playlist {playlist_id}")

        del playlist.entries[index]
        self._after_mutation(playlist)
        return index

    def reorder(
        self,
        playlist_id: str,
        new_order: Sequence[Union[str, PlaylistEntry]],
    ) -> Playlist:
        """Put entries in a new order.

        Args:
            playlist_id: ID of the playlist
            new_order: Every entry of the playlist, as entries or entry IDs

        Raises:
            InvariantError: if new_order is not a permutation of the entries
        """
        playlist = self.require(playlist_id)
        ids = [item.id if isinstance(item, PlaylistEntry) else item for item in new_order]
        by_id = {entry.id: entry for entry in playlist.entries}

        if len(ids) != len(set(ids)):
            raise InvariantError(f"Reorder payload for {playlist_id} contains duplicate entries")
        if len(ids) != len(playlist.entries) or set(ids) != set(by_id):
            raise InvariantError(
                f"Reorder payload for {playlist_id} does not match its entries"
            )

        playlist.entries = [by_id[entry_id] for entry_id in ids]
        self._after_mutation(playlist)
        return playlist

    def update_entry(self, playlist_id: str, entry_id: str, **fields) -> PlaylistEntry:
        """Set the custom title or notes of an entry."""
        playlist = self.require(playlist_id)
        index = playlist.index_of(entry_id)
        if index is None:
            raise NotFoundError(f"Entry {entry_id} not found in playlist {playlist_id}")
        unknown = set(fields) - {'custom_title', 'notes'}
        if unknown:
            raise ValidationError(f"Cannot update entry fields: {', '.join(sorted(unknown))}")

        entry = playlist.entries[index]
        for key, value in fields.items():
            setattr(entry, key, value)
        playlist.touch()
        return entry

    def mark_played(self, playlist_id: str) -> Playlist:
        """Count a playback start of the playlist."""
        playlist = self.require(playlist_id)
        playlist.play_count += 1
        playlist.last_played = datetime.now()
        playlist.touch()
        return playlist

    def mark_entry_played(self, playlist_id: str, index: int) -> PlaylistEntry:
        """Count a completed playback of the entry at index."""
        playlist = self.require(playlist_id)
        entry = playlist.entries[index]
        entry.play_count += 1
        entry.last_played = datetime.now()
        return entry

    @staticmethod
    def verify(playlist: Playlist) -> None:
        """Check entry positions and the cached duration."""
        ids = [entry.id for entry in playlist.entries]
        if len(ids) != len(set(ids)):
            raise InvariantError(f"Playlist {playlist.id} has duplicate entry IDs")

        positions = [entry.position for entry in playlist.entries]
        if positions != list(range(len(playlist.entries))):
            raise InvariantError(f"Playlist {playlist.id} has non-contiguous positions: {positions}")

        expected = calculate_total_duration(playlist.entries)
        if abs(playlist.total_duration - expected) > 1e-6:
            raise InvariantError(
                f"Playlist {playlist.id} duration {playlist.total_duration} != {expected}"
            )

    def _after_mutation(self, playlist: Playlist) -> None:
        playlist.renumber()
        playlist.touch()
        self.verify(playlist)


def _check_media(media: MediaItem) -> None:
    if not isinstance(media, MediaItem):
        raise ValidationError(f"Expected a MediaItem, got {type(media).__name__}")
    if media.duration < 0:
        raise ValidationError(f"Media {media.id} has a negative duration")
