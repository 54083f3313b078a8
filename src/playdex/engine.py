"""Playback engine facade combining the store, cursor, history and storage."""

import logging
import random
from typing import List, Optional, Sequence, Union

from playdex.errors import (IndexOutOfRangeError, InvalidStateError, InvariantError,
                            PersistenceError)
from playdex.history import DEFAULT_QUERY_LIMIT, HistoryLedger
from playdex.persistence.gateway import StateGateway
from playdex.persistence.snapshot import EngineSnapshot
from playdex.playback.cursor import CursorState, PlaybackCursor
from playdex.playlist.models import (HistoryEntry, MediaItem, PlaybackStatus, Playlist,
                                     PlaylistEntry, RepeatMode)
from playdex.playlist.store import PlaylistStore
from playdex.stats import PlaylistStats, compute_stats

logger = logging.getLogger(__name__)


class PlaybackEngine:
    """Public API for playlist management and playback.

    Mutations are applied synchronously and then mirrored to the gateway.
    A failed save raises PersistenceError, but the change stays applied:
    in-memory state is the source of truth.
    """

    def __init__(self, gateway: StateGateway, rng: Optional[random.Random] = None):
        """Initialize the engine.

        Args:
            gateway: Storage the engine loads from and saves to
            rng: Optional random source for shuffle
        """
        self.gateway = gateway
        self.store = PlaylistStore()
        self.history = HistoryLedger()
        self._cursor = PlaybackCursor(rng=rng)
        self._loaded = False

    async def load(self) -> bool:
        """Restore saved state; returns False when starting empty.

        Load failures are logged, not raised.
        """
        if self._loaded:
            logger.warning("Engine state already loaded; ignoring repeated load")
            return False
        self._loaded = True

        try:
            snapshot = await self.gateway.load()
        except PersistenceError as e:
            logger.warning(f"Could not load saved state, starting empty: {e}")
            return False
        if snapshot is None:
            logger.info("No saved state found")
            return False

        try:
            self.store.replace_all(snapshot.playlists)
        except InvariantError as e:
            logger.warning(f"Saved playlists are inconsistent, starting empty: {e}")
            return False
        self.history = HistoryLedger(snapshot.history)
        self._cursor.state = snapshot.cursor
        self._reconcile_cursor()
        logger.info(f"Loaded {len(self.store)} playlists and {len(self.history)} history entries")
        return True

    async def close(self) -> None:
        await self.gateway.close()

    # Queries

    @property
    def cursor(self) -> CursorState:
        return self._cursor.state

    @property
    def playlists(self) -> List[Playlist]:
        return self.store.all()

    def get_playlist_by_id(self, playlist_id: str) -> Optional[Playlist]:
        return self.store.get(playlist_id)

    def get_current_entry(self) -> Optional[PlaylistEntry]:
        state = self._cursor.state
        if state.status is PlaybackStatus.IDLE or state.playlist_id is None:
            return None
        playlist = self.store.get(state.playlist_id)
        if playlist is None or not 0 <= state.current_index < len(playlist.entries):
            return None
        return playlist.entries[state.current_index]

    def get_current_item(self) -> Optional[MediaItem]:
        """Media item the render surface should be showing, if any."""
        entry = self.get_current_entry()
        return entry.media if entry else None

    def next_index(self) -> int:
        return self._cursor.next_index(self._active_count())

    def previous_index(self) -> int:
        return self._cursor.previous_index(self._active_count())

    def get_history(self, limit: int = DEFAULT_QUERY_LIMIT, playlist_id: Optional[str] = None) -> List[HistoryEntry]:
        return self.history.query(limit, playlist_id=playlist_id)

    def stats(self) -> PlaylistStats:
        return compute_stats(self.store.all())

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            playlists=self.store.all(),
            cursor=self._cursor.state,
            history=self.history.entries(),
        )

    # Playlists

    async def create_playlist(
        self,
        name: str,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        is_public: bool = False,
        thumbnail_path: Optional[str] = None,
    ) -> Playlist:
        playlist = self.store.create(name, description=description, tags=tags,
                                     is_public=is_public, thumbnail_path=thumbnail_path)
        logger.info(f"Created playlist: {playlist.name} (ID: {playlist.id})")
        await self._persist()
        return playlist

    async def update_playlist(self, playlist_id: str, **updates) -> Playlist:
        playlist = self.store.update(playlist_id, **updates)
        logger.info(f"Updated playlist {playlist_id}: {', '.join(sorted(updates))}")
        await self._persist()
        return playlist

    async def delete_playlist(self, playlist_id: str) -> None:
        playlist = self.store.delete(playlist_id)
        if self._cursor.playlist_id == playlist_id:
            self._cursor.release()
            logger.info(f"Stopped playback of deleted playlist {playlist_id}")
        logger.info(f"Deleted playlist: {playlist.name} (ID: {playlist_id})")
        await self._persist()

    async def duplicate_playlist(self, playlist_id: str, new_name: Optional[str] = None) -> Playlist:
        copy = self.store.duplicate(playlist_id, new_name)
        logger.info(f"Duplicated playlist {playlist_id} as {copy.name} (ID: {copy.id})")
        await self._persist()
        return copy

    async def toggle_favorite(self, playlist_id: str) -> Playlist:
        playlist = self.store.toggle_favorite(playlist_id)
        await self._persist()
        return playlist

    # Entries

    async def add_entry(
        self,
        playlist_id: str,
        media: MediaItem,
        custom_title: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PlaylistEntry:
        entry = self.store.add_entry(playlist_id, media, custom_title=custom_title, notes=notes)
        logger.info(f"Added {media.title} to playlist {playlist_id}")
        await self._persist()
        return entry

    async def add_entries(self, playlist_id: str, media_items: Sequence[MediaItem]) -> List[PlaylistEntry]:
        entries = self.store.add_entries(playlist_id, media_items)
        logger.info(f"Added {len(entries)} items to playlist {playlist_id}")
        await self._persist()
        return entries

    async def remove_entry(self, playlist_id: str, entry_id: str) -> None:
        current_id = self._current_entry_id(playlist_id)
        self.store.remove_entry(playlist_id, entry_id)
        self._follow_entry(playlist_id, current_id)
        logger.info(f"Removed entry {entry_id} from playlist {playlist_id}")
        await self._persist()

    async def reorder_entries(self, playlist_id: str, new_order: Sequence[Union[str, PlaylistEntry]]) -> None:
        current_id = self._current_entry_id(playlist_id)
        self.store.reorder(playlist_id, new_order)
        self._follow_entry(playlist_id, current_id)
        logger.info(f"Reordered playlist {playlist_id}")
        await self._persist()

    async def update_entry(self, playlist_id: str, entry_id: str, **fields) -> PlaylistEntry:
        entry = self.store.update_entry(playlist_id, entry_id, **fields)
        await self._persist()
        return entry

    # Playback

    async def play(self, playlist_id: str, start_index: int = 0) -> Optional[MediaItem]:
        """Start playing a playlist and return the item to load."""
        playlist = self.store.require(playlist_id)
        self._cursor.play(playlist_id, len(playlist.entries), start_index)
        self.store.mark_played(playlist_id)
        logger.info(f"Playing {playlist.name} from index {self._cursor.current_index}")
        await self._persist()
        return self.get_current_item()

    async def pause(self) -> None:
        self._cursor.pause()
        await self._persist()

    async def resume(self) -> None:
        self._cursor.resume()
        await self._persist()

    async def stop(self) -> None:
        self._cursor.stop()
        await self._persist()

    async def next(self) -> Optional[MediaItem]:
        """Move to the item a Next press selects."""
        count = self._require_reference()
        self._cursor.move_to(self._cursor.next_index(count), count)
        await self._persist()
        return self.get_current_item()

    async def previous(self) -> Optional[MediaItem]:
        """Move to the item a Previous press selects."""
        count = self._require_reference()
        self._cursor.move_to(self._cursor.previous_index(count), count)
        await self._persist()
        return self.get_current_item()

    async def seek(self, index: int) -> Optional[MediaItem]:
        """Jump to an index in the current playlist.

        An out-of-range index raises IndexOutOfRangeError and leaves the
        cursor in the error status.
        """
        try:
            self._cursor.seek(index, self._active_count())
        except IndexOutOfRangeError:
            logger.warning(f"Invalid seek to index {index}")
            try:
                await self._persist()
            except PersistenceError:
                # Already logged; the caller needs the seek error
                pass
            raise
        await self._persist()
        return self.get_current_item()

    async def toggle_shuffle(self) -> bool:
        state = self._cursor.toggle_shuffle()
        await self._persist()
        return state.shuffle_enabled

    async def set_repeat_mode(self, mode: Union[RepeatMode, str]) -> RepeatMode:
        state = self._cursor.set_repeat_mode(mode)
        await self._persist()
        return state.repeat_mode

    # Media surface notifications

    async def media_ended(self, duration_played: Optional[float] = None,
                          device_info: Optional[str] = None) -> Optional[MediaItem]:
        """Handle natural completion of the current item.

        Records history, then replays the same index under repeat-one or
        advances as a Next press would. Playback stops after the last item
        of a sequential, non-repeating playlist.

        Returns:
            The item to load next, or None when playback stopped
        """
        state = self._cursor.state
        entry = self.get_current_entry()
        if entry is None or state.status is PlaybackStatus.ERROR:
            logger.debug("Ignoring media end while nothing is playing")
            return None

        playlist = self.store.require(state.playlist_id)
        self._record_session(playlist, entry, duration_played, device_info)
        self.store.mark_entry_played(playlist.id, state.current_index)

        count = len(playlist.entries)
        if state.repeat_mode is RepeatMode.ONE:
            next_index = state.current_index
        elif (not state.shuffle_enabled and state.repeat_mode is RepeatMode.OFF
              and state.current_index >= count - 1):
            logger.info(f"Reached the end of playlist {playlist.name}")
            self._cursor.stop()
            await self._persist()
            return None
        else:
            next_index = self._cursor.next_index(count)

        self._cursor.move_to(next_index, count)
        if self._cursor.status is not PlaybackStatus.PLAYING:
            self._cursor.resume()
        await self._persist()
        return self.get_current_item()

    async def media_failed(self, reason: str = "") -> None:
        """Put the cursor in the error status after a decode/render failure."""
        logger.warning(f"Media surface reported an error: {reason}")
        self._cursor.fail(self._active_count())
        await self._persist()

    async def record_history(self, entry: HistoryEntry) -> None:
        self.history.record(entry)
        await self._persist()

    # Internals

    def _record_session(self, playlist: Playlist, entry: PlaylistEntry,
                        duration_played: Optional[float], device_info: Optional[str]) -> HistoryEntry:
        duration = entry.media.duration
        played = duration if duration_played is None else max(0.0, float(duration_played))
        completion = min(100.0, played / duration * 100.0) if duration > 0 else 100.0
        record = HistoryEntry(
            playlist_id=playlist.id,
            playlist_name=playlist.name,
            media_id=entry.media.id,
            media_title=entry.display_title,
            duration_played=played,
            completion_percentage=completion,
            device_info=device_info,
        )
        self.history.record(record)
        return record

    def _active_count(self) -> int:
        playlist_id = self._cursor.playlist_id
        if playlist_id is None:
            return 0
        playlist = self.store.get(playlist_id)
        return len(playlist.entries) if playlist is not None else 0

    def _require_reference(self) -> int:
        if self._cursor.playlist_id is None or self._cursor.status is PlaybackStatus.IDLE:
            raise InvalidStateError("No playlist is playing")
        return self._active_count()

    def _current_entry_id(self, playlist_id: str) -> Optional[str]:
        state = self._cursor.state
        if state.playlist_id != playlist_id or not state.is_active:
            return None
        playlist = self.store.get(playlist_id)
        if playlist is None or not 0 <= state.current_index < len(playlist.entries):
            return None
        return playlist.entries[state.current_index].id

    def _follow_entry(self, playlist_id: str, entry_id: Optional[str]) -> None:
        """Keep the cursor on the same entry after its playlist changed."""
        if entry_id is not None:
            playlist = self.store.require(playlist_id)
            index = playlist.index_of(entry_id)
            if index is not None:
                self._cursor.move_to(index, len(playlist.entries))
        self._reconcile_cursor()

    def _reconcile_cursor(self) -> None:
        """Restore cursor invariants against the live store."""
        state = self._cursor.state
        if state.playlist_id is None:
            return
        playlist = self.store.get(state.playlist_id)
        if playlist is None:
            logger.info(f"Cursor referenced missing playlist {state.playlist_id}; releasing")
            self._cursor.release()
            return
        count = len(playlist.entries)
        if count == 0:
            if state.is_active or state.current_index != 0:
                self._cursor.stop()
            return
        if not 0 <= state.current_index < count:
            self._cursor.move_to(state.current_index, count)

    async def _persist(self) -> None:
        snapshot = self.snapshot()
        try:
            await self.gateway.save(snapshot)
        except PersistenceError as e:
            logger.error(f"Failed to save engine state: {e}")
            raise
