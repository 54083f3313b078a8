"""Bounded, newest-first log of playback sessions."""

import logging
from collections import deque
from itertools import islice
from typing import Iterable, Iterator, List, Optional

from playdex.errors import ValidationError
from playdex.playlist.models import HistoryEntry

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 100
DEFAULT_QUERY_LIMIT = 50


class HistoryLedger:
    """Keeps the most recent playback sessions, newest first.

    Entries are immutable and are never edited or removed individually;
    recording past the capacity drops the oldest one.
    """

    def __init__(self, entries: Optional[Iterable[HistoryEntry]] = None):
        # appendleft on a bounded deque discards from the right (oldest) end
        self._entries = deque(maxlen=MAX_HISTORY_ENTRIES)
        if entries:
            self._entries.extend(islice(entries, MAX_HISTORY_ENTRIES))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self._entries)

    def record(self, entry: HistoryEntry) -> None:
        if not isinstance(entry, HistoryEntry):
            raise ValidationError(f"Expected a HistoryEntry, got {type(entry).__name__}")
        self._entries.appendleft(entry)
        logger.debug(f"Recorded history {entry.id} for media {entry.media_id}")

    def query(self, limit: int = DEFAULT_QUERY_LIMIT, playlist_id: Optional[str] = None) -> List[HistoryEntry]:
        """Return up to ``limit`` newest entries, optionally for one playlist."""
        if limit < 0:
            raise ValidationError(f"History limit cannot be negative: {limit}")
        entries = iter(self._entries)
        if playlist_id is not None:
            entries = (entry for entry in entries if entry.playlist_id == playlist_id)
        return list(islice(entries, limit))

    def entries(self) -> List[HistoryEntry]:
        """All entries, newest first."""
        return list(self._entries)
