"""Error types raised by the playback engine.

Every error is recoverable at the call site. Validation, not-found, empty
playlist and invariant errors are raised before any state is changed;
``PersistenceError`` is raised after the in-memory change was applied.
"""


class PlaydexError(Exception):
    """Base class for playback engine errors"""
    pass


class ValidationError(PlaydexError):
    """Bad playlist name or parameter"""
    pass


class NotFoundError(PlaydexError):
    """Unknown playlist or entry ID"""
    pass


class EmptyPlaylistError(PlaydexError):
    """Playback requested on a playlist with no entries"""
    pass


class IndexOutOfRangeError(PlaydexError):
    """Seek target outside the referenced playlist"""
    pass


class InvariantError(PlaydexError):
    """Playlist state or reorder payload is inconsistent"""
    pass


class InvalidStateError(PlaydexError):
    """Command not allowed in the current cursor status"""
    pass


class PersistenceError(PlaydexError):
    """Saving or loading engine state failed"""
    pass
