"""Playback cursor state machine.

Each command is an action dataclass with one pure transition function
registered on ``transition``. ``PlaybackCursor`` holds the current state and
the random source used for shuffle, and derives next/previous indices.

Repeat-one is not handled here: the cursor only answers which index a
Next/Previous press selects. Replaying an item that finished on its own is
the engine's job.
"""

import logging
import random
from dataclasses import dataclass, replace
from functools import singledispatch
from typing import Optional, Union

from playdex.errors import (EmptyPlaylistError, IndexOutOfRangeError,
                            InvalidStateError, ValidationError)
from playdex.playlist.models import PlaybackStatus, RepeatMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CursorState:
    """Reference to the active playlist plus playback modes."""
    playlist_id: Optional[str] = None
    current_index: int = 0
    status: PlaybackStatus = PlaybackStatus.IDLE
    shuffle_enabled: bool = False
    repeat_mode: RepeatMode = RepeatMode.OFF

    @property
    def is_active(self) -> bool:
        return self.status is not PlaybackStatus.IDLE


@dataclass(frozen=True)
class Load:
    playlist_id: str
    start_index: int = 0


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class Pause:
    pass


@dataclass(frozen=True)
class Resume:
    pass


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class SeekTo:
    index: int


@dataclass(frozen=True)
class MoveTo:
    """Move to an index derived by next/previous; status is kept."""
    index: int


@dataclass(frozen=True)
class ToggleShuffle:
    pass


@dataclass(frozen=True)
class SetRepeatMode:
    mode: RepeatMode


@dataclass(frozen=True)
class Fail:
    pass


@dataclass(frozen=True)
class Release:
    """Drop the playlist reference, e.g. after the playlist was deleted."""
    pass


Action = Union[Load, Start, Pause, Resume, Stop, SeekTo, MoveTo,
               ToggleShuffle, SetRepeatMode, Fail, Release]


@singledispatch
def transition(action, state: CursorState, entry_count: int) -> CursorState:
    """Return the state that follows ``state`` after ``action``.

    Args:
        action: One of the action dataclasses
        state: Current cursor state
        entry_count: Number of entries in the playlist the action targets
    """
    raise TypeError(f"Unknown cursor action: {action!r}")


@transition.register
def _load(action: Load, state: CursorState, entry_count: int) -> CursorState:
    if entry_count <= 0:
        raise EmptyPlaylistError(f"Playlist {action.playlist_id} has no entries")
    index = max(0, min(action.start_index, entry_count - 1))
    return replace(state, playlist_id=action.playlist_id, current_index=index,
                   status=PlaybackStatus.LOADING)


@transition.register
def _start(action: Start, state: CursorState, entry_count: int) -> CursorState:
    if state.status is not PlaybackStatus.LOADING:
        raise InvalidStateError(f"Cannot start playback while {state.status.value}")
    return replace(state, status=PlaybackStatus.PLAYING)


@transition.register
def _pause(action: Pause, state: CursorState, entry_count: int) -> CursorState:
    if state.status in (PlaybackStatus.IDLE, PlaybackStatus.ERROR):
        raise InvalidStateError(f"Cannot pause while {state.status.value}")
    return replace(state, status=PlaybackStatus.PAUSED)


@transition.register
def _resume(action: Resume, state: CursorState, entry_count: int) -> CursorState:
    if state.status in (PlaybackStatus.IDLE, PlaybackStatus.ERROR):
        raise InvalidStateError(f"Cannot resume while {state.status.value}")
    return replace(state, status=PlaybackStatus.PLAYING)


@transition.register
def _stop(action: Stop, state: CursorState, entry_count: int) -> CursorState:
    # The playlist reference is kept so playback can restart from the top.
    return replace(state, current_index=0, status=PlaybackStatus.IDLE)


@transition.register
def _seek(action: SeekTo, state: CursorState, entry_count: int) -> CursorState:
    if state.playlist_id is None:
        raise IndexOutOfRangeError("No playlist is referenced by the cursor")
    if not 0 <= action.index < entry_count:
        raise IndexOutOfRangeError(
            f"Index {action.index} outside playlist {state.playlist_id} (0-{entry_count - 1})"
        )
    return replace(state, current_index=action.index)


@transition.register
def _move(action: MoveTo, state: CursorState, entry_count: int) -> CursorState:
    if state.playlist_id is None or entry_count <= 0:
        return state
    return replace(state, current_index=max(0, min(action.index, entry_count - 1)))


@transition.register
def _toggle_shuffle(action: ToggleShuffle, state: CursorState, entry_count: int) -> CursorState:
    return replace(state, shuffle_enabled=not state.shuffle_enabled)


@transition.register
def _set_repeat(action: SetRepeatMode, state: CursorState, entry_count: int) -> CursorState:
    return replace(state, repeat_mode=action.mode)


@transition.register
def _fail(action: Fail, state: CursorState, entry_count: int) -> CursorState:
    # Error still requires a resolvable reference.
    if state.playlist_id is None or not 0 <= state.current_index < entry_count:
        return state
    return replace(state, status=PlaybackStatus.ERROR)


@transition.register
def _release(action: Release, state: CursorState, entry_count: int) -> CursorState:
    return replace(state, playlist_id=None, current_index=0, status=PlaybackStatus.IDLE)


def coerce_repeat_mode(mode: Union[RepeatMode, str]) -> RepeatMode:
    """Accept a RepeatMode or its string value."""
    if isinstance(mode, RepeatMode):
        return mode
    try:
        return RepeatMode(mode)
    except ValueError:
        raise ValidationError(f"Invalid repeat mode: {mode!r}") from None


class PlaybackCursor:
    """Tracks the current playlist, index, status and playback modes."""

    def __init__(self, state: Optional[CursorState] = None, rng: Optional[random.Random] = None):
        self._state = state or CursorState()
        self._rng = rng or random.Random()

    @property
    def state(self) -> CursorState:
        return self._state

    @state.setter
    def state(self, value: CursorState) -> None:
        self._state = value

    @property
    def playlist_id(self) -> Optional[str]:
        return self._state.playlist_id

    @property
    def current_index(self) -> int:
        return self._state.current_index

    @property
    def status(self) -> PlaybackStatus:
        return self._state.status

    def dispatch(self, action: Action, entry_count: int = 0) -> CursorState:
        """Apply an action; the state is only replaced if the transition succeeds."""
        new_state = transition(action, self._state, entry_count)
        if new_state != self._state:
            logger.debug(f"Cursor {type(action).__name__}: {self._state} -> {new_state}")
        self._state = new_state
        return new_state

    def play(self, playlist_id: str, entry_count: int, start_index: int = 0) -> CursorState:
        """Go through loading to playing at the clamped start index."""
        loading = transition(Load(playlist_id, start_index), self._state, entry_count)
        playing = transition(Start(), loading, entry_count)
        logger.debug(f"Cursor play: {self._state} -> {playing}")
        self._state = playing
        return playing

    def pause(self) -> CursorState:
        if self._state.status is PlaybackStatus.PAUSED:
            return self._state
        return self.dispatch(Pause())

    def resume(self) -> CursorState:
        if self._state.status is PlaybackStatus.PLAYING:
            return self._state
        return self.dispatch(Resume())

    def stop(self) -> CursorState:
        return self.dispatch(Stop())

    def seek(self, index: int, entry_count: int) -> CursorState:
        """Jump to index; an invalid target puts a referenced cursor in error."""
        try:
            return self.dispatch(SeekTo(index), entry_count)
        except IndexOutOfRangeError:
            self.dispatch(Fail(), entry_count)
            raise

    def move_to(self, index: int, entry_count: int) -> CursorState:
        return self.dispatch(MoveTo(index), entry_count)

    def toggle_shuffle(self) -> CursorState:
        return self.dispatch(ToggleShuffle())

    def set_repeat_mode(self, mode: Union[RepeatMode, str]) -> CursorState:
        return self.dispatch(SetRepeatMode(coerce_repeat_mode(mode)))

    def fail(self, entry_count: int) -> CursorState:
        return self.dispatch(Fail(), entry_count)

    def release(self) -> CursorState:
        return self.dispatch(Release())

    def next_index(self, entry_count: int) -> int:
        """Index a Next press would select."""
        if entry_count <= 0:
            return 0
        current = self._state.current_index
        if self._state.shuffle_enabled:
            return self._random_other(current, entry_count)

        candidate = current + 1
        if candidate >= entry_count:
            if self._state.repeat_mode is RepeatMode.ALL:
                return 0
            return min(current, entry_count - 1)
        return candidate

    def previous_index(self, entry_count: int) -> int:
        """Index a Previous press would select."""
        if entry_count <= 0:
            return 0
        current = self._state.current_index
        if self._state.shuffle_enabled:
            return self._random_other(current, entry_count)

        candidate = current - 1
        if candidate < 0:
            if self._state.repeat_mode is RepeatMode.ALL:
                return entry_count - 1
            return 0
        return min(candidate, entry_count - 1)

    def _random_other(self, current: int, entry_count: int) -> int:
        if entry_count == 1:
            return 0
        if not 0 <= current < entry_count:
            return self._rng.randrange(entry_count)
        # Draw from the n-1 other slots, skipping over the current one.
        pick = self._rng.randrange(entry_count - 1)
        return pick + 1 if pick >= current else pick
