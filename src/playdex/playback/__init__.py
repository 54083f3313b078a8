from .cursor import CursorState, PlaybackCursor, transition

__all__ = ['CursorState', 'PlaybackCursor', 'transition']
