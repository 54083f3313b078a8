"""Serializable snapshot of engine state.

The dictionary layout produced here is the durable schema. Keys must stay
stable; a renamed field needs a new ``SCHEMA_VERSION`` and a migration in
``MIGRATIONS``.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from playdex.errors import PersistenceError, ValidationError
from playdex.playback.cursor import CursorState
from playdex.playlist.models import (HistoryEntry, MediaItem, PlaybackStatus, Playlist,
                                     PlaylistEntry, RepeatMode)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass
class EngineSnapshot:
    """Everything the engine persists."""
    playlists: List[Playlist] = field(default_factory=list)
    cursor: CursorState = field(default_factory=CursorState)
    history: List[HistoryEntry] = field(default_factory=list)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        # Keep every timestamp naive local time, like datetime.now()
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def media_to_dict(media: MediaItem) -> Dict[str, Any]:
    return {
        'id': media.id,
        'title': media.title,
        'duration': media.duration,
        'file_path': media.file_path,
        'format': media.format,
        'metadata': dict(media.metadata),
    }


def media_from_dict(data: Dict[str, Any]) -> MediaItem:
    return MediaItem(
        id=data['id'],
        title=data['title'],
        duration=float(data['duration']),
        file_path=data.get('file_path'),
        format=data.get('format'),
        metadata=dict(data.get('metadata') or {}),
    )


def entry_to_dict(entry: PlaylistEntry) -> Dict[str, Any]:
    return {
        'id': entry.id,
        'media': media_to_dict(entry.media),
        'position': entry.position,
        'added_at': _dt(entry.added_at),
        'play_count': entry.play_count,
        'last_played': _dt(entry.last_played),
        'custom_title': entry.custom_title,
        'notes': entry.notes,
    }


def entry_from_dict(data: Dict[str, Any]) -> PlaylistEntry:
    return PlaylistEntry(
        id=data['id'],
        media=media_from_dict(data['media']),
        position=int(data['position']),
        added_at=_parse_dt(data['added_at']),
        play_count=int(data.get('play_count', 0)),
        last_played=_parse_dt(data.get('last_played')),
        custom_title=data.get('custom_title'),
        notes=data.get('notes'),
    )


def playlist_to_dict(playlist: Playlist) -> Dict[str, Any]:
    return {
        'id': playlist.id,
        'name': playlist.name,
        'description': playlist.description,
        'entries': [entry_to_dict(entry) for entry in playlist.entries],
        'created_at': _dt(playlist.created_at),
        'updated_at': _dt(playlist.updated_at),
        'thumbnail_path': playlist.thumbnail_path,
        'is_favorite': playlist.is_favorite,
        'total_duration': playlist.total_duration,
        'play_count': playlist.play_count,
        'last_played': _dt(playlist.last_played),
        'tags': list(playlist.tags),
        'is_public': playlist.is_public,
    }


def playlist_from_dict(data: Dict[str, Any]) -> Playlist:
    return Playlist(
        id=data['id'],
        name=data['name'],
        description=data.get('description'),
        entries=[entry_from_dict(entry) for entry in data.get('entries', [])],
        created_at=_parse_dt(data['created_at']),
        updated_at=_parse_dt(data['updated_at']),
        thumbnail_path=data.get('thumbnail_path'),
        is_favorite=bool(data.get('is_favorite', False)),
        total_duration=float(data.get('total_duration', 0.0)),
        play_count=int(data.get('play_count', 0)),
        last_played=_parse_dt(data.get('last_played')),
        tags=list(data.get('tags') or []),
        is_public=bool(data.get('is_public', False)),
    )


def cursor_to_dict(state: CursorState) -> Dict[str, Any]:
    return {
        'playlist_id': state.playlist_id,
        'current_index': state.current_index,
        'status': state.status.value,
        'shuffle_enabled': state.shuffle_enabled,
        'repeat_mode': state.repeat_mode.value,
    }


def cursor_from_dict(data: Dict[str, Any]) -> CursorState:
    return CursorState(
        playlist_id=data.get('playlist_id'),
        current_index=int(data.get('current_index', 0)),
        status=PlaybackStatus(data.get('status', PlaybackStatus.IDLE.value)),
        shuffle_enabled=bool(data.get('shuffle_enabled', False)),
        repeat_mode=RepeatMode(data.get('repeat_mode', RepeatMode.OFF.value)),
    )


def history_to_dict(entry: HistoryEntry) -> Dict[str, Any]:
    return {
        'id': entry.id,
        'playlist_id': entry.playlist_id,
        'playlist_name': entry.playlist_name,
        'media_id': entry.media_id,
        'media_title': entry.media_title,
        'played_at': _dt(entry.played_at),
        'duration_played': entry.duration_played,
        'completion_percentage': entry.completion_percentage,
        'device_info': entry.device_info,
    }


def history_from_dict(data: Dict[str, Any]) -> HistoryEntry:
    return HistoryEntry(
        id=data['id'],
        playlist_id=data['playlist_id'],
        playlist_name=data.get('playlist_name'),
        media_id=data['media_id'],
        media_title=data['media_title'],
        played_at=_parse_dt(data['played_at']),
        duration_played=float(data['duration_played']),
        completion_percentage=float(data['completion_percentage']),
        device_info=data.get('device_info'),
    )


def snapshot_to_dict(snapshot: EngineSnapshot) -> Dict[str, Any]:
    return {
        'schema_version': SCHEMA_VERSION,
        'playlists': [playlist_to_dict(playlist) for playlist in snapshot.playlists],
        'cursor_state': cursor_to_dict(snapshot.cursor),
        'history': [history_to_dict(entry) for entry in snapshot.history],
    }


def _migrate_v0(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert the desktop app's layout (video playlists and playback state)."""
    playlists = data.get('video_playlists', data.get('playlists')) or []
    playback = data.get('video_playback_state', data.get('playback_state')) or {}

    migrated_playlists = []
    for playlist in playlists:
        items = sorted(playlist.get('items', []), key=lambda item: item.get('position_in_playlist', 0))
        entries = []
        for position, item in enumerate(items):
            video = dict(item['video'])
            media = {
                'id': video.pop('id'),
                'title': video.pop('title'),
                'duration': video.pop('duration', 0),
                'file_path': video.pop('file_path', None),
                'format': video.pop('format', None),
                'metadata': video,
            }
            entries.append({
                'id': item['id'],
                'media': media,
                'position': position,
                'added_at': item['added_at'],
                'play_count': item.get('play_count', 0),
                'last_played': item.get('last_played'),
                'custom_title': item.get('custom_title'),
                'notes': item.get('notes') or None,
            })
        migrated_playlists.append({
            **{key: value for key, value in playlist.items() if key != 'items'},
            'entries': entries,
            # Stored totals may have drifted; rebuild from the entries.
            'total_duration': float(sum(entry['media']['duration'] for entry in entries)),
        })

    history = [
        {
            'id': item['id'],
            'playlist_id': item['playlist_id'],
            'playlist_name': item.get('playlist_name'),
            'media_id': item['video_id'],
            'media_title': item['video_title'],
            'played_at': item['played_at'],
            'duration_played': item.get('duration_played', 0),
            'completion_percentage': item.get('completion_percentage', 0),
            'device_info': item.get('device_info'),
        }
        for item in playback.get('playback_history', [])
    ]

    return {
        'schema_version': 1,
        'playlists': migrated_playlists,
        'cursor_state': {
            'playlist_id': playback.get('current_playlist_id'),
            'current_index': playback.get('current_item_index', 0),
            'status': playback.get('status', 'idle'),
            'shuffle_enabled': playback.get('shuffle_enabled', False),
            'repeat_mode': playback.get('repeat_mode', 'off'),
        },
        'history': history,
    }


MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    0: _migrate_v0,
}


def migrate(data: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade a stored payload to the current schema version."""
    version = data.get('schema_version', 0)
    if version > SCHEMA_VERSION:
        raise PersistenceError(f"Snapshot schema {version} is newer than supported {SCHEMA_VERSION}")
    while version < SCHEMA_VERSION:
        logger.info(f"Migrating snapshot from schema {version}")
        data = MIGRATIONS[version](data)
        version = data['schema_version']
    return data


def snapshot_from_dict(data: Dict[str, Any]) -> EngineSnapshot:
    """Build a snapshot from a stored payload of any supported version."""
    try:
        data = migrate(data)
        return EngineSnapshot(
            playlists=[playlist_from_dict(playlist) for playlist in data.get('playlists', [])],
            cursor=cursor_from_dict(data.get('cursor_state') or {}),
            history=[history_from_dict(entry) for entry in data.get('history', [])],
        )
    except PersistenceError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError, ValidationError) as e:
        raise PersistenceError(f"Invalid snapshot payload: {e}") from e


def encode_snapshot(snapshot: EngineSnapshot) -> str:
    """Serialize to JSON text."""
    try:
        return json.dumps(snapshot_to_dict(snapshot))
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Cannot serialize engine state: {e}") from e


def decode_snapshot(payload: str) -> EngineSnapshot:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"Stored state is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PersistenceError("Stored state is not a JSON object")
    return snapshot_from_dict(data)

