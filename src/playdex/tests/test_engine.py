"""Tests for the playback engine."""

import random
from unittest.mock import AsyncMock, patch

import pytest

from playdex.engine import PlaybackEngine
from playdex.errors import (EmptyPlaylistError, IndexOutOfRangeError, InvalidStateError,
                            InvariantError, NotFoundError, PersistenceError, ValidationError)
from playdex.persistence.gateway import MemoryGateway
from playdex.persistence.json_file import JsonFileGateway
from playdex.persistence.snapshot import EngineSnapshot, encode_snapshot
from playdex.playback.cursor import CursorState
from playdex.playlist.models import PlaybackStatus, Playlist, PlaylistEntry, RepeatMode


def current_playlist(engine):
    return engine.get_playlist_by_id(engine.cursor.playlist_id)


def assert_consistent(playlist):
    assert [entry.position for entry in playlist.entries] == list(range(len(playlist.entries)))
    assert playlist.total_duration == sum(entry.media.duration for entry in playlist.entries)


@pytest.mark.asyncio
async def test_play_empty_playlist_then_add(engine, make_media):
    playlist = await engine.create_playlist("A")

    with pytest.raises(EmptyPlaylistError):
        await engine.play(playlist.id)
    assert engine.cursor == CursorState()

    await engine.add_entry(playlist.id, make_media(1))
    media = await engine.play(playlist.id)

    assert media == make_media(1)
    assert engine.cursor.status is PlaybackStatus.PLAYING
    assert engine.cursor.current_index == 0
    assert playlist.play_count == 1
    assert playlist.last_played is not None


@pytest.mark.asyncio
async def test_create_validates_name(engine):
    for name in ("", "   ", "x" * 101):
        with pytest.raises(ValidationError):
            await engine.create_playlist(name)
    playlist = await engine.create_playlist("Road Trip Mix")
    assert engine.playlists == [playlist]


@pytest.mark.asyncio
async def test_every_mutation_is_saved(engine, memory_gateway, make_media):
    playlist = await engine.create_playlist("A")
    await engine.add_entry(playlist.id, make_media(1))
    await engine.play(playlist.id)
    await engine.pause()

    assert memory_gateway.save_count == 4
    saved = await memory_gateway.load()
    assert saved.cursor.status is PlaybackStatus.PAUSED
    assert saved.playlists[0].entries[0].media == make_media(1)


@pytest.mark.asyncio
async def test_failed_validation_does_not_save(engine, memory_gateway):
    with pytest.raises(NotFoundError):
        await engine.delete_playlist("playlist_missing")
    assert memory_gateway.save_count == 0


@pytest.mark.asyncio
async def test_persistence_failure_keeps_change(engine):
    with patch.object(engine.gateway, 'save', AsyncMock(side_effect=PersistenceError("disk full"))):
        with pytest.raises(PersistenceError):
            await engine.create_playlist("Kept")

    assert [p.name for p in engine.playlists] == ["Kept"]


@pytest.mark.asyncio
async def test_repeat_one_replays_current(playing_engine):
    engine = playing_engine
    await engine.seek(1)
    await engine.set_repeat_mode(RepeatMode.ONE)

    media = await engine.media_ended()

    assert engine.cursor.current_index == 1
    assert engine.cursor.status is PlaybackStatus.PLAYING
    assert media.id == "video-1"
    assert current_playlist(engine).entries[1].play_count == 1
    assert engine.get_history()[0].media_id == "video-1"


@pytest.mark.asyncio
async def test_media_ended_advances(playing_engine):
    engine = playing_engine
    media = await engine.media_ended(duration_played=50)

    assert media.id == "video-1"
    assert engine.cursor.current_index == 1
    record = engine.get_history()[0]
    assert record.media_id == "video-0"
    assert record.playlist_name == "Road Trip"
    assert record.completion_percentage == 50.0


@pytest.mark.asyncio
async def test_media_ended_from_paused_resumes(playing_engine):
    engine = playing_engine
    await engine.pause()
    await engine.media_ended()
    assert engine.cursor.status is PlaybackStatus.PLAYING


@pytest.mark.asyncio
async def test_media_ended_at_end_stops(playing_engine):
    engine = playing_engine
    await engine.seek(2)

    assert await engine.media_ended() is None
    assert engine.cursor.status is PlaybackStatus.IDLE
    assert engine.cursor.current_index == 0
    assert engine.get_current_item() is None
    assert len(engine.get_history()) == 1


@pytest.mark.asyncio
async def test_media_ended_repeat_all_wraps(playing_engine):
    engine = playing_engine
    await engine.seek(2)
    await engine.set_repeat_mode("all")

    media = await engine.media_ended()

    assert media.id == "video-0"
    assert engine.cursor.current_index == 0


@pytest.mark.asyncio
async def test_media_ended_when_idle_is_ignored(engine):
    assert await engine.media_ended() is None
    assert engine.get_history() == []


@pytest.mark.asyncio
async def test_next_and_previous(playing_engine):
    engine = playing_engine

    assert (await engine.next()).id == "video-1"
    assert (await engine.next()).id == "video-2"
    assert (await engine.next()).id == "video-2"
    assert (await engine.previous()).id == "video-1"

    await engine.set_repeat_mode(RepeatMode.ALL)
    await engine.seek(0)
    assert engine.previous_index() == 2
    await engine.seek(2)
    assert engine.next_index() == 0


@pytest.mark.asyncio
async def test_next_requires_playlist(engine):
    with pytest.raises(InvalidStateError):
        await engine.next()
    with pytest.raises(InvalidStateError):
        await engine.previous()


@pytest.mark.asyncio
async def test_shuffle_next_avoids_current(playing_engine, media_items):
    engine = playing_engine
    playlist = current_playlist(engine)
    await engine.add_entries(playlist.id, media_items[:2])
    await engine.seek(2)
    assert await engine.toggle_shuffle() is True

    for _ in range(50):
        assert engine.next_index() != 2


@pytest.mark.asyncio
async def test_invalid_seek_enters_error(playing_engine, memory_gateway):
    engine = playing_engine
    saves = memory_gateway.save_count

    with pytest.raises(IndexOutOfRangeError):
        await engine.seek(3)

    assert engine.cursor.status is PlaybackStatus.ERROR
    assert engine.cursor.current_index == 0
    assert memory_gateway.save_count == saves + 1
    with pytest.raises(InvalidStateError):
        await engine.resume()

    await engine.play(engine.cursor.playlist_id, 2)
    assert engine.cursor.status is PlaybackStatus.PLAYING


@pytest.mark.asyncio
async def test_seek_without_playlist(engine):
    with pytest.raises(IndexOutOfRangeError):
        await engine.seek(0)
    assert engine.cursor == CursorState()


@pytest.mark.asyncio
async def test_media_failed(playing_engine):
    engine = playing_engine
    await engine.media_failed("decoder crashed")

    assert engine.cursor.status is PlaybackStatus.ERROR
    with pytest.raises(InvalidStateError):
        await engine.pause()


@pytest.mark.asyncio
async def test_pause_resume_stop(playing_engine):
    engine = playing_engine
    playlist_id = engine.cursor.playlist_id

    await engine.pause()
    assert engine.cursor.status is PlaybackStatus.PAUSED
    await engine.resume()
    assert engine.cursor.status is PlaybackStatus.PLAYING

    await engine.stop()
    assert engine.cursor.status is PlaybackStatus.IDLE
    assert engine.cursor.playlist_id == playlist_id
    assert engine.get_current_item() is None
    with pytest.raises(InvalidStateError):
        await engine.pause()


@pytest.mark.asyncio
async def test_delete_active_playlist_releases_cursor(playing_engine):
    engine = playing_engine
    await engine.delete_playlist(engine.cursor.playlist_id)

    assert engine.cursor.status is PlaybackStatus.IDLE
    assert engine.cursor.playlist_id is None
    assert engine.playlists == []


@pytest.mark.asyncio
async def test_delete_other_playlist_keeps_playing(playing_engine):
    engine = playing_engine
    other = await engine.create_playlist("Other")
    await engine.delete_playlist(other.id)
    assert engine.cursor.status is PlaybackStatus.PLAYING


@pytest.mark.asyncio
async def test_remove_current_entry(playing_engine):
    engine = playing_engine
    await engine.seek(1)
    playlist = current_playlist(engine)

    await engine.remove_entry(playlist.id, playlist.entries[1].id)

    assert_consistent(playlist)
    assert engine.cursor.current_index == 1
    assert engine.get_current_item().id == "video-2"


@pytest.mark.asyncio
async def test_remove_entry_before_current_follows(playing_engine):
    engine = playing_engine
    await engine.seek(2)
    playlist = current_playlist(engine)

    await engine.remove_entry(playlist.id, playlist.entries[0].id)

    assert engine.cursor.current_index == 1
    assert engine.get_current_item().id == "video-2"


@pytest.mark.asyncio
async def test_remove_last_current_entry_clamps(playing_engine):
    engine = playing_engine
    await engine.seek(2)
    playlist = current_playlist(engine)

    await engine.remove_entry(playlist.id, playlist.entries[2].id)

    assert engine.cursor.current_index == 1
    assert engine.cursor.status is PlaybackStatus.PLAYING


@pytest.mark.asyncio
async def test_removing_every_entry_stops(playing_engine):
    engine = playing_engine
    playlist = current_playlist(engine)

    for entry in list(playlist.entries):
        await engine.remove_entry(playlist.id, entry.id)

    assert playlist.total_duration == 0.0
    assert engine.cursor.status is PlaybackStatus.IDLE
    assert engine.cursor.playlist_id == playlist.id
    assert engine.get_current_item() is None


@pytest.mark.asyncio
async def test_reorder_follows_current_entry(playing_engine):
    engine = playing_engine
    playlist = current_playlist(engine)
    ids = [entry.id for entry in playlist.entries]

    await engine.reorder_entries(playlist.id, [ids[1], ids[2], ids[0]])

    assert_consistent(playlist)
    assert engine.cursor.current_index == 2
    assert engine.get_current_item().id == "video-0"


@pytest.mark.asyncio
async def test_reorder_mismatch_changes_nothing(playing_engine, memory_gateway):
    engine = playing_engine
    playlist = current_playlist(engine)
    ids = [entry.id for entry in playlist.entries]
    saves = memory_gateway.save_count

    with pytest.raises(InvariantError):
        await engine.reorder_entries(playlist.id, ids[:2])

    assert [entry.id for entry in playlist.entries] == ids
    assert memory_gateway.save_count == saves


@pytest.mark.asyncio
async def test_reorder_idle_playlist_does_not_move_cursor(engine, media_items):
    playlist = await engine.create_playlist("Idle")
    await engine.add_entries(playlist.id, media_items)
    ids = [entry.id for entry in playlist.entries]

    await engine.reorder_entries(playlist.id, list(reversed(ids)))

    assert engine.cursor == CursorState()


@pytest.mark.asyncio
async def test_playlist_updates(engine, media_items):
    playlist = await engine.create_playlist("Trip", tags=["car"])
    await engine.add_entries(playlist.id, media_items)

    await engine.update_playlist(playlist.id, name="Long Trip", description="Summer")
    entry = await engine.update_entry(playlist.id, playlist.entries[0].id, custom_title="Opener")
    favorite = await engine.toggle_favorite(playlist.id)
    copy = await engine.duplicate_playlist(playlist.id)

    assert playlist.name == "Long Trip"
    assert entry.display_title == "Opener"
    assert favorite.is_favorite
    assert copy.name == "Long Trip (copy)"
    assert engine.stats().total_entries == 6
    assert engine.stats().favorites == [playlist, copy]


@pytest.mark.asyncio
async def test_history_query(playing_engine, make_media):
    engine = playing_engine
    other = await engine.create_playlist("Other")
    await engine.add_entry(other.id, make_media(9))

    await engine.media_ended()
    await engine.play(other.id)
    await engine.media_ended()

    assert [h.media_id for h in engine.get_history()] == ["video-9", "video-0"]
    assert [h.media_id for h in engine.get_history(playlist_id=other.id)] == ["video-9"]
    assert len(engine.get_history(limit=1)) == 1


@pytest.mark.asyncio
async def test_state_survives_restart(playing_engine, memory_gateway):
    engine = playing_engine
    await engine.media_ended()
    await engine.toggle_shuffle()
    await engine.pause()

    restored = PlaybackEngine(MemoryGateway(memory_gateway.payload), rng=random.Random(1))
    assert await restored.load() is True

    assert restored.snapshot() == engine.snapshot()
    assert restored.get_current_item().id == "video-1"


@pytest.mark.asyncio
async def test_load_is_only_done_once(engine):
    assert await engine.load() is False


@pytest.mark.asyncio
async def test_load_corrupt_state_starts_empty():
    engine = PlaybackEngine(MemoryGateway("{broken"))
    assert await engine.load() is False
    assert engine.playlists == []
    assert engine.cursor == CursorState()


@pytest.mark.asyncio
async def test_load_undecodable_json_file_starts_empty(temp_json_path):
    temp_json_path.write_bytes(b'{"schema_version": 1, "playlists": ["\xff\xfe"]}')
    engine = PlaybackEngine(JsonFileGateway(temp_json_path))

    assert await engine.load() is False
    assert engine.playlists == []


@pytest.mark.asyncio
async def test_load_rejects_duplicate_entry_ids(make_media):
    playlist = Playlist(name="Dupes")
    playlist.entries = [
        PlaylistEntry(media=make_media(i, duration=10), position=i, id=entry_id)
        for i, entry_id in enumerate(["item_a", "item_a", "item_b"])
    ]
    playlist.renumber()
    engine = PlaybackEngine(MemoryGateway(encode_snapshot(EngineSnapshot(playlists=[playlist]))))

    assert await engine.load() is False
    assert engine.playlists == []


@pytest.mark.asyncio
async def test_invalid_seek_error_survives_save_failure(playing_engine):
    engine = playing_engine
    with patch.object(engine.gateway, 'save', AsyncMock(side_effect=PersistenceError("disk full"))):
        with pytest.raises(IndexOutOfRangeError):
            await engine.seek(7)

    assert engine.cursor.status is PlaybackStatus.ERROR


@pytest.mark.asyncio
async def test_load_releases_missing_playlist():
    snapshot = EngineSnapshot(cursor=CursorState(playlist_id="playlist_gone",
                                                 status=PlaybackStatus.PLAYING))
    engine = PlaybackEngine(MemoryGateway(encode_snapshot(snapshot)))

    assert await engine.load() is True
    assert engine.cursor.playlist_id is None
    assert engine.cursor.status is PlaybackStatus.IDLE


@pytest.mark.asyncio
async def test_load_clamps_index(media_items):
    playlist = Playlist(name="Trip")
    playlist.entries = [PlaylistEntry(media=media, position=i) for i, media in enumerate(media_items)]
    playlist.renumber()
    snapshot = EngineSnapshot(
        playlists=[playlist],
        cursor=CursorState(playlist_id=playlist.id, current_index=7, status=PlaybackStatus.PAUSED),
    )
    engine = PlaybackEngine(MemoryGateway(encode_snapshot(snapshot)))

    await engine.load()

    assert engine.cursor.current_index == 2
    assert engine.cursor.status is PlaybackStatus.PAUSED


@pytest.mark.asyncio
async def test_load_rejects_inconsistent_playlists(media_items):
    playlist = Playlist(name="Trip", total_duration=1.0)
    playlist.entries = [PlaylistEntry(media=media_items[0], position=0)]
    engine = PlaybackEngine(MemoryGateway(encode_snapshot(EngineSnapshot(playlists=[playlist]))))

    assert await engine.load() is False
    assert engine.playlists == []
