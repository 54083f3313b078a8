"""Shared test fixtures."""

import os
import random
import tempfile
from pathlib import Path
from typing import List

import pytest

from playdex.engine import PlaybackEngine
from playdex.persistence.gateway import MemoryGateway
from playdex.playlist.models import MediaItem


def _media(index: int, duration: float = 180.0) -> MediaItem:
    return MediaItem(
        id=f"video-{index}",
        title=f"Video {index}",
        duration=duration,
        file_path=f"/videos/video_{index}.mp4",
        format="mp4",
    )


@pytest.fixture
def make_media():
    """Factory for media items with predictable IDs."""
    return _media


@pytest.fixture
def media_items() -> List[MediaItem]:
    """Three media items of 100, 200 and 300 seconds."""
    return [_media(i, duration=100.0 * (i + 1)) for i in range(3)]


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    yield Path(path)
    if os.path.exists(path):
        os.unlink(path)


@pytest.fixture
def temp_json_path():
    """Path inside a temporary directory; the file does not exist yet."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir) / "state.json"


@pytest.fixture
def memory_gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
async def engine(memory_gateway):
    """Loaded engine backed by an in-memory gateway."""
    engine = PlaybackEngine(memory_gateway, rng=random.Random(42))
    await engine.load()
    yield engine
    await engine.close()


@pytest.fixture
async def playing_engine(engine, media_items):
    """Engine playing a three-item playlist from the first item."""
    playlist = await engine.create_playlist("Road Trip")
    await engine.add_entries(playlist.id, media_items)
    await engine.play(playlist.id)
    return engine
