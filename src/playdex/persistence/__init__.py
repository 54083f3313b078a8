"""Durable storage for engine snapshots."""

from .gateway import MemoryGateway, StateGateway
from .json_file import JsonFileGateway
from .snapshot import EngineSnapshot
from .sqlite import SqliteGateway

__all__ = ['StateGateway', 'MemoryGateway', 'SqliteGateway', 'JsonFileGateway', 'EngineSnapshot']
