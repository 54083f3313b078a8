"""Persistence contract between the engine and durable storage."""

from abc import ABC, abstractmethod
from typing import Optional

from playdex.persistence.snapshot import EngineSnapshot, decode_snapshot, encode_snapshot


class StateGateway(ABC):
    """Base class for engine state storage.

    ``save`` is called after every mutation and may overlap with an earlier
    save that is still running. Implementations serialize the whole snapshot
    before their first ``await`` and must never let an older snapshot replace
    a newer one.
    """

    @abstractmethod
    async def load(self) -> Optional[EngineSnapshot]:
        """Return the stored snapshot, or None when nothing was saved"""
        pass

    @abstractmethod
    async def save(self, snapshot: EngineSnapshot) -> None:
        """Store a full snapshot"""
        pass

    async def close(self) -> None:
        """Release storage resources"""
        pass


class MemoryGateway(StateGateway):
    """Keeps the serialized snapshot in memory."""

    def __init__(self, payload: Optional[str] = None):
        self.payload = payload
        self.save_count = 0

    async def load(self) -> Optional[EngineSnapshot]:
        if self.payload is None:
            return None
        return decode_snapshot(self.payload)

    async def save(self, snapshot: EngineSnapshot) -> None:
        self.payload = encode_snapshot(snapshot)
        self.save_count += 1
