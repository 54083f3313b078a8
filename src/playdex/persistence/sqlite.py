"""SQLite storage for engine snapshots."""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

import aiosqlite

from playdex.errors import PersistenceError
from playdex.persistence.gateway import StateGateway
from playdex.persistence.snapshot import (SCHEMA_VERSION, EngineSnapshot, decode_snapshot,
                                          encode_snapshot)

logger = logging.getLogger(__name__)


class SqliteGateway(StateGateway):
    """Stores the latest snapshot in a single-row SQLite table.

    Every save carries a revision number taken when ``save`` is called. The
    upsert only replaces the stored row when its revision is newer, so a slow
    earlier save cannot overwrite a later one.
    """

    def __init__(self, db_path: Union[str, Path]):
        """Initialize the gateway.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._base_revision: Optional[int] = None
        self._issued = 0
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the schema and read the stored revision."""
        async with self._init_lock:
            if self._base_revision is not None:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute("""
                        CREATE TABLE IF NOT EXISTS engine_state (
                            id INTEGER PRIMARY KEY CHECK (id = 1),
                            schema_version INTEGER NOT NULL,
                            revision INTEGER NOT NULL,
                            payload TEXT NOT NULL,
                            saved_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    """)
                    await db.commit()
                    async with db.execute("SELECT revision FROM engine_state WHERE id = 1") as cursor:
                        row = await cursor.fetchone()
            except (sqlite3.Error, OSError) as e:
                raise PersistenceError(f"Cannot open state database {self.db_path}: {e}") from e

            self._base_revision = row[0] if row else 0
            logger.info(f"State database ready at {self.db_path} (revision {self._base_revision})")

    async def load(self) -> Optional[EngineSnapshot]:
        await self.initialize()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(
                    "SELECT payload, revision FROM engine_state WHERE id = 1"
                ) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot read engine state: {e}") from e

        if not row:
            return None
        logger.debug(f"Loaded engine state revision {row[1]}")
        return decode_snapshot(row[0])

    async def save(self, snapshot: EngineSnapshot) -> None:
        payload = encode_snapshot(snapshot)
        self._issued += 1
        sequence = self._issued

        await self.initialize()
        revision = self._base_revision + sequence
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    INSERT INTO engine_state (id, schema_version, revision, payload, saved_at)
                    VALUES (1, ?, ?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(id) DO UPDATE SET
                        schema_version = excluded.schema_version,
                        revision = excluded.revision,
                        payload = excluded.payload,
                        saved_at = excluded.saved_at
                    WHERE excluded.revision > engine_state.revision
                """, (SCHEMA_VERSION, revision, payload))
                await db.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot save engine state: {e}") from e
        logger.debug(f"Saved engine state revision {revision}")
