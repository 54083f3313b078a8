"""JSON file storage for engine snapshots."""

import asyncio
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional, Union

from playdex.errors import PersistenceError
from playdex.persistence.gateway import StateGateway
from playdex.persistence.snapshot import EngineSnapshot, decode_snapshot, encode_snapshot

logger = logging.getLogger(__name__)


class JsonFileGateway(StateGateway):
    """Writes the snapshot to a JSON file, replacing it atomically.

    File I/O runs in a worker thread so the event loop is never blocked.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._issued = 0
        self._written = 0
        self._write_lock = threading.Lock()

    async def load(self) -> Optional[EngineSnapshot]:
        payload = await asyncio.to_thread(self._read)
        if payload is None:
            return None
        return decode_snapshot(payload)

    async def save(self, snapshot: EngineSnapshot) -> None:
        payload = encode_snapshot(snapshot)
        self._issued += 1
        await asyncio.to_thread(self._write, payload, self._issued)

    def _read(self) -> Optional[str]:
        if not self.path.is_file():
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e

    def _write(self, payload: str, sequence: int) -> None:
        with self._write_lock:
            if sequence <= self._written:
                logger.debug(f"Skipping stale snapshot {sequence} (have {self._written})")
                return
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix='.tmp')
                try:
                    with os.fdopen(fd, 'w', encoding='utf-8') as f:
                        f.write(payload)
                    os.replace(tmp_path, self.path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
            except OSError as e:
                raise PersistenceError(f"Cannot write {self.path}: {e}") from e
            self._written = sequence
