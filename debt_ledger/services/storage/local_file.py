"""
Local Storage Backends

DESIGN DECISION: The default backend is a directory of files, one per key,
because:
1. Data stays on the user's device (local-only persistence)
2. No database setup required
3. The snapshot is human-readable JSON and easy to back up

TRADEOFFS:
- Whole-snapshot rewrites on every save (fine for a personal ledger)
- No cross-process locking (single-user, single-process by design)

Writes go to a temporary file in the same directory, are fsynced, and
then moved into place with os.replace, which is atomic on POSIX and
Windows. A crash mid-write leaves the previous snapshot intact.
"""

import asyncio
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

import structlog

from debt_ledger.services.storage.interface import KeyValueStoreInterface


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileKeyValueStore(KeyValueStoreInterface):
    """
    File-per-key store under a data directory.

    Blocking file I/O runs in a worker thread so the event loop stays free
    for the next ledger mutation.
    """

    def __init__(self, directory: Path, encoding: str = "utf-8"):
        self._directory = Path(directory)
        self._encoding = encoding
        self._logger = structlog.get_logger(__name__)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        """Map a namespaced key (e.g. '@app_items') to a safe filename."""
        safe = _UNSAFE_KEY_CHARS.sub("_", key).strip("._") or "default"
        return self._directory / f"{safe}.json"

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write_atomic, self.path_for(key), value)

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._remove, self.path_for(key))

    def _read(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding=self._encoding)
        except FileNotFoundError:
            return None

    def _write_atomic(self, path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.stem}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding=self._encoding) as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            # Leave the previous snapshot untouched
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        self._logger.debug("file_written", path=str(path), bytes=len(value))

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """
    Process-local store.

    Used for tests and for running the engine without touching disk.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def dump(self) -> dict[str, str]:
        """Copy of the raw stored values."""
        return dict(self._data)
