"""
Single-Slot Snapshot Write Queue

Every ledger mutation submits the full current snapshot. Writes are
serialized: at most one save is in flight, and at most one snapshot waits
behind it. A newer submission replaces the waiting one, so an older
snapshot can never land after a newer one.

If no event loop is running when a snapshot is submitted, it stays
pending until flush() is awaited.
"""

import asyncio
from typing import Callable, Optional, Sequence

import structlog

from debt_ledger.errors import LedgerStorageError
from debt_ledger.models.transaction import Transaction
from debt_ledger.services.storage.persistence import PersistenceAdapter


class SnapshotWriteQueue:
    """Coalescing, strictly ordered writer for ledger snapshots."""

    def __init__(
        self,
        adapter: PersistenceAdapter,
        on_success: Optional[Callable[[Sequence[Transaction]], None]] = None,
        on_failure: Optional[Callable[[LedgerStorageError], None]] = None,
    ):
        self._adapter = adapter
        self._on_success = on_success
        self._on_failure = on_failure
        self._pending: Optional[tuple[Transaction, ...]] = None
        self._task: Optional[asyncio.Task] = None
        self._logger = structlog.get_logger(__name__)

        self.writes_completed = 0
        self.writes_failed = 0
        self.snapshots_superseded = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def is_busy(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_idle(self) -> bool:
        return not self.is_busy and not self.has_pending

    def submit(self, snapshot: Sequence[Transaction]) -> None:
        """Queue a snapshot, replacing any snapshot still waiting."""
        if self._pending is not None:
            self.snapshots_superseded += 1
        self._pending = tuple(snapshot)

        if self.is_busy:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.debug("write_deferred", reason="no_running_loop")
            return
        self._task = loop.create_task(self._drain())

    async def flush(self) -> None:
        """Wait until every submitted snapshot has been written (or failed)."""
        while True:
            if self.is_busy:
                await self._task
            elif self._pending is not None:
                self._task = asyncio.get_running_loop().create_task(self._drain())
            else:
                return

    async def _drain(self) -> None:
        while self._pending is not None:
            snapshot, self._pending = self._pending, None
            try:
                await self._adapter.save(snapshot)
            except asyncio.CancelledError:
                # Loop shutting down: keep the snapshot unless a newer one arrived
                if self._pending is None:
                    self._pending = snapshot
                raise
            except LedgerStorageError as e:
                self.writes_failed += 1
                if self._on_failure:
                    self._on_failure(e)
            else:
                self.writes_completed += 1
                if self._on_success:
                    self._on_success(snapshot)
