"""
Snapshot Persistence Adapter

Reads and writes the full transaction collection under a single key,
wrapped in bounded retry with exponential backoff.

DESIGN DECISION: Persistence is best-effort relative to the in-memory
ledger. A failed save never reverts memory; a failed load leaves the
ledger empty but usable. Both surface a LedgerStorageError so callers
can warn the user.

Snapshot layout (version 1):
    {"version": 1, "transactions": [{...camelCase record...}, ...]}
Legacy snapshots (a bare JSON array of records) are still accepted.
"""

import json
import math
from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from debt_ledger.config import StorageSettings
from debt_ledger.errors import (
    ErrorCode,
    LedgerStorageError,
    classify_error,
    is_retryable,
)
from debt_ledger.models.transaction import (
    SNAPSHOT_VERSION,
    LedgerSnapshot,
    Transaction,
)
from debt_ledger.services.storage.interface import KeyValueStoreInterface


class LoadResult(BaseModel):
    """Outcome of reading the stored snapshot."""

    transactions: list[Transaction] = Field(default_factory=list)
    found: bool = Field(
        default=False,
        description="Was a snapshot present under the key?"
    )
    version: Optional[int] = Field(
        default=None,
        description="Snapshot version (None for legacy bare arrays)"
    )
    dropped_count: int = Field(
        default=0,
        ge=0,
        description="Records discarded by the structural check"
    )


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def has_required_shape(raw) -> bool:
    """
    Structural check for a stored record.

    Required fields must be present and of the right JSON type.
    Anything that passes is then parsed by the Transaction model.
    """
    return (
        isinstance(raw, dict)
        and isinstance(raw.get("id"), str)
        and bool(raw.get("id"))
        and isinstance(raw.get("name"), str)
        and _is_number(raw.get("amount"))
        and isinstance(raw.get("date"), str)
        and isinstance(raw.get("type"), str)
        and isinstance(raw.get("isSettled"), bool)
    )


class PersistenceAdapter:
    """
    Load/save of the transaction snapshot with retry.

    Only errors the classifier marks retryable are retried; everything
    else fails on the first attempt.
    """

    def __init__(
        self,
        store: KeyValueStoreInterface,
        settings: Optional[StorageSettings] = None,
    ):
        self._store = store
        self._settings = settings or StorageSettings()
        self._logger = structlog.get_logger(__name__)

    @property
    def key(self) -> str:
        return self._settings.storage_key

    def _retrying(self, base_delay: float, operation: str) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            error = classify_error(retry_state.outcome.exception())
            self._logger.warning(
                "storage_retry",
                operation=operation,
                attempt=retry_state.attempt_number,
                max_attempts=self._settings.max_retry_attempts,
                next_delay=retry_state.next_action.sleep if retry_state.next_action else None,
                **error.to_log_dict(),
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_retry_attempts),
            wait=wait_exponential(
                multiplier=base_delay,
                max=self._settings.max_retry_delay_seconds,
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=log_retry,
            reraise=True,
        )

    async def load(self) -> LoadResult:
        """
        Read and parse the stored snapshot.

        Returns:
            LoadResult (empty and found=False if the key is missing)

        Raises:
            LedgerStorageError: If reading or parsing keeps failing
        """
        try:
            async for attempt in self._retrying(
                self._settings.load_retry_delay_seconds, "load"
            ):
                with attempt:
                    raw = await self._store.get(self.key)
                    result = self._parse(raw)
        except Exception as e:
            error = classify_error(e)
            if error.code == ErrorCode.UNSUPPORTED_VERSION:
                raise error
            self._logger.error("snapshot_load_failed", key=self.key, **error.to_log_dict())
            raise LedgerStorageError(
                f"Failed to load transactions. Your data may be unavailable. ({error.message})",
                code=ErrorCode.LOAD_FAILED,
                retryable=False,
                original=e,
            )

        if result.dropped_count:
            self._logger.warning(
                "records_dropped",
                key=self.key,
                dropped=result.dropped_count,
                kept=len(result.transactions),
            )
        self._logger.info(
            "snapshot_loaded",
            key=self.key,
            found=result.found,
            version=result.version,
            count=len(result.transactions),
        )
        return result

    async def save(self, transactions: Iterable[Transaction]) -> None:
        """
        Serialize the full collection and write it.

        Raises:
            LedgerStorageError: If the write keeps failing
        """
        try:
            snapshot = LedgerSnapshot(transactions=list(transactions))
            payload = json.dumps(snapshot.to_storage_dict(), ensure_ascii=False)

            async for attempt in self._retrying(
                self._settings.save_retry_delay_seconds, "save"
            ):
                with attempt:
                    await self._store.set(self.key, payload)
        except Exception as e:
            error = classify_error(e)
            self._logger.error("snapshot_save_failed", key=self.key, **error.to_log_dict())
            raise LedgerStorageError(
                f"Failed to save transactions. Changes may not be persisted. ({error.message})",
                code=ErrorCode.SAVE_FAILED,
                retryable=False,
                original=e,
            )

        self._logger.debug(
            "snapshot_saved",
            key=self.key,
            count=len(snapshot.transactions),
            bytes=len(payload),
        )

    def _parse(self, raw: Optional[str]) -> LoadResult:
        if raw is None:
            return LoadResult()

        data = json.loads(raw)

        version = None
        if isinstance(data, dict):
            version = data.get("version")
            if not isinstance(version, int) or isinstance(version, bool):
                raise LedgerStorageError(
                    "Invalid transaction data format: missing snapshot version",
                    code=ErrorCode.INVALID_FORMAT,
                )
            if version > SNAPSHOT_VERSION:
                raise LedgerStorageError(
                    f"Snapshot version {version} is newer than supported version {SNAPSHOT_VERSION}",
                    code=ErrorCode.UNSUPPORTED_VERSION,
                    retryable=False,
                )
            items = data.get("transactions")
        else:
            items = data

        if not isinstance(items, list):
            raise LedgerStorageError(
                "Invalid transaction data format",
                code=ErrorCode.INVALID_FORMAT,
            )

        transactions = []
        seen_ids = set()
        for item in items:
            if not has_required_shape(item) or item["id"] in seen_ids:
                continue
            try:
                transaction = Transaction.model_validate(item)
            except PydanticValidationError:
                continue
            seen_ids.add(transaction.id)
            transactions.append(transaction)

        return LoadResult(
            transactions=transactions,
            found=True,
            version=version,
            dropped_count=len(items) - len(transactions),
        )
