"""
Timeout and retry wrapper around a record store.

Every call runs under asyncio.wait_for; timeouts surface as
StoreTimeoutError. Transient failures are retried with exponential backoff
via tenacity. Business errors (duplicates, conflicts, not found) pass
straight through.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from repair_estimator.config.settings import StoreSettings
from repair_estimator.exceptions import StoreTimeoutError, TransientStoreError
from repair_estimator.models.records import Record
from repair_estimator.store.base import RecordStore
from repair_estimator.store.query import Filter, SortKey
from repair_estimator.utils.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class ResilientStore(RecordStore):
    """RecordStore decorator adding per-call timeouts and bounded retries."""

    def __init__(
        self,
        store: RecordStore,
        timeout: float = 5.0,
        attempts: int = 3,
        wait_min: float = 0.1,
        wait_max: float = 2.0,
    ):
        self.store = store
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.wait_min = wait_min
        self.wait_max = wait_max

    @classmethod
    def from_settings(cls, store: RecordStore, store_settings: StoreSettings) -> "ResilientStore":
        return cls(
            store,
            timeout=store_settings.timeout_seconds,
            attempts=store_settings.retry_attempts,
            wait_min=store_settings.retry_wait_min_seconds,
            wait_max=store_settings.retry_wait_max_seconds,
        )

    async def _call(self, operation: str, factory: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.wait_min, min=self.wait_min, max=self.wait_max),
            retry=retry_if_exception_type(TransientStoreError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "store_call_retry",
                        operation=operation,
                        attempt=attempt.retry_state.attempt_number,
                    )
                try:
                    return await asyncio.wait_for(factory(), timeout=self.timeout)
                except asyncio.TimeoutError as exc:
                    raise StoreTimeoutError(operation, self.timeout) from exc

    async def save(
        self,
        record_type: str,
        record: Record,
        *,
        if_absent: bool = False,
        expected_updated_at: datetime | None = None,
    ) -> Record:
        return await self._call(
            "save",
            lambda: self.store.save(
                record_type,
                record,
                if_absent=if_absent,
                expected_updated_at=expected_updated_at,
            ),
        )

    async def fetch(self, record_type: str, record_id: str) -> Record | None:
        return await self._call("fetch", lambda: self.store.fetch(record_type, record_id))

    async def query(
        self,
        record_type: str,
        filter: Filter | None = None,
        sort: list[SortKey] | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        return await self._call("query", lambda: self.store.query(record_type, filter, sort, limit))

    async def delete(self, record_type: str, record_id: str) -> bool:
        return await self._call("delete", lambda: self.store.delete(record_type, record_id))

    async def close(self) -> None:
        await self.store.close()
