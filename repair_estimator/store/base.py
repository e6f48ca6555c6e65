"""
Record store contract.

The pricing and workflow services persist everything through this
interface: keyed records grouped by record type, with create-only and
conditional (optimistic) writes.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from repair_estimator.models.records import Record
from repair_estimator.store.query import Filter, SortKey


class RecordStore(ABC):
    """
    Async keyed-record store.

    save() semantics:
        if_absent=True: fail with DuplicateRecordError when the id exists.
        expected_updated_at: fail with ConcurrentModificationError unless the
            stored record's updated_at equals the given value.
    """

    @abstractmethod
    async def save(
        self,
        record_type: str,
        record: Record,
        *,
        if_absent: bool = False,
        expected_updated_at: datetime | None = None,
    ) -> Record:
        ...

    @abstractmethod
    async def fetch(self, record_type: str, record_id: str) -> Record | None:
        ...

    @abstractmethod
    async def query(
        self,
        record_type: str,
        filter: Filter | None = None,
        sort: list[SortKey] | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        ...

    @abstractmethod
    async def delete(self, record_type: str, record_id: str) -> bool:
        """Delete a record. Returns False when nothing was stored under the id."""
        ...

    async def close(self) -> None:
        """Release any resources held by the store."""
