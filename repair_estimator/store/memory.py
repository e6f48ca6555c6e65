"""
In-memory record store.

Used for local development and tests. Records are deep-copied on the way in
and out so callers never share mutable state with the store.
"""

import asyncio
import copy
from datetime import datetime

from repair_estimator.exceptions import ConcurrentModificationError, DuplicateRecordError, NotFoundError
from repair_estimator.models.records import Record, encode_value
from repair_estimator.store.base import RecordStore
from repair_estimator.store.query import Filter, SortKey, matches, sort_records


class InMemoryRecordStore(RecordStore):

    def __init__(self):
        self._records: dict[str, dict[str, Record]] = {}
        self._lock = asyncio.Lock()

    async def save(
        self,
        record_type: str,
        record: Record,
        *,
        if_absent: bool = False,
        expected_updated_at: datetime | None = None,
    ) -> Record:
        record_id = record["id"]
        async with self._lock:
            partition = self._records.setdefault(record_type, {})
            existing = partition.get(record_id)
            if if_absent and existing is not None:
                raise DuplicateRecordError(record_type, record_id)
            if expected_updated_at is not None:
                if existing is None:
                    raise NotFoundError(record_type, record_id)
                if existing.get("updated_at") != encode_value(expected_updated_at):
                    raise ConcurrentModificationError(record_type, record_id)
            partition[record_id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def fetch(self, record_type: str, record_id: str) -> Record | None:
        async with self._lock:
            record = self._records.get(record_type, {}).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    async def query(
        self,
        record_type: str,
        filter: Filter | None = None,
        sort: list[SortKey] | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        async with self._lock:
            found = [
                copy.deepcopy(r)
                for r in self._records.get(record_type, {}).values()
                if matches(r, filter)
            ]
        found = sort_records(found, sort)
        return found[:limit] if limit is not None else found

    async def delete(self, record_type: str, record_id: str) -> bool:
        async with self._lock:
            return self._records.get(record_type, {}).pop(record_id, None) is not None
