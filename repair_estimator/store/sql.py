"""
SQLAlchemy-backed record store.

Record type, id and company scoping are pushed down to SQL; any remaining
filter conditions and sorting are applied to the decoded payloads.
"""

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, OperationalError

from repair_estimator.database.base import Database, StoredRecord
from repair_estimator.exceptions import (
    ConcurrentModificationError,
    DuplicateRecordError,
    NotFoundError,
    TransientStoreError,
)
from repair_estimator.models.records import Record, encode_value
from repair_estimator.store.base import RecordStore
from repair_estimator.store.query import Condition, Filter, SortKey, matches, sort_records


class SQLRecordStore(RecordStore):

    def __init__(self, database: Database):
        self.database = database

    async def save(
        self,
        record_type: str,
        record: Record,
        *,
        if_absent: bool = False,
        expected_updated_at: datetime | None = None,
    ) -> Record:
        record_id = record["id"]
        try:
            async with self.database.session() as session:
                if expected_updated_at is not None:
                    result = await session.execute(
                        update(StoredRecord)
                        .where(
                            StoredRecord.record_type == record_type,
                            StoredRecord.record_id == record_id,
                            StoredRecord.updated_at == encode_value(expected_updated_at),
                        )
                        .values(
                            company_id=record.get("company_id"),
                            updated_at=record.get("updated_at"),
                            payload=record,
                        )
                    )
                    if result.rowcount == 0:
                        exists = await session.get(StoredRecord, (record_type, record_id))
                        if exists is None:
                            raise NotFoundError(record_type, record_id)
                        raise ConcurrentModificationError(record_type, record_id)
                    return record

                row = StoredRecord(
                    record_type=record_type,
                    record_id=record_id,
                    company_id=record.get("company_id"),
                    updated_at=record.get("updated_at"),
                    payload=record,
                )
                if if_absent:
                    session.add(row)
                    await session.flush()
                else:
                    await session.merge(row)
        except IntegrityError as exc:
            raise DuplicateRecordError(record_type, record_id) from exc
        except OperationalError as exc:
            raise TransientStoreError(str(exc.orig)) from exc
        return record

    async def fetch(self, record_type: str, record_id: str) -> Record | None:
        try:
            async with self.database.session() as session:
                row = await session.get(StoredRecord, (record_type, record_id))
                return dict(row.payload) if row is not None else None
        except OperationalError as exc:
            raise TransientStoreError(str(exc.orig)) from exc

    async def query(
        self,
        record_type: str,
        filter: Filter | None = None,
        sort: list[SortKey] | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        stmt = select(StoredRecord.payload).where(StoredRecord.record_type == record_type)
        remaining = dict(filter or {})
        company = remaining.get("company_id")
        if company is not None and not isinstance(company, Condition):
            stmt = stmt.where(StoredRecord.company_id == remaining.pop("company_id"))
        record_id = remaining.get("id")
        if isinstance(record_id, Condition) and record_id.op == "startswith":
            stmt = stmt.where(StoredRecord.record_id.startswith(record_id.value, autoescape=True))

        try:
            async with self.database.session() as session:
                payloads = (await session.execute(stmt)).scalars().all()
        except OperationalError as exc:
            raise TransientStoreError(str(exc.orig)) from exc

        found = sort_records([dict(p) for p in payloads if matches(p, remaining)], sort)
        return found[:limit] if limit is not None else found

    async def delete(self, record_type: str, record_id: str) -> bool:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    delete(StoredRecord).where(
                        StoredRecord.record_type == record_type,
                        StoredRecord.record_id == record_id,
                    )
                )
                return result.rowcount > 0
        except OperationalError as exc:
            raise TransientStoreError(str(exc.orig)) from exc

    async def close(self) -> None:
        await self.database.close()
