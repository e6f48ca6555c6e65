"""
Tests for the record store backends.

Each contract test runs against both the in-memory store and the SQL store
on a temporary SQLite database.
"""

from datetime import timedelta

import pytest

from conftest import COMPANY, NOW, OTHER_COMPANY
from repair_estimator.database.base import Database
from repair_estimator.exceptions import ConcurrentModificationError, DuplicateRecordError, NotFoundError
from repair_estimator.models.records import RecordType, encode_value
from repair_estimator.store.memory import InMemoryRecordStore
from repair_estimator.store.query import gt, in_, lt, ne, startswith
from repair_estimator.store.sql import SQLRecordStore


def quote_record(quote_id: str, company_id: str = COMPANY, **fields) -> dict:
    record = {
        "id": quote_id,
        "company_id": company_id,
        "status": "draft",
        "updated_at": encode_value(NOW),
    }
    record.update(fields)
    return record


@pytest.fixture(params=["memory", "sql"])
async def record_store(request, tmp_path):
    if request.param == "memory":
        store = InMemoryRecordStore()
        yield store
    else:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
        await database.init()
        store = SQLRecordStore(database)
        yield store
    await store.close()


class TestSaveAndFetch:
    """Tests for plain, create-only and conditional writes."""

    async def test_round_trip(self, record_store):
        record = quote_record("Q-2025-000001", subtotal="12.50", tags=["a", "b"])
        await record_store.save(RecordType.QUOTE, record)

        assert await record_store.fetch(RecordType.QUOTE, "Q-2025-000001") == record
        assert await record_store.fetch(RecordType.QUOTE, "Q-2025-000404") is None
        assert await record_store.fetch(RecordType.LINE_ITEM, "Q-2025-000001") is None

    async def test_plain_save_overwrites(self, record_store):
        await record_store.save(RecordType.QUOTE, quote_record("Q-2025-000001"))
        await record_store.save(RecordType.QUOTE, quote_record("Q-2025-000001", status="presented"))

        stored = await record_store.fetch(RecordType.QUOTE, "Q-2025-000001")
        assert stored["status"] == "presented"

    async def test_if_absent_rejects_existing_id(self, record_store):
        await record_store.save(RecordType.QUOTE, quote_record("Q-2025-000001"), if_absent=True)

        with pytest.raises(DuplicateRecordError):
            await record_store.save(
                RecordType.QUOTE,
                quote_record("Q-2025-000001", company_id=OTHER_COMPANY),
                if_absent=True,
            )
        stored = await record_store.fetch(RecordType.QUOTE, "Q-2025-000001")
        assert stored["company_id"] == COMPANY

    async def test_conditional_write(self, record_store):
        await record_store.save(RecordType.QUOTE, quote_record("Q-2025-000001"))
        later = NOW + timedelta(seconds=1)

        await record_store.save(
            RecordType.QUOTE,
            quote_record("Q-2025-000001", status="presented", updated_at=encode_value(later)),
            expected_updated_at=NOW,
        )

        with pytest.raises(ConcurrentModificationError):
            await record_store.save(
                RecordType.QUOTE,
                quote_record("Q-2025-000001", status="cancelled", updated_at=encode_value(later)),
                expected_updated_at=NOW,
            )
        stored = await record_store.fetch(RecordType.QUOTE, "Q-2025-000001")
        assert stored["status"] == "presented"

    async def test_conditional_write_of_missing_record(self, record_store):
        with pytest.raises(NotFoundError):
            await record_store.save(
                RecordType.QUOTE,
                quote_record("Q-2025-000001"),
                expected_updated_at=NOW,
            )

    async def test_delete(self, record_store):
        await record_store.save(RecordType.QUOTE, quote_record("Q-2025-000001"))

        assert await record_store.delete(RecordType.QUOTE, "Q-2025-000001")
        assert not await record_store.delete(RecordType.QUOTE, "Q-2025-000001")
        assert await record_store.fetch(RecordType.QUOTE, "Q-2025-000001") is None


class TestQuery:
    """Tests for filtered and sorted queries."""

    @pytest.fixture
    async def seeded(self, record_store):
        await record_store.save(
            RecordType.QUOTE,
            quote_record("Q-2025-000001", status="in_shop", promised_due_date=encode_value(NOW - timedelta(days=1))),
        )
        await record_store.save(
            RecordType.QUOTE,
            quote_record("Q-2025-000002", status="approved", promised_due_date=encode_value(NOW + timedelta(days=2))),
        )
        await record_store.save(RecordType.QUOTE, quote_record("Q-2025-000003", status="draft"))
        await record_store.save(RecordType.QUOTE, quote_record("Q-2024-000009", status="completed"))
        await record_store.save(RecordType.QUOTE, quote_record("Q-2025-000004", company_id=OTHER_COMPANY))
        return record_store

    async def test_company_scoping(self, seeded):
        found = await seeded.query(RecordType.QUOTE, {"company_id": OTHER_COMPANY})
        assert [r["id"] for r in found] == ["Q-2025-000004"]

    async def test_id_prefix(self, seeded):
        found = await seeded.query(
            RecordType.QUOTE,
            {"company_id": COMPANY, "id": startswith("Q-2025-")},
            sort=[("id", False)],
        )
        assert [r["id"] for r in found] == ["Q-2025-000001", "Q-2025-000002", "Q-2025-000003"]

    async def test_status_and_date_conditions(self, seeded):
        found = await seeded.query(
            RecordType.QUOTE,
            {
                "company_id": COMPANY,
                "status": in_(["in_shop", "approved", "draft"]),
                "promised_due_date": lt(NOW),
            },
        )
        assert [r["id"] for r in found] == ["Q-2025-000001"]

        later = await seeded.query(RecordType.QUOTE, {"promised_due_date": gt(NOW)})
        assert [r["id"] for r in later] == ["Q-2025-000002"]

    async def test_not_equal(self, seeded):
        found = await seeded.query(RecordType.QUOTE, {"company_id": COMPANY, "status": ne("completed")})
        assert "Q-2024-000009" not in {r["id"] for r in found}
        assert len(found) == 3

    async def test_sort_missing_last_and_limit(self, seeded):
        found = await seeded.query(
            RecordType.QUOTE,
            {"company_id": COMPANY},
            sort=[("promised_due_date", True)],
            limit=3,
        )
        assert [r["id"] for r in found][:2] == ["Q-2025-000002", "Q-2025-000001"]
        assert len(found) == 3
