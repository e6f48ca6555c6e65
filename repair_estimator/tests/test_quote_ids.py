"""
Tests for quote id formatting and generation.
"""

from datetime import datetime, timezone

import pytest

from conftest import COMPANY, OTHER_COMPANY, FakeClock
from repair_estimator.exceptions import IDGenerationExhausted, ValidationError
from repair_estimator.models.records import RecordType
from repair_estimator.services.workflow.quote_ids import (
    QuoteIDGenerator,
    format_quote_id,
    is_valid_quote_id,
    parse_quote_id,
)
from repair_estimator.store.memory import InMemoryRecordStore


async def put_quote(store, quote_id: str, company_id: str = COMPANY) -> None:
    await store.save(RecordType.QUOTE, {"id": quote_id, "company_id": company_id})


class RacingStore(InMemoryRecordStore):
    """Every id is claimed by a concurrent writer before it can be used."""

    async def fetch(self, record_type, record_id):
        return {"id": record_id, "company_id": OTHER_COMPANY}


@pytest.fixture
def id_store():
    return InMemoryRecordStore()


@pytest.fixture
def generator(id_store, clock):
    return QuoteIDGenerator(id_store, max_attempts=3, clock=clock)


class TestFormatting:
    """Tests for the Q-YYYY-NNNNNN format."""

    def test_format(self):
        assert format_quote_id(2025, 1) == "Q-2025-000001"
        assert format_quote_id(2025, 123456) == "Q-2025-123456"

    @pytest.mark.parametrize("sequence", [0, 1_000_000])
    def test_sequence_out_of_range(self, sequence):
        with pytest.raises(ValidationError):
            format_quote_id(2025, sequence)

    def test_parse(self):
        assert parse_quote_id("Q-2025-000042") == (2025, 42)
        assert parse_quote_id("Q-25-42") is None
        assert parse_quote_id("") is None
        assert is_valid_quote_id("Q-2024-999999")
        assert not is_valid_quote_id("q-2024-000001")


class TestGeneration:
    """Tests for sequential id generation."""

    async def test_first_id_of_the_year(self, generator):
        assert await generator.generate_unique_quote_id(COMPANY) == "Q-2025-000001"

    async def test_continues_after_highest_sequence(self, generator, id_store):
        await put_quote(id_store, "Q-2025-000001")
        await put_quote(id_store, "Q-2025-000007")
        await put_quote(id_store, "Q-2024-000050")

        assert await generator.generate_unique_quote_id(COMPANY) == "Q-2025-000008"

    async def test_single_id_held_by_another_company(self, generator, id_store):
        await put_quote(id_store, "Q-2025-000001", company_id=OTHER_COMPANY)

        assert await generator.generate_unique_quote_id(COMPANY) == "Q-2025-000002"

    async def test_starts_after_other_companies_ids(self, generator, id_store):
        for sequence in range(1, 13):
            await put_quote(id_store, format_quote_id(2025, sequence), company_id=OTHER_COMPANY)

        assert await generator.generate_unique_quote_id(COMPANY) == "Q-2025-000013"

    async def test_exhausted_when_every_candidate_is_taken(self, clock):
        generator = QuoteIDGenerator(RacingStore(), max_attempts=3, clock=clock)

        with pytest.raises(IDGenerationExhausted):
            await generator.generate_unique_quote_id(COMPANY)

    async def test_sequence_overflow(self, generator, id_store):
        await put_quote(id_store, "Q-2025-999999")

        with pytest.raises(IDGenerationExhausted) as exc_info:
            await generator.generate_unique_quote_id(COMPANY)
        assert exc_info.value.status_code == 503

    async def test_new_year_restarts_sequence(self, id_store):
        await put_quote(id_store, "Q-2025-000314")
        clock = FakeClock(datetime(2026, 1, 1, 0, 5, tzinfo=timezone.utc))
        generator = QuoteIDGenerator(id_store, clock=clock)

        assert await generator.generate_unique_quote_id(COMPANY) == "Q-2026-000001"


class TestStatistics:
    """Tests for yearly id statistics."""

    async def test_yearly_statistics(self, generator, id_store):
        await put_quote(id_store, "Q-2025-000001")
        await put_quote(id_store, "Q-2025-000002")
        await put_quote(id_store, "Q-2025-000003", company_id=OTHER_COMPANY)

        stats = await generator.get_yearly_statistics(COMPANY)

        assert stats.year == 2025
        assert stats.total_quotes == 2
        assert stats.latest_id == "Q-2025-000002"
        assert stats.next_id == "Q-2025-000003"

    async def test_empty_year(self, generator):
        stats = await generator.get_yearly_statistics(COMPANY, year=2023)
        assert stats.total_quotes == 0
        assert stats.latest_id is None
        assert stats.next_id == "Q-2023-000001"
