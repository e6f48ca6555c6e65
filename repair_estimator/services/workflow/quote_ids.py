"""
Quote identifier generation.

Quote ids are user-facing and sequential per company per year:
Q-YYYY-NNNNNN. Generation is best-effort under concurrency: callers save
the new quote create-only and ask for another id on a duplicate.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from repair_estimator.exceptions import IDGenerationExhausted, ValidationError
from repair_estimator.models.records import RecordType
from repair_estimator.store.base import RecordStore
from repair_estimator.store.query import startswith
from repair_estimator.utils.logging import ServiceLogger

QUOTE_ID_PATTERN = re.compile(r"^Q-(\d{4})-(\d{6})$")
MAX_SEQUENCE = 999_999


def format_quote_id(year: int, sequence: int) -> str:
    if not 1000 <= year <= 9999:
        raise ValidationError(f"Quote id year out of range: {year}")
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise ValidationError(f"Quote id sequence out of range: {sequence}")
    return f"Q-{year:04d}-{sequence:06d}"


def parse_quote_id(quote_id: str) -> tuple[int, int] | None:
    """Return (year, sequence), or None when the id is not well formed."""
    match = QUOTE_ID_PATTERN.match(quote_id or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def is_valid_quote_id(quote_id: str) -> bool:
    return parse_quote_id(quote_id) is not None


@dataclass(frozen=True)
class QuoteIDStatistics:
    year: int
    total_quotes: int
    latest_id: str | None
    next_id: str | None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteIDGenerator:
    """Produces the next unused quote id for a company."""

    def __init__(
        self,
        store: RecordStore,
        max_attempts: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.max_attempts = max(1, max_attempts)
        self.clock = clock
        self.logger = ServiceLogger("quote_ids")

    async def _max_sequence(self, company_id: str | None, year: int) -> tuple[int, int]:
        """Highest sequence and count for the year; company_id None spans the store."""
        criteria = {"id": startswith(f"Q-{year:04d}-")}
        if company_id is not None:
            criteria["company_id"] = company_id
        records = await self.store.query(RecordType.QUOTE, criteria)
        sequences = [
            parsed[1]
            for parsed in (parse_quote_id(r["id"]) for r in records)
            if parsed is not None and parsed[0] == year
        ]
        return max(sequences, default=0), len(sequences)

    async def generate_unique_quote_id(self, company_id: str) -> str:
        """
        Next id after the highest sequence issued this year.

        Quote ids key records store-wide, so the starting point is the
        highest sequence across all companies; each candidate is still
        checked in case a concurrent writer took it.

        Raises:
            IDGenerationExhausted: attempts used up or sequence overflow
        """
        year = self.clock().year
        highest, _ = await self._max_sequence(None, year)
        candidate = highest + 1

        for attempt in range(1, self.max_attempts + 1):
            if candidate > MAX_SEQUENCE:
                break
            quote_id = format_quote_id(year, candidate)
            if await self.store.fetch(RecordType.QUOTE, quote_id) is None:
                if attempt > 1:
                    self.logger.log_warning(
                        "quote_id_collision_resolved",
                        company_id=company_id,
                        quote_id=quote_id,
                        attempts=attempt,
                    )
                return quote_id
            candidate += 1

        error = IDGenerationExhausted(company_id, self.max_attempts)
        self.logger.log_operation_failed("generate_unique_quote_id", error, company_id=company_id, year=year)
        raise error

    async def get_yearly_statistics(self, company_id: str, year: int | None = None) -> QuoteIDStatistics:
        year = year or self.clock().year
        highest, total = await self._max_sequence(company_id, year)
        return QuoteIDStatistics(
            year=year,
            total_quotes=total,
            latest_id=format_quote_id(year, highest) if highest else None,
            next_id=format_quote_id(year, highest + 1) if highest < MAX_SEQUENCE else None,
        )
