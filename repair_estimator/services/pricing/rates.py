"""
Rate provider.

Loads the pricing snapshot the engine needs (company rules, the latest
metal and labor rates) from the record store. Selection of the effective
rate is a pure function so it can be tested without a store.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, TypeVar

from repair_estimator.config.settings import PricingSettings
from repair_estimator.exceptions import NotFoundError
from repair_estimator.models.catalog import MetalType, ServiceCatalogEntry
from repair_estimator.models.pricing import LaborRate, MetalRate, PricingRule
from repair_estimator.models.records import (
    RecordType,
    decode_labor_rate,
    decode_metal_rate,
    decode_pricing_rule,
    decode_service,
)
from repair_estimator.models.user import UserRole
from repair_estimator.store.base import RecordStore
from repair_estimator.store.query import lte

RateT = TypeVar("RateT", MetalRate, LaborRate)


@dataclass(frozen=True)
class PricingContext:
    """
    Everything the engine reads besides the request itself.

    Holding evaluated_at and the pricing settings here keeps the engine a
    pure function of (service, request, context).
    """
    rules: tuple[PricingRule, ...]
    metal_rate: MetalRate | None
    labor_rate: LaborRate | None
    evaluated_at: datetime
    same_day_cutoff_hour: int = 14
    business_timezone: str = "UTC"
    metal_rate_stale_days: int = 7


def select_effective_rate(rates: Iterable[RateT], as_of: datetime) -> RateT | None:
    """Latest active rate whose effective date is not in the future."""
    candidates = [r for r in rates if r.is_active and r.effective_date <= as_of]
    if not candidates:
        return None
    return max(candidates, key=lambda r: r.effective_date)


class RateProvider:
    """Reads rules and rates for one company from the record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def get_service(self, service_id: str) -> ServiceCatalogEntry:
        record = await self.store.fetch(RecordType.SERVICE, service_id)
        if record is None:
            raise NotFoundError(RecordType.SERVICE, service_id)
        return decode_service(record)

    async def active_rules(self, company_id: str) -> tuple[PricingRule, ...]:
        records = await self.store.query(
            RecordType.PRICING_RULE,
            {"company_id": company_id, "is_active": True},
        )
        return tuple(decode_pricing_rule(r) for r in records)

    async def latest_metal_rate(
        self,
        company_id: str,
        metal_type: MetalType,
        as_of: datetime,
    ) -> MetalRate | None:
        records = await self.store.query(
            RecordType.METAL_RATE,
            {
                "company_id": company_id,
                "metal_type": metal_type,
                "is_active": True,
                "effective_date": lte(as_of),
            },
        )
        return select_effective_rate((decode_metal_rate(r) for r in records), as_of)

    async def latest_labor_rate(
        self,
        company_id: str,
        role: UserRole,
        as_of: datetime,
    ) -> LaborRate | None:
        records = await self.store.query(
            RecordType.LABOR_RATE,
            {
                "company_id": company_id,
                "role": role,
                "is_active": True,
                "effective_date": lte(as_of),
            },
        )
        return select_effective_rate((decode_labor_rate(r) for r in records), as_of)

    async def load_context(
        self,
        company_id: str,
        metal_type: MetalType | None,
        labor_role: UserRole,
        pricing_settings: PricingSettings,
        as_of: datetime | None = None,
    ) -> PricingContext:
        as_of = as_of or datetime.now(timezone.utc)
        metal_rate = None
        if metal_type is not None and metal_type.requires_market_rate:
            metal_rate = await self.latest_metal_rate(company_id, metal_type, as_of)
        return PricingContext(
            rules=await self.active_rules(company_id),
            metal_rate=metal_rate,
            labor_rate=await self.latest_labor_rate(company_id, labor_role, as_of),
            evaluated_at=as_of,
            same_day_cutoff_hour=pricing_settings.same_day_cutoff_hour,
            business_timezone=pricing_settings.business_timezone,
            metal_rate_stale_days=pricing_settings.metal_rate_stale_days,
        )
