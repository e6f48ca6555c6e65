"""
Shared fixtures: a seeded record store, a controllable clock and sessions.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from repair_estimator.config.settings import Settings, StoreSettings
from repair_estimator.models.catalog import MetalType, ServiceCatalogEntry, ServiceCategory, ServiceFlags
from repair_estimator.models.pricing import LaborRate, MetalRate, PricingFormula, PricingRule
from repair_estimator.models.records import (
    RecordType,
    encode_labor_rate,
    encode_metal_rate,
    encode_pricing_rule,
    encode_service,
)
from repair_estimator.models.user import SessionContext, StaticSessionProvider, UserRole
from repair_estimator.services.workflow.workflow_service import WorkflowService
from repair_estimator.store.memory import InMemoryRecordStore

COMPANY = "springfield-jewelers"
OTHER_COMPANY = "shelbyville-jewelers"

# A Wednesday morning
NOW = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)

DEFAULT_FORMULA = PricingFormula(
    metal_markup_percentage=Decimal("2.0"),
    labor_markup_percentage=Decimal("1.5"),
    fixed_fee=Decimal("10.00"),
    rush_multiplier=Decimal("1.5"),
    minimum_charge=Decimal("25.00"),
)


class FakeClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_service(**overrides) -> ServiceCatalogEntry:
    values = dict(
        id="svc-ring-solder",
        company_id=COMPANY,
        name="Ring Shank Solder",
        category=ServiceCategory.JEWELRY_REPAIR,
        default_sku="JR-SOLDER",
        default_labor_minutes=30,
        default_metal_usage_grams=Decimal("0.7"),
        compatible_metals=(MetalType.GOLD_14K, MetalType.GOLD_18K, MetalType.PLATINUM),
    )
    values.update(overrides)
    return ServiceCatalogEntry(**values)


def make_rule(**overrides) -> PricingRule:
    values = dict(
        id="rule-default",
        company_id=COMPANY,
        name="Standard repair pricing",
        formula=DEFAULT_FORMULA,
        created_at=NOW - timedelta(days=90),
    )
    values.update(overrides)
    return PricingRule(**values)


def gold_rate(**overrides) -> MetalRate:
    values = dict(
        id="rate-14k",
        company_id=COMPANY,
        metal_type=MetalType.GOLD_14K,
        rate_per_gram=Decimal("50.00"),
        effective_date=NOW - timedelta(days=1),
    )
    values.update(overrides)
    return MetalRate(**values)


def bench_rate(**overrides) -> LaborRate:
    values = dict(
        id="labor-bench",
        company_id=COMPANY,
        role=UserRole.BENCH_JEWELER,
        rate_per_hour=Decimal("85.00"),
        effective_date=NOW - timedelta(days=30),
    )
    values.update(overrides)
    return LaborRate(**values)


async def seed_pricing(store) -> None:
    """Default rule, 14K rate, bench labor rate and three catalog services."""
    await store.save(RecordType.PRICING_RULE, encode_pricing_rule(make_rule()))
    await store.save(RecordType.METAL_RATE, encode_metal_rate(gold_rate()))
    await store.save(RecordType.LABOR_RATE, encode_labor_rate(bench_rate()))
    await store.save(RecordType.SERVICE, encode_service(make_service()))
    await store.save(
        RecordType.SERVICE,
        encode_service(
            make_service(
                id="svc-generic",
                name="Miscellaneous Repair",
                default_sku="GEN-000",
                category=ServiceCategory.OTHER,
                flags=ServiceFlags(is_generic_sku=True),
            )
        ),
    )
    await store.save(
        RecordType.SERVICE,
        encode_service(
            make_service(
                id="svc-size-down",
                name="Ring Sizing Down",
                default_sku="JR-SIZE-DN",
                base_retail=Decimal("45.00"),
                base_cost=Decimal("12.00"),
                sizing_category="size_down",
            )
        ),
    )


@pytest.fixture
def settings():
    """Settings with instant retries and short store timeouts."""
    return Settings(
        store=StoreSettings(
            timeout_seconds=0.5,
            retry_attempts=3,
            retry_wait_min_seconds=0,
            retry_wait_max_seconds=0,
        ),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def associate():
    return SessionContext(company_id=COMPANY, store_id="store-1", user_id="ned", role=UserRole.ASSOCIATE)


@pytest.fixture
def manager():
    return SessionContext(company_id=COMPANY, store_id="store-1", user_id="edna", role=UserRole.STORE_MANAGER)


@pytest.fixture
async def store():
    store = InMemoryRecordStore()
    await seed_pricing(store)
    return store


@pytest.fixture
def workflow(store, associate, settings, clock):
    return WorkflowService(store, StaticSessionProvider(associate), settings, clock=clock)


@pytest.fixture
def manager_workflow(store, manager, settings, clock):
    return WorkflowService(store, StaticSessionProvider(manager), settings, clock=clock)
