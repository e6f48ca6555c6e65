"""
Pricing engine for repair quote lines.

calculate_price() is a pure function of a catalog entry, a request and a
pricing context: no I/O, no clock reads. PricingEngine wraps it with the
store lookups and logging a caller needs.

Order of evaluation:
    1. resolve the company formula
    2. labor cost from minutes and the role's hourly rate
    3. metal cost from weight and the market rate
    4-5. base cost and base retail (or catalog pricing)
    6. generic SKUs short-circuit to a zero, hand-priced line
    7-8. rush multiplier, unless the item is exempt
    9. minimum charge floor, after rush
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4
from zoneinfo import ZoneInfo

from repair_estimator.config.settings import Settings, get_settings
from repair_estimator.exceptions import NoPricingRuleFound, ValidationError
from repair_estimator.models.catalog import MetalType, ServiceCatalogEntry
from repair_estimator.models.pricing import PricingPolicy, PricingRule
from repair_estimator.models.quote import QuoteLineItem, RushType
from repair_estimator.models.user import UserRole
from repair_estimator.services.pricing.rates import PricingContext, RateProvider
from repair_estimator.store.base import RecordStore
from repair_estimator.utils.logging import ServiceLogger
from repair_estimator.utils.money import ZERO, format_currency, to_decimal, to_money

NO_RUSH = Decimal("1.0")


@dataclass(frozen=True)
class PriceRequest:
    """Inputs for pricing one service."""
    company_id: str
    labor_minutes: int = 0
    metal_type: MetalType | None = None
    metal_weight_grams: Decimal | None = None
    is_rush: bool = False
    policy: PricingPolicy = PricingPolicy.STANDARD
    rush_type: RushType | None = None
    requested_due_date: datetime | None = None
    labor_role: UserRole = UserRole.BENCH_JEWELER

    @property
    def rush_requested(self) -> bool:
        return self.is_rush or (self.rush_type is not None and self.rush_type.is_rush)


@dataclass(frozen=True)
class PriceBreakdown:
    metal_cost: Decimal = ZERO
    labor_cost: Decimal = ZERO
    fixed_fees: Decimal = ZERO
    material_markup: Decimal = ZERO
    labor_markup: Decimal = ZERO
    rush_fee: Decimal = ZERO


@dataclass(frozen=True)
class PriceResult:
    """Priced line with its audit trail."""
    base_cost: Decimal
    base_retail: Decimal
    final_retail: Decimal
    rush_multiplier: Decimal
    breakdown: PriceBreakdown
    notes: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    formula_id: str | None = None
    policy: PricingPolicy = PricingPolicy.STANDARD
    is_generic: bool = False
    minimum_charge_applied: bool = False
    requires_coordinator_approval: bool = False


def resolve_pricing_rule(
    service: ServiceCatalogEntry,
    rules: tuple[PricingRule, ...],
    company_id: str,
) -> PricingRule:
    """
    Pick the formula for a service.

    Pinned rule on the catalog entry, then a category override, then the
    company default. Among several matches the newest rule wins.
    """
    active = [r for r in rules if r.is_active and r.company_id == company_id]

    if service.pricing_formula_id:
        for rule in active:
            if rule.id == service.pricing_formula_id:
                return rule

    def newest(candidates: list[PricingRule]) -> PricingRule | None:
        if not candidates:
            return None
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return max(candidates, key=lambda r: (r.created_at or epoch, r.id))

    override = newest([r for r in active if r.service_category == service.category])
    if override is not None:
        return override

    default = newest([r for r in active if r.service_category is None])
    if default is not None:
        return default

    raise NoPricingRuleFound(company_id, service.id)


def _labor_cost(request: PriceRequest, context: PricingContext, notes: list, warnings: list) -> Decimal:
    if request.labor_minutes == 0:
        notes.append("No labor time required")
        return ZERO
    if context.labor_rate is None:
        warnings.append(f"No labor rate found for {request.labor_role.display_name}")
        return ZERO
    cost = to_money(Decimal(request.labor_minutes) / 60 * context.labor_rate.rate_per_hour)
    notes.append(
        f"{request.labor_minutes} min {request.labor_role.display_name} labor at "
        f"{format_currency(context.labor_rate.rate_per_hour)}/hr = {format_currency(cost)}"
    )
    return cost


def _metal_cost(
    service: ServiceCatalogEntry,
    request: PriceRequest,
    context: PricingContext,
    notes: list,
    warnings: list,
) -> Decimal:
    metal = request.metal_type
    weight = request.metal_weight_grams
    if metal is None or weight is None or weight == 0:
        notes.append("No metal work required")
        return ZERO

    if service.compatible_metals and metal not in service.compatible_metals:
        warnings.append(f"{metal.display_name} is not listed as compatible with {service.name}")

    if not metal.requires_market_rate:
        notes.append(f"{metal.display_name} uses fixed pricing rather than market rates")
        return ZERO

    rate = context.metal_rate
    if rate is None or rate.metal_type != metal:
        warnings.append(f"No market rate found for {metal.display_name}")
        return ZERO

    age = context.evaluated_at - rate.effective_date
    if age > timedelta(days=context.metal_rate_stale_days):
        warnings.append(
            f"Market rate for {metal.display_name} is {age.days} days old; confirm current pricing"
        )

    cost = to_money(to_decimal(weight) * rate.rate_per_gram)
    notes.append(
        f"{weight}g {metal.display_name} at {format_currency(rate.rate_per_gram)}/g = {format_currency(cost)}"
    )
    return cost


def _business_zone(name: str):
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def is_after_same_day_cutoff(moment: datetime, cutoff_hour: int, timezone_name: str = "UTC") -> bool:
    """True when moment falls at or after the cutoff hour in the business timezone."""
    return moment.astimezone(_business_zone(timezone_name)).hour >= cutoff_hour


def _due_date_note(request: PriceRequest, context: PricingContext) -> str | None:
    if request.requested_due_date is None:
        return None
    hours = (request.requested_due_date - context.evaluated_at).total_seconds() / 3600
    if hours <= 24:
        return "Requested due within 24 hours"
    if hours <= 48:
        return "Requested due within 48 hours"
    return None


def calculate_price(
    service: ServiceCatalogEntry,
    request: PriceRequest,
    context: PricingContext,
) -> PriceResult:
    """
    Price one service.

    Missing rates degrade to zero cost with a warning; only a missing
    formula is an error.

    Raises:
        ValidationError: negative labor minutes or metal weight
        NoPricingRuleFound: no active formula for the company
    """
    if request.labor_minutes < 0:
        raise ValidationError("Labor minutes cannot be negative", {"labor_minutes": request.labor_minutes})
    if request.metal_weight_grams is not None and request.metal_weight_grams < 0:
        raise ValidationError(
            "Metal weight cannot be negative",
            {"metal_weight_grams": str(request.metal_weight_grams)},
        )

    rule = resolve_pricing_rule(service, context.rules, request.company_id)
    formula = rule.formula

    if service.is_generic_sku or request.policy is PricingPolicy.GENERIC_PRICING:
        return PriceResult(
            base_cost=ZERO,
            base_retail=ZERO,
            final_retail=ZERO,
            rush_multiplier=NO_RUSH,
            breakdown=PriceBreakdown(),
            notes=("Generic SKU - pricing entered manually",),
            formula_id=rule.id,
            policy=request.policy,
            is_generic=True,
        )

    notes: list[str] = []
    warnings: list[str] = []

    labor_cost = _labor_cost(request, context, notes, warnings)
    metal_cost = _metal_cost(service, request, context, notes, warnings)

    fixed_fees = to_money(formula.fixed_fee)
    base_cost = metal_cost + labor_cost + fixed_fees

    if service.uses_catalog_pricing:
        material_markup = labor_markup = ZERO
        base_retail = to_money(service.base_retail)
        if service.base_cost > 0:
            base_cost = to_money(service.base_cost)
        notes.append(f"Using specific pricing for {service.name}")
    else:
        material_markup = to_money(metal_cost * formula.metal_markup_percentage)
        labor_markup = to_money(labor_cost * formula.labor_markup_percentage)
        base_retail = base_cost + material_markup + labor_markup

    multiplier = NO_RUSH
    requires_coordinator_approval = False
    if request.rush_requested:
        if request.policy is PricingPolicy.EXEMPT:
            notes.append("Exempt item - no rush fee applied")
        else:
            multiplier = formula.rush_multiplier
            notes.append(f"Rush multiplier applied: {multiplier}×")
        due_note = _due_date_note(request, context)
        if due_note:
            notes.append(due_note)
        if request.rush_type is RushType.SAME_DAY:
            if is_after_same_day_cutoff(
                context.evaluated_at, context.same_day_cutoff_hour, context.business_timezone
            ):
                requires_coordinator_approval = True
                warnings.append(
                    f"Same-day request after {context.same_day_cutoff_hour:02d}:00 cutoff - "
                    "requires coordinator approval"
                )

    final_retail = to_money(base_retail * multiplier)
    rush_fee = final_retail - base_retail

    minimum_charge_applied = False
    minimum = to_money(formula.minimum_charge)
    if final_retail < minimum:
        final_retail = minimum
        minimum_charge_applied = True
        warnings.append(f"Applied minimum charge of {format_currency(minimum)}")

    return PriceResult(
        base_cost=base_cost,
        base_retail=base_retail,
        final_retail=final_retail,
        rush_multiplier=multiplier,
        breakdown=PriceBreakdown(
            metal_cost=metal_cost,
            labor_cost=labor_cost,
            fixed_fees=fixed_fees,
            material_markup=material_markup,
            labor_markup=labor_markup,
            rush_fee=rush_fee,
        ),
        notes=tuple(notes),
        warnings=tuple(warnings),
        formula_id=rule.id,
        policy=request.policy,
        minimum_charge_applied=minimum_charge_applied,
        requires_coordinator_approval=requires_coordinator_approval,
    )


def detect_exempt_item(sales_sku: str | None, prefixes: list[str]) -> bool:
    """True when the purchase SKU carries the store's purchase protection."""
    if not sales_sku:
        return False
    sku = sales_sku.strip().upper()
    return any(sku.startswith(prefix.upper()) for prefix in prefixes)


def build_line_item(
    quote_id: str,
    service: ServiceCatalogEntry,
    request: PriceRequest,
    result: PriceResult,
    quantity: int = 1,
    line_id: str | None = None,
    created_at: datetime | None = None,
) -> QuoteLineItem:
    """Snapshot a priced result into a quote line."""
    return QuoteLineItem(
        id=line_id or str(uuid4()),
        quote_id=quote_id,
        service_id=service.id,
        sku=service.default_sku,
        description=service.name,
        base_cost=result.base_cost,
        base_retail=result.base_retail,
        final_retail=result.final_retail,
        quantity=quantity,
        labor_minutes=request.labor_minutes,
        metal_type=request.metal_type,
        metal_weight_grams=(
            to_decimal(request.metal_weight_grams) if request.metal_weight_grams is not None else None
        ),
        is_rush=request.rush_requested and result.rush_multiplier > NO_RUSH,
        rush_multiplier=result.rush_multiplier,
        notes=result.notes,
        warnings=result.warnings,
        created_at=created_at,
    )


class PricingEngine:
    """
    Store-backed entry point to calculate_price().

    Loads the catalog entry and the company's rate snapshot, evaluates, and
    logs any warnings produced.
    """

    def __init__(self, store: RecordStore, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.rates = RateProvider(store)
        self.logger = ServiceLogger("pricing")

    async def calculate_price(
        self,
        service: ServiceCatalogEntry | str,
        request: PriceRequest,
        now: datetime | None = None,
    ) -> PriceResult:
        start = time.perf_counter()
        if isinstance(service, str):
            service = await self.rates.get_service(service)

        self.logger.log_operation_start(
            "calculate_price",
            company_id=request.company_id,
            service_id=service.id,
            is_rush=request.rush_requested,
            policy=request.policy.value,
        )

        try:
            context = await self.rates.load_context(
                request.company_id,
                request.metal_type,
                request.labor_role,
                self.settings.pricing,
                as_of=now,
            )
            result = calculate_price(service, request, context)
        except Exception as e:
            self.logger.log_operation_failed(
                "calculate_price",
                e,
                company_id=request.company_id,
                service_id=service.id,
            )
            raise

        for warning in result.warnings:
            self.logger.log_warning(
                "pricing_warning",
                company_id=request.company_id,
                service_id=service.id,
                warning=warning,
            )

        self.logger.log_operation_complete(
            "calculate_price",
            company_id=request.company_id,
            duration_ms=(time.perf_counter() - start) * 1000,
            service_id=service.id,
            final_retail=str(result.final_retail),
        )
        return result
