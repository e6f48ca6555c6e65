"""
Pricing configuration models: formulas, company rules, and market rates.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from repair_estimator.exceptions import ValidationError
from repair_estimator.models.catalog import MetalType, ServiceCategory
from repair_estimator.models.user import UserRole


class PricingPolicy(str, Enum):
    """How the engine treats a line's rush and retail calculation."""
    STANDARD = "standard"
    # Covered by purchase protection: never charged a rush fee
    EXEMPT = "exempt"
    # Priced by hand at the counter
    GENERIC_PRICING = "generic_pricing"


@dataclass(frozen=True)
class PricingFormula:
    """Markups, fees and floors applied to raw metal and labor cost."""
    metal_markup_percentage: Decimal = Decimal("2.0")
    labor_markup_percentage: Decimal = Decimal("1.5")
    fixed_fee: Decimal = Decimal("0")
    rush_multiplier: Decimal = Decimal("1.5")
    minimum_charge: Decimal = Decimal("0")

    def __post_init__(self):
        for name in ("metal_markup_percentage", "labor_markup_percentage", "fixed_fee", "minimum_charge"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} cannot be negative", {"field": name})
        if self.rush_multiplier < 1:
            raise ValidationError(
                "rush_multiplier must be at least 1.0",
                {"field": "rush_multiplier"},
            )


@dataclass(frozen=True)
class PricingRule:
    """
    Company-scoped pricing rule carrying a formula.

    A rule with a service_category overrides the company default for that
    category. Catalog entries may also pin a rule by id.
    """
    id: str
    company_id: str
    name: str
    formula: PricingFormula = field(default_factory=PricingFormula)
    service_category: ServiceCategory | None = None
    allow_manual_override: bool = True
    manager_approval_threshold_percent: Decimal = Decimal("10")
    is_active: bool = True
    created_at: datetime | None = None

    def requires_manager_approval(self, original: Decimal, override: Decimal) -> bool:
        """True when an override discounts the calculated price past the threshold."""
        if original <= 0:
            return False
        discount_percent = (original - override) / original * 100
        return discount_percent > self.manager_approval_threshold_percent


@dataclass(frozen=True)
class MetalRate:
    """Market rate for a metal, per gram, effective from a date."""
    id: str
    company_id: str
    metal_type: MetalType
    rate_per_gram: Decimal
    effective_date: datetime
    is_active: bool = True
    unit: str = "gram"


@dataclass(frozen=True)
class LaborRate:
    """Hourly labor rate for a staff role, effective from a date."""
    id: str
    company_id: str
    role: UserRole
    rate_per_hour: Decimal
    effective_date: datetime
    is_active: bool = True
