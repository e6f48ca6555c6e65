"""
Appraisal models and the fee schedule per appraisal tier.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum

from repair_estimator.exceptions import ValidationError
from repair_estimator.utils.money import to_money


class AppraisalTier(str, Enum):
    STANDARD = "standard"
    GEM_ID = "gem_id"
    SPECIALIZED = "specialized"
    UPDATE = "update"


class AppraisalType(str, Enum):
    """Purpose of the appraisal. Each maps to a fee tier."""
    INSURANCE = "insurance"
    ESTATE = "estate"
    DIVORCE = "divorce"
    PROBATE = "probate"
    DONATION = "donation"
    DAMAGE = "damage"
    GEM_ID = "gem_id"
    HYPOTHETICAL = "hypothetical"
    VIRTUAL = "virtual"
    UPDATE = "update"

    @property
    def tier(self) -> AppraisalTier:
        return _TYPE_TIERS.get(self, AppraisalTier.STANDARD)


_TYPE_TIERS = {
    AppraisalType.GEM_ID: AppraisalTier.GEM_ID,
    AppraisalType.HYPOTHETICAL: AppraisalTier.SPECIALIZED,
    AppraisalType.VIRTUAL: AppraisalTier.SPECIALIZED,
    AppraisalType.UPDATE: AppraisalTier.UPDATE,
}


@dataclass(frozen=True)
class FeeStructure:
    """
    Fee schedule for one tier.

    carat_tiers lists (max carats inclusive, multiplier) in ascending order;
    weights above the last bound use the last multiplier.
    """
    first_item_fee: Decimal
    additional_item_fee: Decimal
    carat_tiers: tuple[tuple[Decimal, Decimal], ...] = ()

    def carat_multiplier(self, largest_carat_weight: Decimal) -> Decimal:
        if not self.carat_tiers:
            return Decimal("1.0")
        for max_carats, multiplier in self.carat_tiers:
            if largest_carat_weight <= max_carats:
                return multiplier
        return self.carat_tiers[-1][1]


FEE_SCHEDULE: dict[AppraisalTier, FeeStructure] = {
    AppraisalTier.STANDARD: FeeStructure(
        first_item_fee=Decimal("150.00"),
        additional_item_fee=Decimal("75.00"),
        carat_tiers=(
            (Decimal("1.0"), Decimal("1.0")),
            (Decimal("2.0"), Decimal("1.3")),
            (Decimal("3.0"), Decimal("1.6")),
            (Decimal("5.0"), Decimal("2.0")),
            (Decimal("99.0"), Decimal("2.5")),
        ),
    ),
    AppraisalTier.GEM_ID: FeeStructure(
        first_item_fee=Decimal("75.00"),
        additional_item_fee=Decimal("50.00"),
    ),
    AppraisalTier.SPECIALIZED: FeeStructure(
        first_item_fee=Decimal("250.00"),
        additional_item_fee=Decimal("125.00"),
        carat_tiers=(
            (Decimal("1.0"), Decimal("1.0")),
            (Decimal("99.0"), Decimal("1.5")),
        ),
    ),
    AppraisalTier.UPDATE: FeeStructure(
        first_item_fee=Decimal("75.00"),
        additional_item_fee=Decimal("38.00"),
    ),
}


@dataclass(frozen=True)
class AppraisalService:
    """Appraisal attached to a quote, with its calculated and final fee."""
    id: str
    quote_id: str
    company_id: str
    appraisal_type: AppraisalType
    tier: AppraisalTier
    item_count: int
    largest_carat_weight: Decimal
    calculated_fee: Decimal
    final_fee: Decimal
    expedited: bool = False
    is_update: bool = False
    original_appraisal_date: datetime | None = None
    sarin_report: bool = False
    gem_id: bool = False
    photo_documentation: bool = False
    fee_override_reason: str | None = None
    created_at: datetime | None = None

    @property
    def is_fee_overridden(self) -> bool:
        return self.final_fee != self.calculated_fee

    def with_override(self, fee: Decimal, reason: str) -> "AppraisalService":
        if fee < 0:
            raise ValidationError("Appraisal fee cannot be negative", {"appraisal_id": self.id})
        if not (reason or "").strip():
            raise ValidationError("A fee override requires a reason", {"appraisal_id": self.id})
        return replace(self, final_fee=to_money(fee), fee_override_reason=reason.strip())
