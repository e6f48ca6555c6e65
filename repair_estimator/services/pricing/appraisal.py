"""
Appraisal fee calculator.

Fee = (first item + additional items) x carat multiplier, less the update
discount when a recent prior appraisal exists, plus flat or percentage
surcharges for ancillary services.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from repair_estimator.config.settings import AppraisalSettings
from repair_estimator.exceptions import ValidationError
from repair_estimator.models.appraisal import (
    FEE_SCHEDULE,
    AppraisalService,
    AppraisalTier,
    AppraisalType,
)
from repair_estimator.utils.money import ZERO, to_decimal, to_money


@dataclass(frozen=True)
class AppraisalRequest:
    appraisal_type: AppraisalType
    item_count: int
    largest_carat_weight: Decimal = Decimal("0")
    is_update: bool = False
    original_appraisal_date: datetime | None = None
    expedited: bool = False
    sarin_report: bool = False
    gem_id: bool = False
    photo_documentation: bool = False


@dataclass(frozen=True)
class AppraisalFeeResult:
    tier: AppraisalTier
    base_fee: Decimal
    total_fee: Decimal
    carat_multiplier: Decimal
    update_discount_applied: bool
    surcharges: tuple[tuple[str, Decimal], ...] = ()
    notes: tuple[str, ...] = ()


def _years_before(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return moment.replace(year=moment.year - years, day=28)


def calculate_appraisal_fee(
    request: AppraisalRequest,
    now: datetime,
    settings: AppraisalSettings,
) -> AppraisalFeeResult:
    """
    Compute the appraisal fee. Pure and deterministic for a given now.

    Raises:
        ValidationError: item count below one or negative carat weight
    """
    if request.item_count < 1:
        raise ValidationError("Appraisal requires at least one item", {"item_count": request.item_count})
    weight = to_decimal(request.largest_carat_weight)
    if weight < 0:
        raise ValidationError("Carat weight cannot be negative", {"largest_carat_weight": str(weight)})

    tier = request.appraisal_type.tier
    structure = FEE_SCHEDULE[tier]
    multiplier = structure.carat_multiplier(weight)
    notes: list[str] = []

    base_fee = structure.first_item_fee + structure.additional_item_fee * (request.item_count - 1)
    base_fee = to_money(base_fee * multiplier)
    if multiplier != 1:
        notes.append(f"Carat weight {weight}ct applies {multiplier}x multiplier")

    update_discount_applied = False
    if request.is_update:
        original = request.original_appraisal_date
        if original is None:
            notes.append("Original appraisal date required for update discount")
        elif original >= _years_before(now, settings.update_recency_years):
            base_fee = to_money(base_fee * (1 - settings.update_discount))
            update_discount_applied = True
            notes.append(f"Update discount applied ({settings.update_discount * 100:.0f}% off)")
        else:
            notes.append(
                f"Original appraisal older than {settings.update_recency_years} years; no update discount"
            )

    surcharges: list[tuple[str, Decimal]] = []
    if request.sarin_report:
        surcharges.append(("sarin_report", to_money(settings.sarin_report_fee)))
    if request.gem_id:
        surcharges.append(("gem_id", to_money(settings.gem_id_fee)))
    if request.photo_documentation:
        surcharges.append(("photo_documentation", to_money(settings.photo_documentation_fee)))
    if request.expedited:
        surcharges.append(("expedite", to_money(base_fee * settings.expedite_percentage)))

    total_fee = base_fee + sum((amount for _, amount in surcharges), ZERO)

    return AppraisalFeeResult(
        tier=tier,
        base_fee=base_fee,
        total_fee=to_money(total_fee),
        carat_multiplier=multiplier,
        update_discount_applied=update_discount_applied,
        surcharges=tuple(surcharges),
        notes=tuple(notes),
    )


def build_appraisal(
    quote_id: str,
    company_id: str,
    request: AppraisalRequest,
    result: AppraisalFeeResult,
    created_at: datetime | None = None,
) -> AppraisalService:
    return AppraisalService(
        id=str(uuid4()),
        quote_id=quote_id,
        company_id=company_id,
        appraisal_type=request.appraisal_type,
        tier=result.tier,
        item_count=request.item_count,
        largest_carat_weight=to_decimal(request.largest_carat_weight),
        calculated_fee=result.total_fee,
        final_fee=result.total_fee,
        expedited=request.expedited,
        is_update=request.is_update,
        original_appraisal_date=request.original_appraisal_date,
        sarin_report=request.sarin_report,
        gem_id=request.gem_id,
        photo_documentation=request.photo_documentation,
        created_at=created_at,
    )
