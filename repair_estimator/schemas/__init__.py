"""
Pydantic schemas for API responses.

Built from the domain dataclasses with from_attributes, so routes return
`QuoteResponse.model_validate(quote)` without hand-copying fields.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from repair_estimator.models.appraisal import AppraisalTier, AppraisalType
from repair_estimator.models.catalog import MetalType, ServiceCategory
from repair_estimator.models.pricing import PricingPolicy
from repair_estimator.models.quote import QuotePriority, QuoteStatus, RushType


class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ErrorResponse(BaseModel):
    """Error response schema."""
    error: str
    message: str


class PriceBreakdownResponse(DomainModel):
    metal_cost: Decimal
    labor_cost: Decimal
    fixed_fees: Decimal
    material_markup: Decimal
    labor_markup: Decimal
    rush_fee: Decimal


class PriceResultResponse(DomainModel):
    """Priced service with notes and warnings for the counter."""
    base_cost: Decimal
    base_retail: Decimal
    final_retail: Decimal
    rush_multiplier: Decimal
    breakdown: PriceBreakdownResponse
    notes: list[str]
    warnings: list[str]
    formula_id: str | None
    policy: PricingPolicy
    is_generic: bool
    minimum_charge_applied: bool
    requires_coordinator_approval: bool


class AppraisalFeeResponse(DomainModel):
    tier: AppraisalTier
    base_fee: Decimal
    total_fee: Decimal
    carat_multiplier: Decimal
    update_discount_applied: bool
    surcharges: list[tuple[str, Decimal]]
    notes: list[str]


class QuoteResponse(DomainModel):
    id: str
    company_id: str
    store_id: str | None
    guest_id: str
    status: QuoteStatus
    priority: QuotePriority
    qc_rework: bool
    created_at: datetime
    updated_at: datetime
    valid_until: datetime
    currency_code: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    rush_multiplier_applied: Decimal
    primary_service_category: ServiceCategory | None
    rush_type: RushType
    requested_due_date: datetime | None
    promised_due_date: datetime | None
    exempt_item: bool
    sales_sku: str | None
    coordinator_approval_required: bool
    coordinator_approval_granted: bool
    estimate_approved: bool
    approved_at: datetime | None
    approved_by: str | None
    customer_notes: str | None


class LineItemResponse(DomainModel):
    id: str
    quote_id: str
    service_id: str
    sku: str
    description: str
    quantity: int
    labor_minutes: int
    metal_type: MetalType | None
    metal_weight_grams: Decimal | None
    base_cost: Decimal
    base_retail: Decimal
    final_retail: Decimal
    effective_retail: Decimal
    is_rush: bool
    rush_multiplier: Decimal
    manual_override_retail: Decimal | None
    override_reason: str | None
    notes: list[str]
    warnings: list[str]


class PhotoResponse(DomainModel):
    id: str
    quote_id: str
    asset_url: str
    caption: str | None
    created_at: datetime | None


class AppraisalResponse(DomainModel):
    id: str
    quote_id: str
    appraisal_type: AppraisalType
    tier: AppraisalTier
    item_count: int
    largest_carat_weight: Decimal
    calculated_fee: Decimal
    final_fee: Decimal
    fee_override_reason: str | None


class StatusChangeResponse(DomainModel):
    id: str
    quote_id: str
    previous_status: QuoteStatus
    new_status: QuoteStatus
    changed_by: str
    changed_at: datetime
    notes: str | None


class QuoteDetailResponse(BaseModel):
    quote: QuoteResponse
    line_items: list[LineItemResponse]
    photos: list[PhotoResponse]
    appraisals: list[AppraisalResponse]
