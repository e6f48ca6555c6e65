"""
Quote models.

A quote owns its line items, photos, status log entries and appraisals.
Quotes are immutable values; the workflow service produces updated copies
and persists them.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum

from repair_estimator.exceptions import ValidationError
from repair_estimator.models.catalog import MetalType, ServiceCategory
from repair_estimator.utils.money import ZERO, to_money


class QuoteStatus(str, Enum):
    """Quote lifecycle status."""
    DRAFT = "draft"
    PRESENTED = "presented"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    DECLINED = "declined"
    IN_SHOP = "in_shop"
    AT_VENDOR = "at_vendor"
    QUALITY_REVIEW = "quality_review"
    QUALITY_FAILED = "quality_failed"
    REWORK = "rework"
    READY_FOR_PICKUP = "ready_for_pickup"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class QuotePriority(str, Enum):
    """Work queue priority."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def sort_order(self) -> int:
        return _PRIORITY_ORDER[self]


_PRIORITY_ORDER = {
    QuotePriority.URGENT: 0,
    QuotePriority.HIGH: 1,
    QuotePriority.MEDIUM: 2,
    QuotePriority.LOW: 3,
}


class RushType(str, Enum):
    """Turnaround the guest asked for."""
    SAME_DAY = "same_day"
    WITHIN_48_HOURS = "within_48_hours"
    STANDARD = "standard"

    @property
    def is_rush(self) -> bool:
        return self is not RushType.STANDARD


@dataclass(frozen=True)
class Quote:
    """Repair quote for a guest."""
    id: str
    company_id: str
    store_id: str | None
    guest_id: str
    status: QuoteStatus
    created_at: datetime
    updated_at: datetime
    valid_until: datetime
    currency_code: str = "USD"
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO
    rush_multiplier_applied: Decimal = Decimal("1.0")
    priority: QuotePriority = QuotePriority.MEDIUM
    # Failed quality review; stays urgent until it leaves the bench
    qc_rework: bool = False
    primary_service_category: ServiceCategory | None = None
    rush_type: RushType = RushType.STANDARD
    requested_due_date: datetime | None = None
    promised_due_date: datetime | None = None
    exempt_item: bool = False
    sales_sku: str | None = None
    coordinator_approval_required: bool = False
    coordinator_approval_granted: bool = False
    estimate_approved: bool = False
    pre_approved_limit: Decimal | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    internal_notes: str | None = None
    customer_notes: str | None = None

    def __post_init__(self):
        if min(self.subtotal, self.tax, self.total) < 0:
            raise ValidationError("Quote totals cannot be negative", {"quote_id": self.id})

    @property
    def is_rush(self) -> bool:
        return self.rush_type.is_rush

    def with_totals(self, subtotal: Decimal, rush_multiplier: Decimal, tax_rate: Decimal) -> "Quote":
        """Return a copy with totals recomputed as subtotal * rush + tax."""
        subtotal = to_money(subtotal)
        tax = to_money(subtotal * tax_rate)
        total = to_money(subtotal * rush_multiplier + tax)
        return replace(
            self,
            subtotal=subtotal,
            tax=tax,
            total=total,
            rush_multiplier_applied=rush_multiplier,
        )


@dataclass(frozen=True)
class QuoteLineItem:
    """
    One priced service on a quote.

    Catalog values are copied in at pricing time so catalog edits do not
    change saved lines.
    """
    id: str
    quote_id: str
    service_id: str
    sku: str
    description: str
    base_cost: Decimal
    base_retail: Decimal
    final_retail: Decimal
    quantity: int = 1
    labor_minutes: int = 0
    metal_type: MetalType | None = None
    metal_weight_grams: Decimal | None = None
    is_rush: bool = False
    rush_multiplier: Decimal = Decimal("1.0")
    manual_override_retail: Decimal | None = None
    override_reason: str | None = None
    notes: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    created_at: datetime | None = None

    def __post_init__(self):
        if self.quantity < 1:
            raise ValidationError("Line item quantity must be at least 1", {"line_item_id": self.id})
        if self.manual_override_retail is not None and not (self.override_reason or "").strip():
            raise ValidationError(
                "A manual price override requires a reason",
                {"line_item_id": self.id},
            )

    @property
    def is_overridden(self) -> bool:
        return self.manual_override_retail is not None

    @property
    def effective_retail(self) -> Decimal:
        if self.manual_override_retail is not None:
            return self.manual_override_retail
        return self.final_retail

    @property
    def extended_retail(self) -> Decimal:
        return to_money(self.effective_retail * self.quantity)

    def with_override(self, value: Decimal, reason: str) -> "QuoteLineItem":
        if value < 0:
            raise ValidationError("Override price cannot be negative", {"line_item_id": self.id})
        return replace(self, manual_override_retail=to_money(value), override_reason=(reason or "").strip())

    def without_override(self) -> "QuoteLineItem":
        return replace(self, manual_override_retail=None, override_reason=None)


@dataclass(frozen=True)
class QuotePhoto:
    """Intake photo attached to a quote."""
    id: str
    quote_id: str
    asset_url: str
    caption: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class StatusChangeLog:
    """Audit record written for every successful status transition."""
    id: str
    quote_id: str
    company_id: str
    previous_status: QuoteStatus
    new_status: QuoteStatus
    changed_by: str
    changed_at: datetime
    notes: str | None = None
    metadata: dict = field(default_factory=dict)
