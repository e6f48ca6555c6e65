"""
Typed record mapping.

Each entity has an explicit encode/decode pair to a JSON-safe dict: Decimal
as string, datetimes as UTC ISO-8601 with microseconds (so they sort as
strings), enums as their value. Stores only ever see these dicts.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from repair_estimator.models.appraisal import AppraisalService, AppraisalTier, AppraisalType
from repair_estimator.models.catalog import MetalType, ServiceCatalogEntry, ServiceCategory, ServiceFlags
from repair_estimator.models.pricing import LaborRate, MetalRate, PricingFormula, PricingRule
from repair_estimator.models.quote import (
    Quote,
    QuoteLineItem,
    QuotePhoto,
    QuotePriority,
    QuoteStatus,
    RushType,
    StatusChangeLog,
)
from repair_estimator.models.user import UserRole


class RecordType:
    """Record type names used as store partitions."""
    SERVICE = "ServiceCatalogEntry"
    PRICING_RULE = "PricingRule"
    METAL_RATE = "MetalRate"
    LABOR_RATE = "LaborRate"
    QUOTE = "Quote"
    LINE_ITEM = "QuoteLineItem"
    PHOTO = "QuotePhoto"
    STATUS_LOG = "StatusChangeLog"
    APPRAISAL = "AppraisalService"


Record = dict[str, Any]


def encode_value(value: Any) -> Any:
    """Encode a single Python value to its stored form."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def _dt(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _dec(value: str | None) -> Decimal | None:
    return None if value is None else Decimal(value)


def _enum(enum_cls, value):
    return None if value is None else enum_cls(value)


# Catalog

def encode_service(entry: ServiceCatalogEntry) -> Record:
    return {
        "id": entry.id,
        "company_id": entry.company_id,
        "name": entry.name,
        "category": encode_value(entry.category),
        "default_sku": entry.default_sku,
        "default_labor_minutes": entry.default_labor_minutes,
        "default_metal_usage_grams": encode_value(entry.default_metal_usage_grams),
        "base_retail": encode_value(entry.base_retail),
        "base_cost": encode_value(entry.base_cost),
        "is_generic_sku": entry.flags.is_generic_sku,
        "requires_special_check": entry.flags.requires_special_check,
        "estimate_required": entry.flags.estimate_required,
        "vendor_service": entry.flags.vendor_service,
        "quality_control_required": entry.flags.quality_control_required,
        "pricing_formula_id": entry.pricing_formula_id,
        "sizing_category": entry.sizing_category,
        "compatible_metals": encode_value(entry.compatible_metals),
        "is_active": entry.is_active,
    }


def decode_service(record: Record) -> ServiceCatalogEntry:
    return ServiceCatalogEntry(
        id=record["id"],
        company_id=record["company_id"],
        name=record["name"],
        category=ServiceCategory(record["category"]),
        default_sku=record["default_sku"],
        default_labor_minutes=record.get("default_labor_minutes", 0),
        default_metal_usage_grams=_dec(record.get("default_metal_usage_grams")),
        base_retail=Decimal(record.get("base_retail", "0")),
        base_cost=Decimal(record.get("base_cost", "0")),
        flags=ServiceFlags(
            is_generic_sku=record.get("is_generic_sku", False),
            requires_special_check=record.get("requires_special_check", False),
            estimate_required=record.get("estimate_required", False),
            vendor_service=record.get("vendor_service", False),
            quality_control_required=record.get("quality_control_required", True),
        ),
        pricing_formula_id=record.get("pricing_formula_id"),
        sizing_category=record.get("sizing_category"),
        compatible_metals=tuple(MetalType(m) for m in record.get("compatible_metals", [])),
        is_active=record.get("is_active", True),
    )


# Pricing configuration

def encode_pricing_rule(rule: PricingRule) -> Record:
    formula = rule.formula
    return {
        "id": rule.id,
        "company_id": rule.company_id,
        "name": rule.name,
        "metal_markup_percentage": encode_value(formula.metal_markup_percentage),
        "labor_markup_percentage": encode_value(formula.labor_markup_percentage),
        "fixed_fee": encode_value(formula.fixed_fee),
        "rush_multiplier": encode_value(formula.rush_multiplier),
        "minimum_charge": encode_value(formula.minimum_charge),
        "service_category": encode_value(rule.service_category),
        "allow_manual_override": rule.allow_manual_override,
        "manager_approval_threshold_percent": encode_value(rule.manager_approval_threshold_percent),
        "is_active": rule.is_active,
        "created_at": encode_value(rule.created_at),
    }


def decode_pricing_rule(record: Record) -> PricingRule:
    return PricingRule(
        id=record["id"],
        company_id=record["company_id"],
        name=record["name"],
        formula=PricingFormula(
            metal_markup_percentage=Decimal(record["metal_markup_percentage"]),
            labor_markup_percentage=Decimal(record["labor_markup_percentage"]),
            fixed_fee=Decimal(record["fixed_fee"]),
            rush_multiplier=Decimal(record["rush_multiplier"]),
            minimum_charge=Decimal(record.get("minimum_charge") or "0"),
        ),
        service_category=_enum(ServiceCategory, record.get("service_category")),
        allow_manual_override=record.get("allow_manual_override", True),
        manager_approval_threshold_percent=Decimal(record.get("manager_approval_threshold_percent", "10")),
        is_active=record.get("is_active", True),
        created_at=_dt(record.get("created_at")),
    )


def encode_metal_rate(rate: MetalRate) -> Record:
    return {
        "id": rate.id,
        "company_id": rate.company_id,
        "metal_type": encode_value(rate.metal_type),
        "rate_per_gram": encode_value(rate.rate_per_gram),
        "effective_date": encode_value(rate.effective_date),
        "is_active": rate.is_active,
        "unit": rate.unit,
    }


def decode_metal_rate(record: Record) -> MetalRate:
    return MetalRate(
        id=record["id"],
        company_id=record["company_id"],
        metal_type=MetalType(record["metal_type"]),
        rate_per_gram=Decimal(record["rate_per_gram"]),
        effective_date=_dt(record["effective_date"]),
        is_active=record.get("is_active", True),
        unit=record.get("unit", "gram"),
    )


def encode_labor_rate(rate: LaborRate) -> Record:
    return {
        "id": rate.id,
        "company_id": rate.company_id,
        "role": encode_value(rate.role),
        "rate_per_hour": encode_value(rate.rate_per_hour),
        "effective_date": encode_value(rate.effective_date),
        "is_active": rate.is_active,
    }


def decode_labor_rate(record: Record) -> LaborRate:
    return LaborRate(
        id=record["id"],
        company_id=record["company_id"],
        role=UserRole(record["role"]),
        rate_per_hour=Decimal(record["rate_per_hour"]),
        effective_date=_dt(record["effective_date"]),
        is_active=record.get("is_active", True),
    )


# Quotes

_QUOTE_DATETIME_FIELDS = (
    "created_at", "updated_at", "valid_until", "requested_due_date",
    "promised_due_date", "approved_at",
)
_QUOTE_DECIMAL_FIELDS = ("subtotal", "tax", "total", "rush_multiplier_applied")


def encode_quote(quote: Quote) -> Record:
    return {
        "id": quote.id,
        "company_id": quote.company_id,
        "store_id": quote.store_id,
        "guest_id": quote.guest_id,
        "status": encode_value(quote.status),
        "created_at": encode_value(quote.created_at),
        "updated_at": encode_value(quote.updated_at),
        "valid_until": encode_value(quote.valid_until),
        "currency_code": quote.currency_code,
        "subtotal": encode_value(quote.subtotal),
        "tax": encode_value(quote.tax),
        "total": encode_value(quote.total),
        "rush_multiplier_applied": encode_value(quote.rush_multiplier_applied),
        "priority": encode_value(quote.priority),
        "qc_rework": quote.qc_rework,
        "primary_service_category": encode_value(quote.primary_service_category),
        "rush_type": encode_value(quote.rush_type),
        "requested_due_date": encode_value(quote.requested_due_date),
        "promised_due_date": encode_value(quote.promised_due_date),
        "exempt_item": quote.exempt_item,
        "sales_sku": quote.sales_sku,
        "coordinator_approval_required": quote.coordinator_approval_required,
        "coordinator_approval_granted": quote.coordinator_approval_granted,
        "estimate_approved": quote.estimate_approved,
        "pre_approved_limit": encode_value(quote.pre_approved_limit),
        "approved_at": encode_value(quote.approved_at),
        "approved_by": quote.approved_by,
        "internal_notes": quote.internal_notes,
        "customer_notes": quote.customer_notes,
    }


def decode_quote(record: Record) -> Quote:
    values = dict(record)
    for name in _QUOTE_DATETIME_FIELDS:
        values[name] = _dt(values.get(name))
    for name in _QUOTE_DECIMAL_FIELDS:
        values[name] = Decimal(values[name])
    values["pre_approved_limit"] = _dec(values.get("pre_approved_limit"))
    values["status"] = QuoteStatus(values["status"])
    values["priority"] = QuotePriority(values["priority"])
    values["rush_type"] = RushType(values["rush_type"])
    values["primary_service_category"] = _enum(ServiceCategory, values.get("primary_service_category"))
    return Quote(**values)


def encode_line_item(item: QuoteLineItem) -> Record:
    return {
        "id": item.id,
        "quote_id": item.quote_id,
        "service_id": item.service_id,
        "sku": item.sku,
        "description": item.description,
        "base_cost": encode_value(item.base_cost),
        "base_retail": encode_value(item.base_retail),
        "final_retail": encode_value(item.final_retail),
        "quantity": item.quantity,
        "labor_minutes": item.labor_minutes,
        "metal_type": encode_value(item.metal_type),
        "metal_weight_grams": encode_value(item.metal_weight_grams),
        "is_rush": item.is_rush,
        "rush_multiplier": encode_value(item.rush_multiplier),
        "manual_override_retail": encode_value(item.manual_override_retail),
        "override_reason": item.override_reason,
        "notes": list(item.notes),
        "warnings": list(item.warnings),
        "created_at": encode_value(item.created_at),
    }


def decode_line_item(record: Record) -> QuoteLineItem:
    return QuoteLineItem(
        id=record["id"],
        quote_id=record["quote_id"],
        service_id=record["service_id"],
        sku=record["sku"],
        description=record["description"],
        base_cost=Decimal(record["base_cost"]),
        base_retail=Decimal(record["base_retail"]),
        final_retail=Decimal(record["final_retail"]),
        quantity=record.get("quantity", 1),
        labor_minutes=record.get("labor_minutes", 0),
        metal_type=_enum(MetalType, record.get("metal_type")),
        metal_weight_grams=_dec(record.get("metal_weight_grams")),
        is_rush=record.get("is_rush", False),
        rush_multiplier=Decimal(record.get("rush_multiplier", "1.0")),
        manual_override_retail=_dec(record.get("manual_override_retail")),
        override_reason=record.get("override_reason"),
        notes=tuple(record.get("notes", [])),
        warnings=tuple(record.get("warnings", [])),
        created_at=_dt(record.get("created_at")),
    )


def encode_photo(photo: QuotePhoto) -> Record:
    return {
        "id": photo.id,
        "quote_id": photo.quote_id,
        "asset_url": photo.asset_url,
        "caption": photo.caption,
        "created_at": encode_value(photo.created_at),
    }


def decode_photo(record: Record) -> QuotePhoto:
    return QuotePhoto(
        id=record["id"],
        quote_id=record["quote_id"],
        asset_url=record["asset_url"],
        caption=record.get("caption"),
        created_at=_dt(record.get("created_at")),
    )


def encode_status_log(entry: StatusChangeLog) -> Record:
    return {
        "id": entry.id,
        "quote_id": entry.quote_id,
        "company_id": entry.company_id,
        "previous_status": encode_value(entry.previous_status),
        "new_status": encode_value(entry.new_status),
        "changed_by": entry.changed_by,
        "changed_at": encode_value(entry.changed_at),
        "notes": entry.notes,
        "metadata": dict(entry.metadata),
    }


def decode_status_log(record: Record) -> StatusChangeLog:
    return StatusChangeLog(
        id=record["id"],
        quote_id=record["quote_id"],
        company_id=record["company_id"],
        previous_status=QuoteStatus(record["previous_status"]),
        new_status=QuoteStatus(record["new_status"]),
        changed_by=record["changed_by"],
        changed_at=_dt(record["changed_at"]),
        notes=record.get("notes"),
        metadata=dict(record.get("metadata") or {}),
    )


# Appraisals

def encode_appraisal(appraisal: AppraisalService) -> Record:
    return {
        "id": appraisal.id,
        "quote_id": appraisal.quote_id,
        "company_id": appraisal.company_id,
        "appraisal_type": encode_value(appraisal.appraisal_type),
        "tier": encode_value(appraisal.tier),
        "item_count": appraisal.item_count,
        "largest_carat_weight": encode_value(appraisal.largest_carat_weight),
        "calculated_fee": encode_value(appraisal.calculated_fee),
        "final_fee": encode_value(appraisal.final_fee),
        "expedited": appraisal.expedited,
        "is_update": appraisal.is_update,
        "original_appraisal_date": encode_value(appraisal.original_appraisal_date),
        "sarin_report": appraisal.sarin_report,
        "gem_id": appraisal.gem_id,
        "photo_documentation": appraisal.photo_documentation,
        "fee_override_reason": appraisal.fee_override_reason,
        "created_at": encode_value(appraisal.created_at),
    }


def decode_appraisal(record: Record) -> AppraisalService:
    return AppraisalService(
        id=record["id"],
        quote_id=record["quote_id"],
        company_id=record["company_id"],
        appraisal_type=AppraisalType(record["appraisal_type"]),
        tier=AppraisalTier(record["tier"]),
        item_count=record["item_count"],
        largest_carat_weight=Decimal(record["largest_carat_weight"]),
        calculated_fee=Decimal(record["calculated_fee"]),
        final_fee=Decimal(record["final_fee"]),
        expedited=record.get("expedited", False),
        is_update=record.get("is_update", False),
        original_appraisal_date=_dt(record.get("original_appraisal_date")),
        sarin_report=record.get("sarin_report", False),
        gem_id=record.get("gem_id", False),
        photo_documentation=record.get("photo_documentation", False),
        fee_override_reason=record.get("fee_override_reason"),
        created_at=_dt(record.get("created_at")),
    )
