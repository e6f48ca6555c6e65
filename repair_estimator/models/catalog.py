"""
Service catalog models.

A catalog entry describes one repair service a store offers: its category,
default SKU, typical labor and metal usage, and any fixed catalog price.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class ServiceCategory(str, Enum):
    """Service categories used for formula overrides and scheduling."""
    JEWELRY_REPAIR = "jewelry_repair"
    WATCH_REPAIR = "watch_repair"
    CLEANING = "cleaning"
    APPRAISAL = "appraisal"
    CUSTOM_DESIGN = "custom_design"
    ENGRAVING = "engraving"
    CARE_PLAN = "care_plan"
    ESTATE_LIQUIDATION = "estate_liquidation"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class MetalType(str, Enum):
    """Metals a repair may consume."""
    GOLD_14K = "14k_gold"
    GOLD_18K = "18k_gold"
    GOLD_22K = "22k_gold"
    PLATINUM = "platinum"
    PALLADIUM = "palladium"
    SILVER = "silver"
    STAINLESS_STEEL = "stainless_steel"
    TITANIUM = "titanium"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return _METAL_DISPLAY_NAMES[self]

    @property
    def requires_market_rate(self) -> bool:
        """Precious metals are priced from the daily market rate per gram."""
        return self not in (MetalType.STAINLESS_STEEL, MetalType.TITANIUM, MetalType.OTHER)


_METAL_DISPLAY_NAMES = {
    MetalType.GOLD_14K: "14K Gold",
    MetalType.GOLD_18K: "18K Gold",
    MetalType.GOLD_22K: "22K Gold",
    MetalType.PLATINUM: "Platinum",
    MetalType.PALLADIUM: "Palladium",
    MetalType.SILVER: "Sterling Silver",
    MetalType.STAINLESS_STEEL: "Stainless Steel",
    MetalType.TITANIUM: "Titanium",
    MetalType.OTHER: "Other Metal",
}


@dataclass(frozen=True)
class ServiceFlags:
    """Behavior flags carried by a catalog entry."""
    is_generic_sku: bool = False
    requires_special_check: bool = False
    estimate_required: bool = False
    vendor_service: bool = False
    quality_control_required: bool = True


@dataclass(frozen=True)
class ServiceCatalogEntry:
    """
    Catalog entry for a repair service.

    A positive base_retail together with a sizing_category marks a service
    priced from the catalog itself rather than from the company formula.
    """
    id: str
    company_id: str
    name: str
    category: ServiceCategory
    default_sku: str
    default_labor_minutes: int = 0
    default_metal_usage_grams: Decimal | None = None
    base_retail: Decimal = Decimal("0")
    base_cost: Decimal = Decimal("0")
    flags: ServiceFlags = field(default_factory=ServiceFlags)
    pricing_formula_id: str | None = None
    sizing_category: str | None = None
    compatible_metals: tuple[MetalType, ...] = ()
    is_active: bool = True

    @property
    def is_generic_sku(self) -> bool:
        return self.flags.is_generic_sku

    @property
    def uses_catalog_pricing(self) -> bool:
        return (
            not self.flags.is_generic_sku
            and self.sizing_category is not None
            and self.base_retail > 0
        )
