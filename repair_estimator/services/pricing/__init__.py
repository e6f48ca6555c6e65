"""
Pricing services.

- engine: priced quote lines from company formulas and market rates
- appraisal: appraisal fee schedule
- rates: effective-dated rule and rate lookups
"""

from repair_estimator.services.pricing.appraisal import (
    AppraisalFeeResult,
    AppraisalRequest,
    build_appraisal,
    calculate_appraisal_fee,
)
from repair_estimator.services.pricing.engine import (
    PriceBreakdown,
    PriceRequest,
    PriceResult,
    PricingEngine,
    build_line_item,
    calculate_price,
    detect_exempt_item,
    is_after_same_day_cutoff,
    resolve_pricing_rule,
)
from repair_estimator.services.pricing.rates import PricingContext, RateProvider, select_effective_rate

__all__ = [
    "AppraisalFeeResult",
    "AppraisalRequest",
    "build_appraisal",
    "calculate_appraisal_fee",
    "PriceBreakdown",
    "PriceRequest",
    "PriceResult",
    "PricingEngine",
    "build_line_item",
    "calculate_price",
    "detect_exempt_item",
    "is_after_same_day_cutoff",
    "resolve_pricing_rule",
    "PricingContext",
    "RateProvider",
    "select_effective_rate",
]
