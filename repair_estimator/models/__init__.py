"""
Domain models for the Repair Price Estimator.

Entities are plain dataclasses; records.py maps each to and from the
JSON-safe dicts the record store persists.
"""

from repair_estimator.models.appraisal import AppraisalService, AppraisalTier, AppraisalType
from repair_estimator.models.catalog import MetalType, ServiceCatalogEntry, ServiceCategory, ServiceFlags
from repair_estimator.models.pricing import LaborRate, MetalRate, PricingFormula, PricingPolicy, PricingRule
from repair_estimator.models.quote import (
    Quote,
    QuoteLineItem,
    QuotePhoto,
    QuotePriority,
    QuoteStatus,
    RushType,
    StatusChangeLog,
)
from repair_estimator.models.user import SessionContext, SessionProvider, StaticSessionProvider, UserRole

__all__ = [
    "AppraisalService",
    "AppraisalTier",
    "AppraisalType",
    "MetalType",
    "ServiceCatalogEntry",
    "ServiceCategory",
    "ServiceFlags",
    "LaborRate",
    "MetalRate",
    "PricingFormula",
    "PricingPolicy",
    "PricingRule",
    "Quote",
    "QuoteLineItem",
    "QuotePhoto",
    "QuotePriority",
    "QuoteStatus",
    "RushType",
    "StatusChangeLog",
    "SessionContext",
    "SessionProvider",
    "StaticSessionProvider",
    "UserRole",
]
