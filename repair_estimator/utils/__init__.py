"""
Utility modules for the Repair Price Estimator.

- logging: structlog setup and service/audit loggers
- money: Decimal rounding and currency formatting
"""

from repair_estimator.utils.logging import (
    AuditLogger,
    RequestLogger,
    ServiceLogger,
    audit_logger,
    get_logger,
    request_logger,
    setup_logging,
)
from repair_estimator.utils.money import format_currency, to_decimal, to_money

__all__ = [
    "AuditLogger",
    "RequestLogger",
    "ServiceLogger",
    "audit_logger",
    "get_logger",
    "request_logger",
    "setup_logging",
    "format_currency",
    "to_decimal",
    "to_money",
]
