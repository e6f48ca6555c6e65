"""
Quote workflow services.

- state_machine: transition table, priority rule, overdue predicate
- quote_ids: Q-YYYY-NNNNNN id generation
- workflow_service: persistence and orchestration of the quote lifecycle
"""

from repair_estimator.services.workflow.quote_ids import (
    QuoteIDGenerator,
    QuoteIDStatistics,
    format_quote_id,
    is_valid_quote_id,
    parse_quote_id,
)
from repair_estimator.services.workflow.state_machine import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    apply_transition,
    can_transition,
    derive_priority,
    is_overdue,
)
from repair_estimator.services.workflow.workflow_service import WorkflowService

__all__ = [
    "QuoteIDGenerator",
    "QuoteIDStatistics",
    "format_quote_id",
    "is_valid_quote_id",
    "parse_quote_id",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "apply_transition",
    "can_transition",
    "derive_priority",
    "is_overdue",
    "WorkflowService",
]
