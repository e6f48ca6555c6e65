"""
Quote status state machine.

Pure functions: the transition table, the priority rule, due-date
scheduling and the overdue predicate. Nothing here touches the store; the
workflow service persists what apply_transition() returns.
"""

from dataclasses import replace
from datetime import datetime, timedelta

from repair_estimator.exceptions import InvalidTransitionError, ValidationError
from repair_estimator.models.catalog import ServiceCategory
from repair_estimator.models.quote import Quote, QuotePriority, QuoteStatus, RushType

S = QuoteStatus

ALLOWED_TRANSITIONS: dict[QuoteStatus, frozenset[QuoteStatus]] = {
    S.DRAFT: frozenset({S.PRESENTED, S.CANCELLED}),
    S.PRESENTED: frozenset({S.AWAITING_APPROVAL, S.APPROVED, S.DECLINED, S.DRAFT, S.CANCELLED}),
    S.AWAITING_APPROVAL: frozenset({S.APPROVED, S.DECLINED, S.PRESENTED, S.CANCELLED}),
    S.APPROVED: frozenset({S.IN_SHOP, S.AT_VENDOR, S.CANCELLED}),
    S.DECLINED: frozenset({S.PRESENTED, S.CLOSED}),
    S.IN_SHOP: frozenset({S.QUALITY_REVIEW, S.AT_VENDOR, S.CANCELLED}),
    S.AT_VENDOR: frozenset({S.IN_SHOP, S.QUALITY_REVIEW, S.CANCELLED}),
    S.QUALITY_REVIEW: frozenset({S.COMPLETED, S.READY_FOR_PICKUP, S.QUALITY_FAILED}),
    S.QUALITY_FAILED: frozenset({S.IN_SHOP, S.REWORK, S.CANCELLED}),
    S.REWORK: frozenset({S.QUALITY_REVIEW, S.CANCELLED}),
    S.READY_FOR_PICKUP: frozenset({S.COMPLETED, S.IN_SHOP}),
    S.COMPLETED: frozenset(),
    S.CLOSED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.CLOSED})
NOTE_REQUIRED_STATUSES = frozenset({S.QUALITY_FAILED, S.CANCELLED})
EDITABLE_STATUSES = frozenset({S.DRAFT, S.PRESENTED, S.AWAITING_APPROVAL})
DELETABLE_STATUSES = frozenset({S.DRAFT, S.CANCELLED})

# Not overdue: finished, or not yet promised to the guest
OVERDUE_EXEMPT_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.CLOSED, S.APPROVED, S.DECLINED})

# Work on the bench or about to be
QUEUED_STATUSES = frozenset({
    S.APPROVED, S.IN_SHOP, S.AT_VENDOR, S.QUALITY_REVIEW,
    S.QUALITY_FAILED, S.REWORK, S.READY_FOR_PICKUP,
})

# (standard, same-day) working days to promise by category
WORKING_DAYS_BY_CATEGORY: dict[ServiceCategory, tuple[int, int]] = {
    ServiceCategory.JEWELRY_REPAIR: (3, 1),
    ServiceCategory.WATCH_REPAIR: (5, 1),
    ServiceCategory.CARE_PLAN: (2, 2),
    ServiceCategory.APPRAISAL: (7, 7),
}
DEFAULT_WORKING_DAYS = (5, 5)


def can_transition(current: QuoteStatus, new: QuoteStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def is_terminal(status: QuoteStatus) -> bool:
    return status in TERMINAL_STATUSES


def derive_priority(quote: Quote) -> QuotePriority:
    """
    Priority from rush type and service category.

    Quotes back on the bench after a failed quality review are urgent.
    Otherwise same-day is urgent; 48-hour rush and bench repairs are high; estate
    liquidation is low; everything else is medium.
    """
    if quote.qc_rework:
        return QuotePriority.URGENT
    if quote.rush_type is RushType.SAME_DAY:
        return QuotePriority.URGENT
    if quote.rush_type is RushType.WITHIN_48_HOURS:
        return QuotePriority.HIGH
    category = quote.primary_service_category
    if category in (ServiceCategory.JEWELRY_REPAIR, ServiceCategory.WATCH_REPAIR):
        return QuotePriority.HIGH
    if category is ServiceCategory.ESTATE_LIQUIDATION:
        return QuotePriority.LOW
    return QuotePriority.MEDIUM


def add_working_days(start: datetime, days: int) -> datetime:
    """Advance by working days, skipping Saturdays and Sundays."""
    result = start
    remaining = days
    while remaining > 0:
        result += timedelta(days=1)
        if result.weekday() < 5:
            remaining -= 1
    return result


def promised_due_date(quote: Quote, approved_at: datetime) -> datetime:
    standard, same_day = WORKING_DAYS_BY_CATEGORY.get(quote.primary_service_category, DEFAULT_WORKING_DAYS)
    days = same_day if quote.rush_type is RushType.SAME_DAY else standard
    return add_working_days(approved_at, days)


def is_overdue(quote: Quote, now: datetime) -> bool:
    if quote.promised_due_date is None:
        return False
    if quote.status in OVERDUE_EXEMPT_STATUSES:
        return False
    return quote.promised_due_date < now


def next_updated_at(previous: datetime, now: datetime) -> datetime:
    """Strictly increasing modification time even if the clock stalls."""
    floor = previous + timedelta(microseconds=1)
    return now if now >= floor else floor


def apply_transition(
    quote: Quote,
    new_status: QuoteStatus,
    *,
    actor_id: str,
    now: datetime,
    notes: str | None = None,
) -> Quote:
    """
    Validate and apply a status change, returning the updated quote.

    Raises:
        InvalidTransitionError: the table does not allow the change
        ValidationError: a note is required and none was given
    """
    if not can_transition(quote.status, new_status):
        raise InvalidTransitionError(quote.status, new_status)
    if new_status in NOTE_REQUIRED_STATUSES and not (notes or "").strip():
        raise ValidationError(
            f"A note is required when moving a quote to {new_status.display_name}",
            {"quote_id": quote.id, "requested_status": new_status.value},
        )

    previous_status = quote.status
    updated = replace(quote, status=new_status, updated_at=next_updated_at(quote.updated_at, now))

    if new_status is S.APPROVED:
        updated = replace(
            updated,
            estimate_approved=True,
            approved_at=now,
            approved_by=actor_id,
            promised_due_date=updated.promised_due_date or promised_due_date(updated, now),
        )
        updated = replace(updated, priority=derive_priority(updated))
    elif new_status is S.IN_SHOP:
        if previous_status in (S.QUALITY_FAILED, S.REWORK):
            updated = replace(updated, priority=QuotePriority.URGENT)
        else:
            updated = replace(updated, priority=derive_priority(updated))
    elif new_status is S.QUALITY_FAILED:
        updated = replace(updated, priority=QuotePriority.URGENT, qc_rework=True)
    elif new_status is S.READY_FOR_PICKUP:
        updated = replace(updated, qc_rework=False)
    elif new_status is S.COMPLETED:
        updated = replace(updated, priority=QuotePriority.LOW, qc_rework=False)

    return updated
