"""
Error taxonomy for the Repair Price Estimator.

Every error carries an HTTP status so the API layer can render it without
a lookup table. Pricing gaps that do not block a quote (missing rates,
stale rates) are reported as warnings on results, not raised.
"""

from typing import Any


class RepairEstimatorError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An internal error occurred",
        status_code: int = 500,
        payload: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self) -> dict[str, Any]:
        rv = dict(self.payload or ())
        rv["message"] = self.message
        rv["error"] = type(self).__name__
        return rv


class ValidationError(RepairEstimatorError):
    """Input has the wrong shape or violates a business precondition."""

    def __init__(self, message: str, payload: dict[str, Any] | None = None):
        super().__init__(message, 400, payload)


class NotFoundError(RepairEstimatorError):
    """A referenced record does not exist."""

    def __init__(self, record_type: str, record_id: str):
        super().__init__(
            f"{record_type} not found: {record_id}",
            404,
            {"record_type": record_type, "record_id": record_id},
        )
        self.record_type = record_type
        self.record_id = record_id


class RuleConfigurationError(RepairEstimatorError):
    """Pricing configuration for a company is missing or unusable."""

    def __init__(self, message: str, payload: dict[str, Any] | None = None):
        super().__init__(message, 422, payload)


class NoPricingRuleFound(RuleConfigurationError):
    """No active pricing formula applies to the service being priced."""

    def __init__(self, company_id: str, service_id: str | None = None):
        super().__init__(
            f"No active pricing rule found for company {company_id}",
            {"company_id": company_id, "service_id": service_id},
        )
        self.company_id = company_id
        self.service_id = service_id


class InvalidTransitionError(RepairEstimatorError):
    """A status change is not allowed from the quote's current status."""

    def __init__(self, current: Any, requested: Any):
        current_value = getattr(current, "value", current)
        requested_value = getattr(requested, "value", requested)
        super().__init__(
            f"Cannot transition quote from {current_value} to {requested_value}",
            409,
            {"current_status": current_value, "requested_status": requested_value},
        )
        self.current = current
        self.requested = requested


class ConcurrentModificationError(RepairEstimatorError):
    """A conditional write lost a race with another writer."""

    def __init__(self, record_type: str, record_id: str):
        super().__init__(
            f"{record_type} {record_id} was modified concurrently",
            409,
            {"record_type": record_type, "record_id": record_id},
        )
        self.record_type = record_type
        self.record_id = record_id


class DuplicateRecordError(RepairEstimatorError):
    """A create-only write found an existing record with the same id."""

    def __init__(self, record_type: str, record_id: str):
        super().__init__(
            f"{record_type} already exists: {record_id}",
            409,
            {"record_type": record_type, "record_id": record_id},
        )
        self.record_type = record_type
        self.record_id = record_id


class TransientStoreError(RepairEstimatorError):
    """The record store failed in a way that may succeed on retry."""

    def __init__(self, message: str = "Record store temporarily unavailable"):
        super().__init__(message, 503)


class StoreTimeoutError(TransientStoreError):
    """A record store call exceeded its timeout."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"Record store {operation} timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class IDGenerationExhausted(RepairEstimatorError):
    """No unused quote id could be produced within the attempt budget."""

    def __init__(self, company_id: str, attempts: int):
        super().__init__(
            f"Could not generate a unique quote id for company {company_id} "
            f"after {attempts} attempts",
            503,
            {"company_id": company_id, "attempts": attempts},
        )
        self.company_id = company_id
        self.attempts = attempts


class PermissionDeniedError(RepairEstimatorError):
    """The acting user's role may not perform the operation."""

    def __init__(self, action: str, role: Any = None):
        role_value = getattr(role, "value", role)
        super().__init__(
            f"Role {role_value} may not {action}",
            403,
            {"action": action, "role": role_value},
        )
        self.action = action
        self.role = role
