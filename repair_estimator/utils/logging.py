"""
Structured logging configuration for the Repair Price Estimator.

Uses structlog for consistent, machine-parseable log output.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from repair_estimator.config.settings import Settings, get_settings


def setup_logging(app_settings: Settings | None = None) -> None:
    """
    Configure structured logging for the application.

    JSON output for deployed environments, colored console output locally.
    """
    app_settings = app_settings or get_settings()

    shared_processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if app_settings.log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, app_settings.log_level.upper()),
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class RequestLogger:
    """Request/response logging for the HTTP layer."""

    def __init__(self):
        self.logger = get_logger("request")

    def log_request(
        self,
        method: str,
        path: str,
        company_id: str | None = None,
        user_id: str | None = None,
    ) -> None:
        self.logger.info(
            "request_received",
            method=method,
            path=path,
            company_id=company_id,
            user_id=user_id,
        )

    def log_response(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        company_id: str | None = None,
        user_id: str | None = None,
    ) -> None:
        log_method = self.logger.info if status_code < 400 else self.logger.warning
        log_method(
            "request_completed",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
            company_id=company_id,
            user_id=user_id,
        )


class AuditLogger:
    """
    Audit trail for quote changes that affect what a guest pays.

    Status transitions, manual price overrides, and deletions all land here
    with the acting user and company attached.
    """

    def __init__(self):
        self.logger = get_logger("audit")

    def log_action(
        self,
        action: str,
        user_id: str | None,
        company_id: str | None,
        resource_type: str,
        resource_id: str | None = None,
        old_values: dict | None = None,
        new_values: dict | None = None,
        metadata: dict | None = None,
    ) -> None:
        """
        Log an auditable action.

        Args:
            action: Action type (create, status_change, override, delete)
            user_id: Acting user ID
            company_id: Company context
            resource_type: Type of record affected
            resource_id: ID of affected record
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            metadata: Additional context
        """
        self.logger.info(
            "audit_event",
            action=action,
            user_id=user_id,
            company_id=company_id,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
            metadata=metadata,
        )

    def log_status_change(
        self,
        quote_id: str,
        previous_status: str,
        new_status: str,
        user_id: str | None,
        company_id: str | None,
        notes: str | None = None,
    ) -> None:
        self.log_action(
            "status_change",
            user_id=user_id,
            company_id=company_id,
            resource_type="Quote",
            resource_id=quote_id,
            old_values={"status": previous_status},
            new_values={"status": new_status},
            metadata={"notes": notes} if notes else None,
        )

    def log_permission_denied(
        self,
        user_id: str | None,
        company_id: str | None,
        resource_type: str,
        action: str,
    ) -> None:
        self.logger.warning(
            "permission_denied",
            user_id=user_id,
            company_id=company_id,
            resource_type=resource_type,
            action=action,
        )


class ServiceLogger:
    """
    Service-level logging for business operations.

    Provides consistent logging across service modules.
    """

    def __init__(self, service_name: str):
        self.logger = get_logger(f"service.{service_name}")
        self.service_name = service_name

    def log_operation_start(
        self,
        operation: str,
        company_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Log start of a business operation."""
        self.logger.info(
            f"{operation}_started",
            service=self.service_name,
            company_id=company_id,
            **kwargs,
        )

    def log_operation_complete(
        self,
        operation: str,
        company_id: str | None = None,
        duration_ms: float | None = None,
        **kwargs: Any,
    ) -> None:
        """Log successful completion of an operation."""
        self.logger.info(
            f"{operation}_completed",
            service=self.service_name,
            company_id=company_id,
            duration_ms=round(duration_ms, 2) if duration_ms else None,
            **kwargs,
        )

    def log_operation_failed(
        self,
        operation: str,
        error: Exception,
        company_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Log failed operation with error details."""
        self.logger.error(
            f"{operation}_failed",
            service=self.service_name,
            company_id=company_id,
            error_type=type(error).__name__,
            error_message=str(error),
            **kwargs,
        )

    def log_warning(self, event: str, company_id: str | None = None, **kwargs: Any) -> None:
        """Log a degraded-but-successful outcome."""
        self.logger.warning(
            event,
            service=self.service_name,
            company_id=company_id,
            **kwargs,
        )


# Global logger instances
request_logger = RequestLogger()
audit_logger = AuditLogger()
