"""
FastAPI dependencies for the record store, session context and services.
"""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from repair_estimator.config.settings import Settings, get_settings
from repair_estimator.models.user import SessionContext, StaticSessionProvider, UserRole
from repair_estimator.services.pricing.engine import PricingEngine
from repair_estimator.services.workflow.workflow_service import WorkflowService
from repair_estimator.store.base import RecordStore


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes from clients as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def get_app_settings() -> Settings:
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_record_store(request: Request) -> RecordStore:
    """Record store opened by the application lifespan."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Record store not initialized",
        )
    return store


StoreDep = Annotated[RecordStore, Depends(get_record_store)]


async def get_session_context(
    x_company_id: Annotated[str, Header()],
    x_user_id: Annotated[str, Header()],
    x_store_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[UserRole, Header()] = UserRole.ASSOCIATE,
) -> SessionContext:
    """
    Session context from gateway-supplied headers.

    Authentication happens upstream; the gateway forwards the verified
    company, store, user and role.
    """
    return SessionContext(
        company_id=x_company_id,
        store_id=x_store_id,
        user_id=x_user_id,
        role=x_user_role,
    )


SessionDep = Annotated[SessionContext, Depends(get_session_context)]


def get_pricing_engine(store: StoreDep, app_settings: SettingsDep) -> PricingEngine:
    return PricingEngine(store, app_settings)


PricingEngineDep = Annotated[PricingEngine, Depends(get_pricing_engine)]


def get_workflow_service(
    store: StoreDep,
    session: SessionDep,
    app_settings: SettingsDep,
) -> WorkflowService:
    return WorkflowService(store, StaticSessionProvider(session), app_settings)


WorkflowDep = Annotated[WorkflowService, Depends(get_workflow_service)]
