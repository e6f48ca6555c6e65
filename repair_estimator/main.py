"""
Repair Price Estimator - Main Application

FastAPI application exposing:
- Counter pricing for repairs and appraisals
- Quote workflow: creation, line pricing, status transitions, work queues
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from repair_estimator.api.routes import pricing, quotes
from repair_estimator.config.settings import Settings, get_settings
from repair_estimator.database.base import Database
from repair_estimator.exceptions import RepairEstimatorError
from repair_estimator.store.base import RecordStore
from repair_estimator.store.memory import InMemoryRecordStore
from repair_estimator.store.sql import SQLRecordStore
from repair_estimator.utils.logging import get_logger, request_logger, setup_logging

logger = get_logger(__name__)


async def open_record_store(app_settings: Settings) -> RecordStore:
    """Open the configured record store backend."""
    if app_settings.store.backend == "sql":
        database = Database.from_settings(app_settings.database, echo=app_settings.debug)
        await database.init()
        logger.info("SQL record store initialized")
        return SQLRecordStore(database)
    logger.info("In-memory record store initialized")
    return InMemoryRecordStore()


def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(app_settings)
        logger.info("Starting Repair Price Estimator", version=app_settings.app_version)
        if getattr(app.state, "store", None) is None:
            app.state.store = await open_record_store(app_settings)

        yield

        logger.info("Shutting down Repair Price Estimator")
        await app.state.store.close()

    app = FastAPI(
        title=app_settings.app_name,
        description="""
## Repair Price Estimator API

Pricing and quote workflow for a retail jewelry and watch repair counter.

### Session context

Authentication happens at the gateway. Every request carries the verified
context in headers: `X-Company-Id`, `X-User-Id`, optional `X-Store-Id`, and
`X-User-Role`.
        """,
        version=app_settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if app_settings.debug else None,
        redoc_url="/api/redoc" if app_settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing."""
        start_time = time.time()
        company_id = request.headers.get("x-company-id")
        user_id = request.headers.get("x-user-id")

        request_logger.log_request(
            method=request.method,
            path=request.url.path,
            company_id=company_id,
            user_id=user_id,
        )

        response = await call_next(request)

        request_logger.log_response(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=(time.time() - start_time) * 1000,
            company_id=company_id,
            user_id=user_id,
        )
        return response

    @app.exception_handler(RepairEstimatorError)
    async def domain_exception_handler(request: Request, exc: RepairEstimatorError):
        """Render business errors with their own status code."""
        if exc.status_code >= 500:
            logger.warning(
                "Service error",
                error_type=type(exc).__name__,
                error_message=exc.message,
                path=request.url.path,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors with detailed messages."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Validation error",
                "errors": jsonable_errors(exc),
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors."""
        logger.error(
            "Unhandled exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected error occurred"},
        )

    app.include_router(pricing.router, prefix=f"{app_settings.api_prefix}/pricing", tags=["Pricing"])
    app.include_router(quotes.router, prefix=f"{app_settings.api_prefix}/quotes", tags=["Quotes"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """System health check endpoint."""
        return {
            "status": "healthy",
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "store_backend": app_settings.store.backend,
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


app = create_app()


def run() -> None:
    import uvicorn

    app_settings = get_settings()
    uvicorn.run(
        "repair_estimator.main:app",
        host=app_settings.host,
        port=app_settings.port,
        reload=app_settings.debug,
        workers=app_settings.workers if not app_settings.debug else 1,
    )


if __name__ == "__main__":
    run()
