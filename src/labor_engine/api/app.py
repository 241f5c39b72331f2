"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from labor_engine.api.routes import (
    compliance_router,
    health_router,
    payroll_router,
    tips_router,
)
from labor_engine.calculators.types import OvertimeConfigError
from labor_engine.compliance.evaluator import EvaluationInvariantError
from labor_engine.compliance.rules import RuleConfigError
from labor_engine.compliance.violations import (
    OverrideConflictError,
    OverrideNotAllowedError,
    OverrideValidationError,
)
from labor_engine.config import settings
from labor_engine.database import dispose_db, init_db
from labor_engine.services import InvalidTransitionError
from labor_engine.services.compliance_service import RuleNotFoundError, ViolationNotFoundError
from labor_engine.services.dispute_service import DisputeNotFoundError
from labor_engine.services.tip_service import TipSplitNotFoundError
from labor_engine.tips.disputes import DisputeError
from labor_engine.tips.distributor import (
    LockConflictError,
    LockValidationError,
    PeriodLockedError,
    TipDistributionError,
)

logger = logging.getLogger(__name__)

# Domain exception -> (HTTP status, error code)
ERROR_MAP: dict[type[Exception], tuple[int, str]] = {
    RuleNotFoundError: (status.HTTP_404_NOT_FOUND, "RULE_NOT_FOUND"),
    ViolationNotFoundError: (status.HTTP_404_NOT_FOUND, "VIOLATION_NOT_FOUND"),
    TipSplitNotFoundError: (status.HTTP_404_NOT_FOUND, "TIP_SPLIT_NOT_FOUND"),
    DisputeNotFoundError: (status.HTTP_404_NOT_FOUND, "DISPUTE_NOT_FOUND"),
    OverrideConflictError: (status.HTTP_409_CONFLICT, "OVERRIDE_CONFLICT"),
    OverrideNotAllowedError: (status.HTTP_409_CONFLICT, "OVERRIDE_NOT_ALLOWED"),
    LockConflictError: (status.HTTP_409_CONFLICT, "LOCK_CONFLICT"),
    PeriodLockedError: (status.HTTP_409_CONFLICT, "PERIOD_LOCKED"),
    InvalidTransitionError: (status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    RuleConfigError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_RULE_CONFIG"),
    OvertimeConfigError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_OVERTIME_RULES"),
    OverrideValidationError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_OVERRIDE"),
    LockValidationError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_LOCK"),
    TipDistributionError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "TIP_DISTRIBUTION_ERROR"),
    DisputeError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_DISPUTE"),
    EvaluationInvariantError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_SCHEDULE"),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a domain exception as {detail, code}."""
    status_code, code = _lookup_error(type(exc))
    if status_code == status.HTTP_409_CONFLICT:
        logger.info("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": code},
    )


def _lookup_error(exc_type: type[Exception]) -> tuple[int, str]:
    for klass in exc_type.__mro__:
        if klass in ERROR_MAP:
            return ERROR_MAP[klass]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Labor Engine API",
        description="Restaurant labor payroll and compliance engine",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    for exc_type in ERROR_MAP:
        app.add_exception_handler(exc_type, domain_error_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(compliance_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")
    app.include_router(tips_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
