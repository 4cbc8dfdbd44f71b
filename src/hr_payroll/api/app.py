"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hr_payroll import __version__
from hr_payroll.api.dependencies import get_rate_provider
from hr_payroll.api.routes import currency_router, health_router, payroll_router
from hr_payroll.calculators.currency import CompanyNotFoundError, RateUnavailableError
from hr_payroll.database import PersistenceError, create_tables, dispose_db, init_db
from hr_payroll.services.payroll_processor import PeriodExistsError, PeriodNotFoundError
from hr_payroll.services.state_machine import InvalidStateError

logger = logging.getLogger(__name__)

# Domain exception -> (HTTP status, error code)
ERROR_STATUS: dict[type[Exception], tuple[int, str]] = {
    InvalidStateError: (status.HTTP_409_CONFLICT, "INVALID_STATE"),
    PeriodExistsError: (status.HTTP_409_CONFLICT, "PERIOD_EXISTS"),
    PeriodNotFoundError: (status.HTTP_404_NOT_FOUND, "PERIOD_NOT_FOUND"),
    CompanyNotFoundError: (status.HTTP_404_NOT_FOUND, "COMPANY_NOT_FOUND"),
    RateUnavailableError: (status.HTTP_503_SERVICE_UNAVAILABLE, "RATE_UNAVAILABLE"),
    PersistenceError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "PERSISTENCE_ERROR"),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    engine, _ = init_db()
    await create_tables(engine)
    yield
    # Shutdown
    await get_rate_provider().aclose()
    get_rate_provider.cache_clear()
    await dispose_db()


def _error_context(exc: Exception) -> dict[str, str]:
    return {
        key: str(value)
        for key, value in vars(exc).items()
        if not key.startswith("_") and key != "cause"
    }


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="HR Payroll API",
        description="Multi-currency monthly payroll engine",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Map domain exceptions to HTTP responses."""
        status_code, code = next(
            mapped for exc_class, mapped in ERROR_STATUS.items() if isinstance(exc, exc_class)
        )
        if status_code >= 500:
            logger.error("%s on %s %s: %s", code, request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": code, "context": _error_context(exc)},
        )

    for exc_class in ERROR_STATUS:
        app.add_exception_handler(exc_class, domain_exception_handler)

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
    app.include_router(payroll_router, prefix="/api/v1")
    app.include_router(currency_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
