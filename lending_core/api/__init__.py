"""
Lending API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .products import router as products_router
from .loans import router as loans_router
from .calendars import router as calendars_router
from ..exceptions import (
    LendingError, ValidationError, InvalidTransitionError, NotFoundError,
    ConcurrencyConflictError, TransientError
)
from ..logging_config import get_logger


logger = get_logger("lending.api")

ERROR_STATUS_CODES = (
    (ValidationError, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
    (TransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_code_for(exc: LendingError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}")
    return JSONResponse(status_code=status_code, content=exc.to_payload())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Lending Core API",
        description="Loan application validation, repayment schedules and loan lifecycle",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LendingError, lending_error_handler)

    app.include_router(products_router, prefix="/loanproducts", tags=["Loan Products"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(calendars_router, prefix="/groups", tags=["Group Calendars"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "lending_core_api",
            "version": "1.0.0"
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8091, debug: bool = False, workers: int = 1):
    """Run the FastAPI server"""
    uvicorn.run(
        "lending_core.api:app",
        host=host,
        port=port,
        reload=debug,
        workers=None if debug else workers,
        log_level="info"
    )
