"""FastAPI application for the Ledger Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from libs.common.arq_config import close_pool
from libs.common.logging import configure_logging, get_logger
from services.ledger_service.errors import (
    DomainConflict,
    InsufficientBalance,
    InsufficientInventory,
    InsufficientLockedFunds,
    InvalidArgument,
    LedgerError,
    NotFound,
    ProvenanceViolation,
    RiskBlocked,
)
from services.ledger_service.routers.admin import router as admin_router
from services.ledger_service.routers.internal import router as internal_router

logger = get_logger(__name__)

# Most specific first; the first isinstance match wins.
ERROR_STATUS = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (RiskBlocked, status.HTTP_403_FORBIDDEN),
    (ProvenanceViolation, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidArgument, status.HTTP_400_BAD_REQUEST),
    (InsufficientBalance, status.HTTP_409_CONFLICT),
    (InsufficientLockedFunds, status.HTTP_409_CONFLICT),
    (InsufficientInventory, status.HTTP_409_CONFLICT),
    (DomainConflict, status.HTTP_409_CONFLICT),
)


def status_for(exc: LedgerError) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "%s %s -> %d %s: %s",
        request.method,
        request.url.path,
        status_code,
        type(exc).__name__,
        exc.message,
    )
    body = exc.to_dict()
    if isinstance(exc, RiskBlocked):
        body["user_message"] = exc.user_message
    return JSONResponse(status_code=status_code, content=body)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_pool()


def create_app() -> FastAPI:
    """Create and configure the Ledger Service FastAPI app."""
    configure_logging()
    app = FastAPI(
        lifespan=lifespan,
        title="Ledger Service",
        version="0.1.0",
        description=(
            "Wallet ledger, inventory allocation, bonus engine, profit share "
            "and risk gate."
        ),
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "ledger"}

    # Admin routes
    # Gateway: /api/v1/admin/ledger/{path} → /admin/ledger/{path}
    app.include_router(admin_router)

    # Internal service-to-service routes (not proxied by gateway)
    app.include_router(internal_router)

    return app


app = create_app()
