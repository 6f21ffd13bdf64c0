"""FastAPI application for the paper brokerage ledger."""

import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config.logging import get_logger
from ..events import get_event_bus, register_audit_handlers
from ..ormdb.database import create_tables
from .dependencies import verify_auth_token
from .exceptions import setup_exception_handlers
from .health import router as health_router
from .models.responses import StatusResponse
from .routers import (
    admin_router,
    funding_router,
    portfolio_router,
    trades_router,
    wallet_router,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and wire audit logging before serving requests."""
    logger.info("Starting paper brokerage API")

    try:
        create_tables()
        event_bus = get_event_bus()
        register_audit_handlers(event_bus)
        logger.info("Event system initialized", event_bus_name=event_bus.name)
    except Exception as e:
        logger.error("Failed to initialize application", error=str(e), exc_info=True)
        raise RuntimeError(f"Application initialization failed: {str(e)}")

    logger.info("Paper brokerage API started successfully")

    yield

    logger.info("Paper brokerage API shutdown completed")


async def add_request_id_middleware(request: Request, call_next):
    """Add unique request ID to each request for tracking."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    logger.info(
        "Request started",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        query_params=str(request.query_params),
        user_id=request.headers.get("x-user-id"),
        remote_addr=request.client.host if request.client else None,
    )

    response = await call_next(request)

    # Add request ID to response headers
    response.headers["X-Request-ID"] = request_id

    logger.info(
        "Request completed",
        request_id=request_id,
        status_code=response.status_code,
        method=request.method,
        path=request.url.path,
    )

    return response


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Paper Brokerage API",
        description="""
        Simulated brokerage: wallets, an append-only cash ledger, portfolio
        holdings with average cost basis, trade settlement and
        admin-mediated funding requests.

        Authenticate with `Authorization: Bearer <token>` and name the acting
        account in the `X-User-Id` header. `/admin` routes require the admin
        role.
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Add middleware for request tracking
    app.middleware("http")(add_request_id_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(health_router, tags=["Health & Status"])
    app.include_router(wallet_router, prefix="/wallet", tags=["Wallet"])
    app.include_router(portfolio_router, prefix="/portfolio", tags=["Portfolio"])
    app.include_router(trades_router, prefix="/trades", tags=["Trades"])
    app.include_router(
        funding_router, prefix="/funding-requests", tags=["Funding Requests"]
    )
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get(
        "/status",
        response_model=StatusResponse,
        summary="API Status",
        description="API version and event bus statistics",
    )
    async def api_status(
        request: Request, token: str = Depends(verify_auth_token)
    ) -> StatusResponse:
        request_id = request.state.request_id

        try:
            event_stats = get_event_bus().get_statistics()
            event_status = "operational"
        except Exception as e:
            event_stats = {"error": str(e)}
            event_status = "error"

        return StatusResponse.create(
            data={
                "api_version": __version__,
                "status": "operational",
                "event_bus": {"status": event_status, "statistics": event_stats},
            },
            request_id=request_id,
        )

    logger.info("FastAPI application created")
    return app


# Create the app instance
app = create_app()
