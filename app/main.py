# app/main.py

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import schemas
from app.config import Settings
from app.logic import PortfolioService
from app.routes import portfolio, trades
from app.store import PositionStore, TradeLedger, create_stores
from logger import logger


def create_app(
    settings: Optional[Settings] = None,
    ledger: Optional[TradeLedger] = None,
    positions: Optional[PositionStore] = None,
) -> FastAPI:
    """
    Builds the API with its own ledger and position store.

    Stores passed in are used as-is (tests inject them); otherwise they are
    created from `settings`. Either way they are closed on shutdown.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, closing stores.")
        app.state.service.ledger.close()
        app.state.service.positions.close()

    # Initialize FastAPI app
    app = FastAPI(
        title="Day Trading API",
        description="API for recording trades and tracking the resulting portfolio.",
        version="1.0.0",
        lifespan=lifespan
    )

    if ledger is None or positions is None:
        ledger, positions = create_stores(settings)
    app.state.settings = settings
    app.state.service = PortfolioService(ledger, positions)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(content={"error": exc.detail}, status_code=exc.status_code)

    @app.middleware("http")
    async def log_requests_middleware(request: Request, call_next):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {e}", exc_info=True)
            return JSONResponse(content={"error": "Internal Server Error"}, status_code=500)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f} ms)")
        return response

    # Include API routers
    app.include_router(portfolio.router)
    app.include_router(trades.router)

    # Root endpoint
    @app.get("/", response_model=schemas.RootResponse)
    async def root():
        return {
            "message": "Day Trading API is running!",
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        }

    # Health check endpoint
    @app.get("/health", response_model=schemas.HealthResponse, responses={503: {"model": schemas.HealthResponse}})
    def health_check(request: Request):
        ledger = request.app.state.service.ledger
        if ledger.ping():
            return {"status": "healthy", "store": settings.store_backend}
        logger.warning("Health check failed: store did not answer.")
        return JSONResponse(content={"status": "unhealthy", "store": settings.store_backend}, status_code=503)

    return app


app = create_app()
