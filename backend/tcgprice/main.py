"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tcgprice.api import api_router
from tcgprice.core.config import settings
from tcgprice.core.logging import setup_logging
from tcgprice.services.pricing.aggregator import PricingAggregator

# Setup logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Builds the aggregator (queues, cooldowns, cache and exchange rate all
    live on it) at startup and closes its HTTP clients on shutdown.
    """
    logger.info(
        "Starting TCG Price Aggregator API",
        version="1.0.0",
        debug=settings.api_debug,
    )

    aggregator = getattr(app.state, "aggregator", None)
    if aggregator is None:
        aggregator = PricingAggregator.from_settings(settings)
        app.state.aggregator = aggregator

    missing = [f.source_id for f in aggregator.fetchers if not f.is_configured]
    if missing:
        logger.warning("Pricing sources without API keys will report N/A", sources=missing)

    yield

    logger.info("Shutting down TCG Price Aggregator API")
    await aggregator.close()


def create_app(aggregator: PricingAggregator | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        aggregator: Pre-built aggregator, mainly for tests. When omitted one
            is created from settings at startup.
    """
    application = FastAPI(
        title=settings.app_name,
        description="Trading card price aggregation across catalog, community and sold-listing sources",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    if aggregator is not None:
        application.state.aggregator = aggregator

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        logger.debug(
            "Request",
            method=request.method,
            path=request.url.path,
        )
        response = await call_next(request)
        logger.debug(
            "Response",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
        )
        return response

    application.include_router(api_router, prefix="/api")
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tcgprice.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
