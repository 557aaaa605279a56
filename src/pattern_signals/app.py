"""FastAPI application factory for pattern_signals."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse

from pattern_signals import __version__
from pattern_signals.config import get_settings
from pattern_signals.routes import candles, health, metrics, signals
from pattern_signals.services.data_providers.base import MarketDataProvider
from pattern_signals.services.data_providers.ccxt_provider import CcxtDataProvider
from pattern_signals.services.data_providers.tick_store import TickStoreProvider
from pattern_signals.services.pipeline import AnalysisPipeline
from pattern_signals.services.scanner import SignalScanner
from pattern_signals.utils.errors import (
    ApiError,
    api_error_handler,
    http_exception_handler,
    request_validation_exception_handler,
    unexpected_exception_handler,
)
from pattern_signals.utils.logging import configure_logging, logging_middleware

OPENAPI_TAGS: list[dict[str, str]] = [
    {
        "name": "health",
        "description": "Monitoring endpoints exposing uptime and build metadata.",
    },
    {
        "name": "signals",
        "description": "Pattern detection, confluence grouping and scored entry signals.",
    },
    {
        "name": "candles",
        "description": "Timezone-correct aggregation of raw ticks into OHLCV candles.",
    },
]


def create_app() -> FastAPI:
    """Instantiate FastAPI application with configured routes and services."""
    configure_logging()
    settings = get_settings()
    app = FastAPI(
        title="pattern-signals",
        description=(
            "Candlestick and chart pattern signals with risk, reward, quality and urgency"
            " scoring over candles rebuilt from raw ticks."
        ),
        version=__version__,
        default_response_class=ORJSONResponse,
        openapi_tags=OPENAPI_TAGS,
    )
    allowed_origins = list(settings.allowed_origins)
    if not allowed_origins:
        if settings.playwright_mode:
            # Development and test runs may omit ALLOWED_ORIGINS.
            allowed_origins = ["http://localhost:3000"]
        else:
            raise RuntimeError(
                "ALLOWED_ORIGINS must define at least one origin for production deployments"
            )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.middleware("http")(logging_middleware)

    # Development mode serves ticks pushed into memory instead of a live exchange.
    provider: MarketDataProvider = (
        TickStoreProvider() if settings.playwright_mode else CcxtDataProvider()
    )
    pipeline = AnalysisPipeline(min_candles=settings.min_candles)
    scanner = SignalScanner(
        provider,
        pipeline,
        max_workers=settings.scan_max_workers,
        timeout_seconds=settings.scan_timeout_seconds,
        lookback_hours=settings.lookback_hours,
    )
    app.state.provider = provider
    app.state.pipeline = pipeline
    app.state.scanner = scanner

    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(signals.router)
    app.include_router(candles.router)

    app.add_exception_handler(Exception, unexpected_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    return app


app = create_app()
