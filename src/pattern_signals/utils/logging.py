"""Structured logging utilities leveraging loguru.

Downstream dashboards rely on structured logs exposing both transport
metadata (request identifier) and domain context (stage, symbol, candle
interval, latency). This module configures loguru accordingly and offers
helpers so routes and services enrich the context in a disciplined manner.
"""

from __future__ import annotations

import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator

from fastapi import Request, Response
from loguru import logger

from pattern_signals.config import get_settings


@dataclass
class RequestLogContext:
    """State carried across the lifecycle of a request for logging.

    Attributes
    ----------
    symbol:
        Instrument currently being processed (``AAPL``, ``BTC/USDT``...).
        Populated by routes once the request payload is validated.
    interval:
        Candle interval in minutes associated with the request.
    stage:
        Name of the pipeline stage currently executing. ``None`` until the
        :func:`log_stage` context manager is entered.
    stage_started_at:
        ``time.perf_counter`` value recorded when the active stage began.

    """

    symbol: str | None = None
    interval: int | None = None
    stage: str | None = None
    stage_started_at: float | None = None


_TRACE_ID: ContextVar[str] = ContextVar("trace_id", default="unknown")
_REQUEST_CONTEXT: ContextVar[RequestLogContext | None] = ContextVar("request_context", default=None)


def configure_logging() -> None:
    """Configure loguru to output JSON logs with a trace identifier."""
    settings = get_settings()
    logger.remove()
    logger.add(sys.stdout, level=settings.log_level.upper(), serialize=True)


def get_trace_id() -> str:
    """Return the current request trace identifier."""
    return _TRACE_ID.get()


def get_request_context() -> RequestLogContext:
    """Return the current structured logging context."""
    context = _REQUEST_CONTEXT.get()
    if context is None:
        context = RequestLogContext()
        _REQUEST_CONTEXT.set(context)
    return context


def set_request_metadata(*, symbol: str | None = None, interval: int | None = None) -> None:
    """Enrich the structured context with symbol and interval information."""
    context = get_request_context()
    if symbol is not None:
        context.symbol = symbol
    if interval is not None:
        context.interval = interval


def start_request_context(*, symbol: str | None = None, interval: int | None = None) -> RequestLogContext:
    """Install a fresh context in the current (copied) context, keeping the trace id.

    Worker threads of a scan each run inside their own ``contextvars`` copy so
    the symbol they process never leaks into a sibling's log records.
    """
    context = RequestLogContext(symbol=symbol, interval=interval)
    _REQUEST_CONTEXT.set(context)
    return context


def _elapsed_ms(context: RequestLogContext) -> float:
    if context.stage_started_at is None:
        return 0.0
    return (time.perf_counter() - context.stage_started_at) * 1000


@contextmanager
def log_stage(stage: str) -> Iterator[None]:
    """Context manager logging stage completion/failure with latency."""
    context = get_request_context()
    previous_stage = context.stage
    previous_started_at = context.stage_started_at
    context.stage = stage
    context.stage_started_at = time.perf_counter()
    try:
        yield
    except Exception:
        logger.bind(
            trace_id=get_trace_id(),
            stage=stage,
            latency_ms=_elapsed_ms(context),
            symbol=context.symbol,
            interval=context.interval,
        ).exception("stage.failed")
        raise
    else:
        logger.bind(
            trace_id=get_trace_id(),
            stage=stage,
            latency_ms=_elapsed_ms(context),
            symbol=context.symbol,
            interval=context.interval,
        ).info("stage.completed")
    finally:
        context.stage = previous_stage
        context.stage_started_at = previous_started_at


async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """FastAPI middleware injecting a trace identifier into logging context."""
    trace_id = request.headers.get("x-trace-id", str(uuid.uuid4()))
    trace_token = _TRACE_ID.set(trace_id)
    context_token = _REQUEST_CONTEXT.set(RequestLogContext())
    start = time.perf_counter()
    response: Response | None = None
    try:
        response = await call_next(request)
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        status_code = response.status_code if response is not None else 500
        context = get_request_context()
        # Only method, path, status and duration are logged so that headers such
        # as ``Authorization`` never reach the log sink.
        logger.bind(
            path=request.url.path,
            method=request.method,
            status_code=status_code,
            latency_ms=duration_ms,
            trace_id=trace_id,
            stage=context.stage or "request",
            symbol=context.symbol,
            interval=context.interval,
        ).info("request.completed")
        _TRACE_ID.reset(trace_token)
        _REQUEST_CONTEXT.reset(context_token)
    if response is None:
        raise RuntimeError("Downstream middleware returned no response object")
    response.headers["X-Trace-Id"] = trace_id
    return response


__all__ = [
    "RequestLogContext",
    "configure_logging",
    "get_trace_id",
    "get_request_context",
    "set_request_metadata",
    "start_request_context",
    "log_stage",
    "logging_middleware",
]
