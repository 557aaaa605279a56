"""Routes exposing scored pattern signals."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request

from pattern_signals.routes.auth import require_token
from pattern_signals.schemas.signals import (
    LatestSignalResponse,
    ScanRequest,
    ScanResponse,
    SignalOut,
    SymbolSignalsResponse,
)
from pattern_signals.services.scanner import SignalScanner
from pattern_signals.services.signals import (
    Direction,
    DirectionFilter,
    PatternTypeFilter,
    ScoringConfig,
)
from pattern_signals.utils.intervals import parse_interval
from pattern_signals.utils.logging import set_request_metadata
from pattern_signals.utils.symbols import clean_symbol

router = APIRouter(
    prefix="/api/v1/signals",
    tags=["signals"],
    dependencies=[Depends(require_token)],
)


def get_scanner(request: Request) -> SignalScanner:
    """Return the scanner stored on the application state."""
    return request.app.state.scanner


def _as_of(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.get(
    "",
    response_model=SymbolSignalsResponse,
    response_model_exclude_none=True,
    summary="Analyse one symbol",
    description=(
        "Detect candlestick and chart patterns, group co-anchored matches and return the"
        " scored entry signals, newest first, with the current price context."
    ),
    response_description="Ranked signals and price context.",
)
def list_signals(
    symbol: str = Query(..., min_length=1, max_length=20),
    interval: str = Query("5", description="Interval in minutes (1, 2, 3, 5, 10, 15, 30, 60)."),
    min_quality: float = Query(60.0, ge=0.0, le=100.0, alias="minQuality"),
    direction: DirectionFilter = Query(DirectionFilter.ALL),
    pattern_type: PatternTypeFilter = Query(PatternTypeFilter.ALL, alias="patternType"),
    enhanced_filters: bool = Query(False, alias="enhancedFilters"),
    apply_filters: bool = Query(True, alias="applyFilters"),
    limit: int = Query(10, ge=1, le=50),
    as_of: datetime | None = Query(None, alias="asOf"),
    scanner: SignalScanner = Depends(get_scanner),
) -> SymbolSignalsResponse:
    """Return the signals for ``symbol`` as of now or ``asOf``."""
    cleaned = clean_symbol(symbol)
    minutes = parse_interval(interval)
    set_request_metadata(symbol=cleaned, interval=minutes)
    config = ScoringConfig(
        interval_minutes=minutes,
        as_of=_as_of(as_of),
        min_quality=min_quality,
        direction=direction,
        pattern_type=pattern_type,
        enhanced_filters=enhanced_filters,
        apply_strength_gate=apply_filters,
    )
    analysis = scanner.analyze_symbol(cleaned, config, limit)
    return SymbolSignalsResponse.model_validate(analysis.to_payload())


@router.get(
    "/latest",
    response_model=LatestSignalResponse,
    response_model_exclude_none=True,
    summary="Latest signal for one symbol",
    description="Return the most recent qualifying signal with its unrealized P&L.",
    response_description="Latest signal and entry recommendation.",
)
def latest_signal(
    symbol: str = Query(..., min_length=1, max_length=20),
    interval: str = Query("5"),
    min_quality: float = Query(70.0, ge=0.0, le=100.0, alias="minQuality"),
    direction: DirectionFilter = Query(DirectionFilter.LONG),
    pattern_type: PatternTypeFilter = Query(PatternTypeFilter.ALL, alias="patternType"),
    scanner: SignalScanner = Depends(get_scanner),
) -> LatestSignalResponse:
    """Return the newest signal passing the strength gate."""
    cleaned = clean_symbol(symbol)
    minutes = parse_interval(interval)
    set_request_metadata(symbol=cleaned, interval=minutes)
    config = ScoringConfig(
        interval_minutes=minutes,
        as_of=datetime.now(timezone.utc),
        min_quality=min_quality,
        direction=direction,
        pattern_type=pattern_type,
        apply_strength_gate=True,
    )
    analysis = scanner.analyze_symbol(cleaned, config, limit=1)
    price = analysis.price
    if not analysis.signals:
        return LatestSignalResponse(
            symbol=cleaned,
            message="No patterns found",
            current_price=price.current_price if price else None,
        )

    signal = analysis.signals[0]
    response = LatestSignalResponse(
        symbol=cleaned,
        latest_pattern=SignalOut.model_validate(signal.to_payload()),
        is_fresh=signal.is_fresh,
        age_minutes=signal.age_minutes,
        recommendation="CONSIDER_ENTRY" if signal.is_fresh else "PATTERN_TOO_OLD",
    )
    if price is not None and price.current_price is not None:
        pnl = price.current_price - signal.entry_price
        if signal.direction is Direction.SHORT:
            pnl = -pnl
        response.current_price = price.current_price
        response.price_is_real_time = price.price_is_realtime
        response.price_age_minutes = price.price_age_minutes
        response.price_warning = price.price_warning
        response.unrealized_pnl = pnl
        response.unrealized_pnl_percent = pnl / signal.entry_price * 100
    return response


@router.post(
    "/scan",
    response_model=ScanResponse,
    response_model_exclude_none=True,
    summary="Scan several symbols",
    description=(
        "Analyse up to 50 symbols concurrently. Symbols still running at the deadline are"
        " reported under timedOut, symbols whose analysis failed under failed."
    ),
    response_description="Per-symbol analyses and scan totals.",
)
async def scan_signals(
    payload: ScanRequest,
    scanner: SignalScanner = Depends(get_scanner),
) -> ScanResponse:
    """Run the multi-symbol scanner."""
    symbols = [clean_symbol(symbol) for symbol in payload.symbols]
    minutes = parse_interval(payload.interval)
    set_request_metadata(interval=minutes)
    config = ScoringConfig(
        interval_minutes=minutes,
        as_of=datetime.now(timezone.utc),
        min_quality=payload.min_quality,
        direction=payload.direction,
        pattern_type=payload.pattern_type,
        enhanced_filters=payload.enhanced_filters,
        apply_strength_gate=payload.apply_filters,
    )
    result = await scanner.scan(symbols, config, payload.limit)
    return ScanResponse.model_validate(result.to_payload())


__all__ = ["router", "list_signals", "latest_signal", "scan_signals"]
