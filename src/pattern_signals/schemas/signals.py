"""Schemas describing signal analysis requests and responses.

Field names are snake_case in Python and camelCase on the wire; existing
consumers depend on the camelCase names.
"""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pattern_signals.services.signals import DirectionFilter, PatternTypeFilter, Urgency

_CAMEL = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class SignalOut(BaseModel):
    """Scored entry signal."""

    model_config = _CAMEL

    symbol: str = Field(..., description="Instrument the signal was detected on.")
    pattern: str = Field(..., description="Primary pattern kind (HAMMER, DOUBLE_BOTTOM...).")
    confidence: float = Field(
        ..., ge=0.0, le=100.0, description="Combined confidence of the confluence group."
    )
    signal_quality: float = Field(..., ge=0.0, le=100.0, description="Composite quality score.")
    entry_price: float = Field(..., description="Typical price of the anchor candle.")
    target: float = Field(..., description="Profit target.")
    stop_loss: float = Field(..., description="Protective stop.")
    risk_percent: float = Field(..., ge=0.0)
    reward_percent: float = Field(..., ge=0.0)
    risk_reward_ratio: float = Field(..., ge=0.0)
    direction: Literal["LONG", "SHORT"]
    timestamp: str = Field(..., description="Anchor candle start (ISO 8601, UTC).")
    age_minutes: int = Field(..., ge=0)
    urgency: Urgency
    volume: float = Field(..., ge=0.0)
    avg_volume: float = Field(..., ge=0.0)
    volume_ratio: float = Field(..., ge=0.0)
    has_volume_confirmation: bool
    is_chart_pattern: bool
    is_confluence: bool
    confluence_count: int = Field(..., ge=0)
    confluent_patterns: List[str] | None = Field(
        default=None, description="Pattern kinds of the group when it is a confluence."
    )
    is_fresh: bool
    reason: str = ""
    trend: Literal["UPTREND", "DOWNTREND", "NEUTRAL"] | None = None
    adx: float | None = None


class SymbolSignalsResponse(BaseModel):
    """Analysis of a single symbol with its price context."""

    model_config = _CAMEL

    symbol: str
    interval: int = Field(..., description="Candle interval in minutes.")
    total_patterns: int = Field(..., ge=0, description="Number of signals returned.")
    top_quality: float = Field(..., ge=0.0, le=100.0)
    has_confluence: bool
    patterns_detected: int = Field(..., ge=0, description="Raw matches before scoring.")
    candles_analyzed: int = Field(..., ge=0)
    message: str | None = None
    current_price: float | None = None
    price_is_real_time: bool = False
    price_age_minutes: int = Field(0, ge=0)
    price_warning: str | None = Field(default=None, description="Set only when the price is stale.")
    latest_candle_price: float | None = None
    latest_candle_time: str | None = None
    signals: List[SignalOut] = Field(default_factory=list)


class LatestSignalResponse(BaseModel):
    """Most recent qualifying signal for a symbol."""

    model_config = _CAMEL

    symbol: str
    message: str | None = None
    current_price: float | None = None
    price_is_real_time: bool | None = None
    price_age_minutes: int | None = None
    price_warning: str | None = None
    unrealized_pnl: float | None = Field(default=None, alias="unrealizedPnL")
    unrealized_pnl_percent: float | None = Field(default=None, alias="unrealizedPnLPercent")
    latest_pattern: SignalOut | None = None
    is_fresh: bool | None = None
    age_minutes: int | None = None
    recommendation: Literal["CONSIDER_ENTRY", "PATTERN_TOO_OLD"] | None = None


class ScanRequest(BaseModel):
    """Body of the multi-symbol scan endpoint."""

    model_config = _CAMEL

    symbols: List[str] = Field(..., min_length=1, max_length=50)
    interval: int | str = Field(5, description="Candle interval in minutes or an exchange token.")
    min_quality: float = Field(70.0, ge=0.0, le=100.0)
    direction: DirectionFilter = DirectionFilter.LONG
    pattern_type: PatternTypeFilter = PatternTypeFilter.ALL
    enhanced_filters: bool = False
    apply_filters: bool = Field(False, description="Apply the per-tier strength gate.")
    limit: int = Field(10, ge=1, le=50, description="Maximum signals returned per symbol.")

    @field_validator("symbols")
    @classmethod
    def reject_blank_symbols(cls, value: List[str]) -> List[str]:
        cleaned = [symbol.strip() for symbol in value]
        if any(not symbol for symbol in cleaned):
            raise ValueError("symbols cannot contain blank entries")
        return cleaned


class ScanResponse(BaseModel):
    """Outcome of a multi-symbol scan."""

    model_config = _CAMEL

    scanned_symbols: int = Field(..., ge=0, description="Symbols whose analysis completed.")
    patterns_found: int = Field(..., ge=0)
    processing_time_ms: float = Field(..., ge=0.0)
    timed_out: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    results: List[SymbolSignalsResponse] = Field(default_factory=list)


__all__ = [
    "SignalOut",
    "SymbolSignalsResponse",
    "LatestSignalResponse",
    "ScanRequest",
    "ScanResponse",
]
