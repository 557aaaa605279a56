"""Schemas for the tick to candle aggregation endpoint."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_CAMEL = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class TickIn(BaseModel):
    """Trade recorded with a wall-clock timestamp in the tick zone."""

    model_config = _CAMEL

    timestamp: str = Field(
        ...,
        min_length=19,
        max_length=19,
        description="Local wall clock formatted as YYYY-MM-DD HH:MM:SS.",
    )
    price: float = Field(..., gt=0.0, description="Traded price.")


class VolumeIn(BaseModel):
    """Volume for an interval whose start encodes a volume-zone wall clock."""

    model_config = _CAMEL

    interval_start_epoch: int = Field(
        ..., description="Epoch whose UTC calendar fields are the volume-zone local start."
    )
    volume: float = Field(..., ge=0.0)


class BuildCandlesRequest(BaseModel):
    """Ticks and volumes to aggregate."""

    model_config = _CAMEL

    ticks: List[TickIn] = Field(..., max_length=200_000)
    volumes: List[VolumeIn] = Field(default_factory=list, max_length=50_000)
    interval: int | str = Field(5, description="Candle interval in minutes or an exchange token.")
    tick_timezone: str | None = Field(default=None, description="Overrides TICK_TIMEZONE.")
    volume_timezone: str | None = Field(default=None, description="Overrides VOLUME_TIMEZONE.")


class CandleOut(BaseModel):
    """Aggregated OHLCV candle."""

    model_config = _CAMEL

    ts: int = Field(..., description="Interval start in UTC epoch seconds.")
    timestamp: str = Field(..., description="Interval start (ISO 8601, UTC).")
    open: float
    high: float
    low: float
    close: float
    volume: float = Field(..., ge=0.0)


class BuildCandlesResponse(BaseModel):
    """Candles sorted by interval start."""

    model_config = _CAMEL

    interval: int
    count: int = Field(..., ge=0)
    candles: List[CandleOut]


__all__ = ["TickIn", "VolumeIn", "BuildCandlesRequest", "CandleOut", "BuildCandlesResponse"]
