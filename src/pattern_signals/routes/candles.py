"""Route aggregating raw ticks into OHLCV candles."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from pattern_signals.routes.auth import require_token
from pattern_signals.schemas.candles import BuildCandlesRequest, BuildCandlesResponse, CandleOut
from pattern_signals.services.candles import Tick, VolumeRecord, build_candles
from pattern_signals.utils.intervals import parse_interval
from pattern_signals.utils.logging import log_stage, set_request_metadata

router = APIRouter(
    prefix="/api/v1/candles",
    tags=["candles"],
    dependencies=[Depends(require_token)],
)


@router.post(
    "/build",
    response_model=BuildCandlesResponse,
    summary="Aggregate ticks into candles",
    description=(
        "Bucket tick prices recorded in the tick timezone into UTC interval candles and join"
        " the volume records recorded in the volume timezone."
    ),
    response_description="Candles sorted by interval start.",
)
def build(payload: BuildCandlesRequest) -> BuildCandlesResponse:
    """Aggregate the submitted ticks and volumes."""
    minutes = parse_interval(payload.interval)
    set_request_metadata(interval=minutes)
    with log_stage("candles"):
        candles = build_candles(
            [Tick(timestamp_local=tick.timestamp, price=tick.price) for tick in payload.ticks],
            [
                VolumeRecord(interval_start_epoch=record.interval_start_epoch, volume=record.volume)
                for record in payload.volumes
            ],
            minutes,
            tick_zone=payload.tick_timezone,
            volume_zone=payload.volume_timezone,
        )
    return BuildCandlesResponse(
        interval=minutes,
        count=len(candles),
        candles=[
            CandleOut(
                ts=candle.ts,
                timestamp=candle.timestamp.isoformat().replace("+00:00", "Z"),
                open=candle.open,
                high=candle.high,
                low=candle.low,
                close=candle.close,
                volume=candle.volume,
            )
            for candle in candles
        ],
    )


__all__ = ["router", "build"]
