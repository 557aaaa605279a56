"""Tick to candle aggregation with timezone-correct interval bucketing.

Raw ticks carry a wall-clock string recorded in the tick zone
(``Asia/Jerusalem`` by default) whereas volume records encode a local time of
the volume zone (``America/New_York``) inside an epoch value. The aggregator
normalises both sides to UTC interval starts and joins them:

* every tick is parsed in the tick zone, converted to UTC and truncated to the
  interval with ``floor(epoch / step) * step``;
* ticks are sorted once by their UTC instant (stable, so arrival order breaks
  ties) and partitioned per bucket;
* open/close are the first/last price of a bucket, high/low its extremes;
* volume epochs are reinterpreted (see :func:`reinterpret_epoch`) and joined
  on the same bucket key, defaulting to ``0.0`` when no record matches.

The resulting candles are sorted ascending by interval start and never
contain duplicates. The functions are pure: identical inputs always produce
identical outputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from pattern_signals.config import get_settings
from pattern_signals.utils.errors import BadRequest
from pattern_signals.utils.intervals import parse_interval, truncate_epoch
from pattern_signals.utils.timezones import local_to_epoch, reinterpret_epoch, to_utc_datetime

#: Candles whose range is below this value are considered noise by detectors.
MIN_CANDLE_RANGE = 0.05


@dataclass(frozen=True)
class Tick:
    """Single traded price with its origin-zone wall-clock timestamp."""

    timestamp_local: str
    price: float


@dataclass(frozen=True)
class VolumeRecord:
    """Traded volume for an interval whose start is encoded in the volume zone."""

    interval_start_epoch: int
    volume: float


@dataclass(frozen=True)
class Candle:
    """OHLCV bar covering ``[ts, ts + interval_minutes * 60)`` in UTC.

    Attributes
    ----------
    ts:
        Interval start as UTC epoch seconds (inclusive).
    open / high / low / close:
        Prices satisfying ``low <= min(open, close) <= max(open, close) <= high``.
    volume:
        Traded volume, ``0.0`` when the volume source had no record.
    interval_minutes:
        Width of the bar in minutes.

    The read-only properties expose the candle geometry used by the pattern
    detectors (body, shadows and their share of the full range).
    """

    ts: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    interval_minutes: int

    @property
    def timestamp(self) -> datetime:
        return to_utc_datetime(self.ts)

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body_top(self) -> float:
        return max(self.open, self.close)

    @property
    def body_bottom(self) -> float:
        return min(self.open, self.close)

    @property
    def upper_shadow(self) -> float:
        return self.high - self.body_top

    @property
    def lower_shadow(self) -> float:
        return self.body_bottom - self.low

    @property
    def body_pct(self) -> float:
        """Body size as a percentage of the full range (``0`` for flat candles)."""
        return self.body / self.range * 100 if self.range > 0 else 0.0

    @property
    def upper_shadow_pct(self) -> float:
        return self.upper_shadow / self.range * 100 if self.range > 0 else 0.0

    @property
    def lower_shadow_pct(self) -> float:
        return self.lower_shadow / self.range * 100 if self.range > 0 else 0.0

    @property
    def midpoint(self) -> float:
        """Middle of the real body."""
        return (self.open + self.close) / 2

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def is_doji(self) -> bool:
        """Body smaller than 10 % of the range."""
        return self.range > 0 and self.body / self.range < 0.1


def _volume_map(
    volumes: Iterable[VolumeRecord], interval_minutes: int, zone: str
) -> Dict[int, float]:
    """Return volumes keyed by UTC bucket start; the last record wins on collisions."""
    volume_by_bucket: Dict[int, float] = {}
    for record in volumes:
        actual_utc = reinterpret_epoch(record.interval_start_epoch, zone)
        volume_by_bucket[truncate_epoch(actual_utc, interval_minutes)] = float(record.volume)
    return volume_by_bucket


def build_candles(
    ticks: Sequence[Tick],
    volumes: Sequence[VolumeRecord] | None,
    interval_minutes: int,
    *,
    tick_zone: str | None = None,
    volume_zone: str | None = None,
) -> List[Candle]:
    """Aggregate ``ticks`` into OHLCV candles joined with ``volumes``.

    Parameters
    ----------
    ticks:
        Trades with wall-clock timestamps in ``tick_zone``. An empty sequence
        yields an empty list.
    volumes:
        Per-interval volume records; may be empty or ``None``.
    interval_minutes:
        Candle width, one of :data:`SUPPORTED_INTERVALS`.
    tick_zone / volume_zone:
        Override the configured ``TICK_TIMEZONE`` / ``VOLUME_TIMEZONE``.

    Raises
    ------
    BadRequest
        When the interval is unsupported or a tick timestamp cannot be parsed.
    """
    interval = parse_interval(interval_minutes)
    if not ticks:
        logger.warning("candles.empty_input")
        return []
    settings = get_settings()
    tick_zone = tick_zone or settings.tick_timezone
    volume_zone = volume_zone or settings.volume_timezone

    frame = pd.DataFrame(
        {
            "epoch": [local_to_epoch(tick.timestamp_local, tick_zone) for tick in ticks],
            "price": [float(tick.price) for tick in ticks],
        }
    )
    if not np.isfinite(frame["price"]).all():
        raise BadRequest("Tick prices must be finite numbers")
    frame = frame.sort_values("epoch", kind="stable")
    frame["bucket"] = (frame["epoch"] // (interval * 60)) * (interval * 60)
    grouped = frame.groupby("bucket", sort=True)["price"].agg(["first", "max", "min", "last"])

    volume_by_bucket = _volume_map(volumes or (), interval, volume_zone)
    candles = [
        Candle(
            ts=int(bucket),
            open=float(row["first"]),
            high=float(row["max"]),
            low=float(row["min"]),
            close=float(row["last"]),
            volume=volume_by_bucket.get(int(bucket), 0.0),
            interval_minutes=interval,
        )
        for bucket, row in grouped.iterrows()
    ]
    logger.bind(ticks=len(ticks), candles=len(candles), interval=interval).info("candles.built")
    return candles


def average_body(candles: Sequence[Candle]) -> float:
    """Mean real-body size, ``0.0`` for an empty sequence."""
    if not candles:
        return 0.0
    return float(np.mean([candle.body for candle in candles]))


def average_range(candles: Sequence[Candle]) -> float:
    """Mean high-low range, ``0.0`` for an empty sequence."""
    if not candles:
        return 0.0
    return float(np.mean([candle.range for candle in candles]))


def average_volume(candles: Sequence[Candle]) -> float:
    """Mean of the strictly positive volumes, ``0.0`` when none is positive."""
    positive = [candle.volume for candle in candles if candle.volume > 0]
    if not positive:
        return 0.0
    return float(np.mean(positive))


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """Return candles as an OHLCV frame using the ``ts/o/h/l/c/v`` columns."""
    return pd.DataFrame(
        {
            "ts": [candle.ts for candle in candles],
            "o": [candle.open for candle in candles],
            "h": [candle.high for candle in candles],
            "l": [candle.low for candle in candles],
            "c": [candle.close for candle in candles],
            "v": [candle.volume for candle in candles],
        }
    )


def frame_to_candles(frame: pd.DataFrame, interval_minutes: int) -> List[Candle]:
    """Convert an OHLCV frame into candles, skipping incomplete rows.

    Rows with missing or non-numeric prices are dropped; a missing volume is
    treated as ``0.0``. The result is sorted by ``ts`` with duplicates removed
    (the last row for a timestamp wins).
    """
    if frame.empty:
        return []
    numeric = frame[["ts", "o", "h", "l", "c"]].apply(pd.to_numeric, errors="coerce")
    volumes = pd.to_numeric(frame["v"], errors="coerce") if "v" in frame else None
    numeric["v"] = volumes.fillna(0.0) if volumes is not None else 0.0
    numeric = numeric.dropna(subset=["ts", "o", "h", "l", "c"])
    numeric = numeric.drop_duplicates(subset="ts", keep="last").sort_values("ts")
    return [
        Candle(
            ts=int(row.ts),
            open=float(row.o),
            high=float(max(row.h, row.o, row.c)),
            low=float(min(row.l, row.o, row.c)),
            close=float(row.c),
            volume=max(0.0, float(row.v)),
            interval_minutes=interval_minutes,
        )
        for row in numeric.itertuples(index=False)
    ]


__all__ = [
    "MIN_CANDLE_RANGE",
    "Tick",
    "VolumeRecord",
    "Candle",
    "build_candles",
    "average_body",
    "average_range",
    "average_volume",
    "candles_to_frame",
    "frame_to_candles",
]
