"""Trend direction and trend-strength helpers used by the enhanced filters.

Both helpers operate on the candles up to (and including) a signal anchor so
they never see the future. They are deliberately simple:

* :func:`determine_trend` compares the average close of the two halves of the
  last :data:`SHORT_TERM_WINDOW` candles (a move beyond ±1.5 % sets the
  direction). A medium term reading (first vs last quarter of
  :data:`MEDIUM_TERM_WINDOW` candles, ±3 %) is computed for logging only; the
  short term reading wins.
* :func:`average_directional_index` is a single-pass directional index over
  the last :data:`ADX_PERIOD` bars: ``100 * |+DI - -DI| / (+DI + -DI)`` capped
  at 95.
"""

from __future__ import annotations

from enum import Enum
from typing import Sequence

import numpy as np
import pandas as pd
from loguru import logger

from pattern_signals.services.candles import Candle, candles_to_frame

SHORT_TERM_WINDOW = 20
MEDIUM_TERM_WINDOW = 30
SHORT_TERM_THRESHOLD = 1.5
MEDIUM_TERM_THRESHOLD = 3.0
ADX_PERIOD = 14
ADX_CAP = 95.0


class TrendDirection(str, Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    NEUTRAL = "NEUTRAL"


def _classify(change_pct: float, threshold: float) -> TrendDirection:
    if change_pct > threshold:
        return TrendDirection.UPTREND
    if change_pct < -threshold:
        return TrendDirection.DOWNTREND
    return TrendDirection.NEUTRAL


def _percent_change(before: pd.Series, after: pd.Series) -> float:
    start = float(before.mean())
    if start == 0 or np.isnan(start):
        return 0.0
    return (float(after.mean()) - start) / start * 100


def determine_trend(candles: Sequence[Candle]) -> TrendDirection:
    """Classify the prevailing trend; fewer than 30 candles yield ``NEUTRAL``."""
    if len(candles) < MEDIUM_TERM_WINDOW:
        return TrendDirection.NEUTRAL
    closes = pd.Series([candle.close for candle in candles], dtype=float)

    short = closes.iloc[-SHORT_TERM_WINDOW:]
    half = SHORT_TERM_WINDOW // 2
    short_term = _classify(
        _percent_change(short.iloc[:half], short.iloc[half:]), SHORT_TERM_THRESHOLD
    )

    medium = closes.iloc[-MEDIUM_TERM_WINDOW:]
    quarter = MEDIUM_TERM_WINDOW // 4
    medium_term = _classify(
        _percent_change(medium.iloc[:quarter], medium.iloc[-quarter:]), MEDIUM_TERM_THRESHOLD
    )
    if short_term is not medium_term:
        logger.bind(short_term=short_term.value, medium_term=medium_term.value).debug(
            "trend.disagreement"
        )
    return short_term


def average_directional_index(candles: Sequence[Candle], period: int = ADX_PERIOD) -> float:
    """Return the directional index over the last ``period`` bars (``0`` when undefined)."""
    if len(candles) < period + 1:
        return 0.0
    frame = candles_to_frame(candles[-(period + 1) :])
    high, low, close = frame["h"], frame["l"], frame["c"]
    up_move = high.diff()
    down_move = -low.diff()
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)[1:]
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)[1:]
    previous_close = close.shift(1)
    true_range = pd.concat(
        [high - low, (high - previous_close).abs(), (low - previous_close).abs()], axis=1
    ).max(axis=1)[1:]
    tr_sum = float(true_range.sum())
    if tr_sum == 0:
        return 0.0
    plus_di = 100 * float(plus_dm.sum()) / tr_sum
    minus_di = 100 * float(minus_dm.sum()) / tr_sum
    di_sum = plus_di + minus_di
    if di_sum == 0:
        return 0.0
    return min(ADX_CAP, 100 * abs(plus_di - minus_di) / di_sum)


__all__ = [
    "ADX_PERIOD",
    "TrendDirection",
    "determine_trend",
    "average_directional_index",
]
