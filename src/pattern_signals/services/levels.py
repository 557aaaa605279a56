"""Swing-point helpers shared by the chart detectors and the signal scorer.

A swing high (low) is a candle whose high (low) is strictly greater (lower)
than the ``order`` candles on each side. Swings are located with
:func:`scipy.signal.argrelextrema` and only *confirmed* swings are returned:
the last ``order`` positions of a series can never qualify because the
candles that would confirm them have not been observed yet. This keeps every
consumer free of look-ahead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Sequence

import numpy as np
from scipy.signal import argrelextrema  # type: ignore[import-untyped]

from pattern_signals.services.candles import Candle

#: Candles required on each side of a swing point.
SWING_ORDER = 3
#: Trailing candles inspected when looking for the nearest support/resistance.
LEVEL_LOOKBACK = 50


@dataclass(frozen=True)
class SwingPoint:
    """Confirmed local extreme at ``index`` of the analysed series."""

    index: int
    price: float
    kind: Literal["high", "low"]


def swing_indices(values: np.ndarray, kind: Literal["high", "low"], order: int = SWING_ORDER) -> np.ndarray:
    """Return positions of strict local maxima (``high``) or minima (``low``)."""
    if len(values) < 2 * order + 1:
        return np.array([], dtype=int)
    comparator = np.greater if kind == "high" else np.less
    (indices,) = argrelextrema(values, comparator, order=order)
    # ``argrelextrema`` clips at the edges; drop positions lacking a full window.
    mask = (indices >= order) & (indices < len(values) - order)
    return indices[mask]


def swing_points(candles: Sequence[Candle], order: int = SWING_ORDER) -> List[SwingPoint]:
    """Return confirmed swing highs and lows ordered by index."""
    highs = np.array([candle.high for candle in candles], dtype=float)
    lows = np.array([candle.low for candle in candles], dtype=float)
    points = [SwingPoint(int(i), float(highs[i]), "high") for i in swing_indices(highs, "high", order)]
    points.extend(SwingPoint(int(i), float(lows[i]), "low") for i in swing_indices(lows, "low", order))
    return sorted(points, key=lambda point: (point.index, point.kind))


def nearest_resistance(
    candles: Sequence[Candle], price: float, lookback: int = LEVEL_LOOKBACK
) -> float | None:
    """Lowest confirmed swing high strictly above ``price`` in the trailing window."""
    window = candles[-lookback:]
    above = [point.price for point in swing_points(window) if point.kind == "high" and point.price > price]
    return min(above) if above else None


def nearest_support(
    candles: Sequence[Candle], price: float, lookback: int = LEVEL_LOOKBACK
) -> float | None:
    """Highest confirmed swing low strictly below ``price`` in the trailing window."""
    window = candles[-lookback:]
    below = [point.price for point in swing_points(window) if point.kind == "low" and point.price < price]
    return max(below) if below else None


__all__ = [
    "SWING_ORDER",
    "LEVEL_LOOKBACK",
    "SwingPoint",
    "swing_indices",
    "swing_points",
    "nearest_resistance",
    "nearest_support",
]
