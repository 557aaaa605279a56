"""Multi-candle chart pattern detectors.

The detectors share the candlestick calling convention ``(window, index) ->
Detection | None`` but inspect a longer trailing segment ending at ``index``
(``required_candles`` of the kind). Within that segment they rely on the
confirmed swing points of :mod:`pattern_signals.services.levels` and on
``np.polyfit`` trendlines, expressing slopes relative to the mean close so the
tolerances hold across price scales.

Each detection reports:

* ``support`` / ``resistance``: the structure boundaries at the anchor,
* ``height``: the measured move projected by the scorer from the breakout
  boundary,
* ``confidence``: ``60 + 35 * fit`` where ``fit`` in ``[0, 1]`` grows as the
  geometric tolerances are met more tightly.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np

from pattern_signals.services.candles import Candle
from pattern_signals.services.levels import SwingPoint, swing_indices, swing_points
from pattern_signals.services.patterns.models import Detection

WEDGE_CANDLES = 20
FLAG_CANDLES = 15
FLAG_POLE = 5
TRIANGLE_CANDLES = 20
DOUBLE_CANDLES = 15
HEAD_SHOULDERS_CANDLES = 25

#: Relative slope (per candle) under which a boundary counts as flat.
FLAT_SLOPE = 0.002
#: Minimum relative slope of the converging boundary of a triangle.
SLOPED_MIN = 0.0005
#: Maximum gap between the two extremes of a double top/bottom.
DOUBLE_TOLERANCE = 0.03
#: Minimum candles separating the two extremes of a double top/bottom.
DOUBLE_MIN_SEPARATION = 5
#: Minimum retracement between the extremes (neckline distance).
DOUBLE_MIN_RETRACEMENT = 0.02


def _segment(window: Sequence[Candle], index: int, length: int) -> Sequence[Candle] | None:
    if index + 1 < length:
        return None
    return window[index - length + 1 : index + 1]


def _confidence(fit: float) -> float:
    bounded = min(1.0, max(0.0, fit))
    return float(min(100.0, max(0.0, 60.0 + 35.0 * bounded)))


def _split_swings(segment: Sequence[Candle]) -> Tuple[List[SwingPoint], List[SwingPoint]]:
    points = swing_points(segment)
    highs = [point for point in points if point.kind == "high"]
    lows = [point for point in points if point.kind == "low"]
    return highs, lows


def _trendline(points: Sequence[SwingPoint]) -> Tuple[float, float]:
    """Return ``(slope, intercept)`` of the least-squares line through ``points``."""
    x = np.array([point.index for point in points], dtype=float)
    y = np.array([point.price for point in points], dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    return float(slope), float(intercept)


def _mean_close(segment: Sequence[Candle]) -> float:
    return float(np.mean([candle.close for candle in segment]))


# Wedges -------------------------------------------------------------------


def _wedge_lines(
    segment: Sequence[Candle],
) -> Tuple[float, float, float, float, float] | None:
    highs, lows = _split_swings(segment)
    if len(highs) < 2 or len(lows) < 2:
        return None
    scale = _mean_close(segment)
    if scale <= 0:
        return None
    high_slope, high_intercept = _trendline(highs)
    low_slope, low_intercept = _trendline(lows)
    last = len(segment) - 1
    upper = high_slope * last + high_intercept
    lower = low_slope * last + low_intercept
    height = highs[0].price - lows[0].price
    return high_slope / scale, low_slope / scale, upper, lower, height


def detect_falling_wedge(window: Sequence[Candle], index: int) -> Detection | None:
    """Both trendlines falling, the lower one flatter, close pressing the upper line."""
    segment = _segment(window, index, WEDGE_CANDLES)
    if segment is None:
        return None
    lines = _wedge_lines(segment)
    if lines is None:
        return None
    high_slope, low_slope, upper, lower, height = lines
    if not (high_slope < 0 and low_slope < 0 and abs(low_slope) < abs(high_slope)):
        return None
    close = segment[-1].close
    if upper <= lower or height <= 0 or close <= upper * 0.95:
        return None
    convergence = 1.0 - abs(low_slope) / abs(high_slope)
    nearness = min(1.0, (close / upper - 0.95) / 0.05)
    return Detection(
        confidence=_confidence(0.5 * convergence + 0.5 * nearness),
        support=lower,
        resistance=upper,
        height=height,
        description="Falling wedge converging toward an upside breakout",
    )


def detect_rising_wedge(window: Sequence[Candle], index: int) -> Detection | None:
    """Both trendlines rising, the upper one flatter, close pressing the lower line."""
    segment = _segment(window, index, WEDGE_CANDLES)
    if segment is None:
        return None
    lines = _wedge_lines(segment)
    if lines is None:
        return None
    high_slope, low_slope, upper, lower, height = lines
    if not (high_slope > 0 and low_slope > 0 and abs(high_slope) < abs(low_slope)):
        return None
    close = segment[-1].close
    if upper <= lower or height <= 0 or close >= lower * 1.05:
        return None
    convergence = 1.0 - abs(high_slope) / abs(low_slope)
    nearness = min(1.0, (1.05 - close / lower) / 0.05)
    return Detection(
        confidence=_confidence(0.5 * convergence + 0.5 * nearness),
        support=lower,
        resistance=upper,
        height=height,
        description="Rising wedge converging toward a downside breakout",
    )


# Flags --------------------------------------------------------------------


def _flag_parts(
    segment: Sequence[Candle],
) -> Tuple[float, float, float, float, float, float] | None:
    pole_start, pole_end = segment[0].close, segment[FLAG_POLE].close
    if pole_start <= 0:
        return None
    flag = segment[FLAG_POLE:]
    flag_high = max(candle.high for candle in flag)
    flag_low = min(candle.low for candle in flag)
    if flag_low <= 0:
        return None
    pole_pct = (pole_end - pole_start) / pole_start * 100
    range_pct = (flag_high - flag_low) / flag_low * 100
    drift_pct = (flag[-1].close - flag[0].close) / flag[0].close * 100
    return pole_pct, range_pct, drift_pct, flag_high, flag_low, abs(pole_end - pole_start)


def detect_bull_flag(window: Sequence[Candle], index: int) -> Detection | None:
    """Sharp advance followed by a tight, flat-to-down consolidation near its top."""
    segment = _segment(window, index, FLAG_CANDLES)
    if segment is None:
        return None
    parts = _flag_parts(segment)
    if parts is None:
        return None
    pole_pct, range_pct, drift_pct, flag_high, flag_low, pole = parts
    if pole_pct < 3.0 or range_pct > 5.0 or not -4.0 <= drift_pct <= 1.0:
        return None
    if segment[-1].close <= flag_high * 0.95:
        return None
    fit = 0.5 * min(1.0, pole_pct / 6.0) + 0.5 * (1.0 - range_pct / 5.0)
    return Detection(
        confidence=_confidence(fit),
        support=flag_low,
        resistance=flag_high,
        height=pole,
        description="Bull flag consolidating after a strong pole",
    )


def detect_bear_flag(window: Sequence[Candle], index: int) -> Detection | None:
    """Sharp decline followed by a tight, flat-to-up consolidation near its bottom."""
    segment = _segment(window, index, FLAG_CANDLES)
    if segment is None:
        return None
    parts = _flag_parts(segment)
    if parts is None:
        return None
    pole_pct, range_pct, drift_pct, flag_high, flag_low, pole = parts
    if pole_pct > -3.0 or range_pct > 5.0 or not -1.0 <= drift_pct <= 4.0:
        return None
    if segment[-1].close >= flag_low * 1.05:
        return None
    fit = 0.5 * min(1.0, -pole_pct / 6.0) + 0.5 * (1.0 - range_pct / 5.0)
    return Detection(
        confidence=_confidence(fit),
        support=flag_low,
        resistance=flag_high,
        height=pole,
        description="Bear flag consolidating after a strong pole",
    )


# Triangles ----------------------------------------------------------------


def detect_ascending_triangle(window: Sequence[Candle], index: int) -> Detection | None:
    """Flat resistance with rising swing lows, close testing resistance."""
    segment = _segment(window, index, TRIANGLE_CANDLES)
    if segment is None:
        return None
    highs, lows = _split_swings(segment)
    if len(highs) < 2 or len(lows) < 2:
        return None
    scale = _mean_close(segment)
    high_slope = _trendline(highs)[0] / scale
    low_slope = _trendline(lows)[0] / scale
    if abs(high_slope) >= FLAT_SLOPE or low_slope <= SLOPED_MIN:
        return None
    resistance = float(np.mean([point.price for point in highs]))
    support = min(point.price for point in lows)
    close = segment[-1].close
    if close <= resistance * 0.95 or resistance <= support:
        return None
    fit = 0.5 * (1.0 - abs(high_slope) / FLAT_SLOPE) + 0.5 * min(1.0, (close / resistance - 0.95) / 0.05)
    return Detection(
        confidence=_confidence(fit),
        support=support,
        resistance=resistance,
        height=resistance - support,
        description="Ascending triangle pressing flat resistance",
    )


def detect_descending_triangle(window: Sequence[Candle], index: int) -> Detection | None:
    """Flat support with falling swing highs, close testing support."""
    segment = _segment(window, index, TRIANGLE_CANDLES)
    if segment is None:
        return None
    highs, lows = _split_swings(segment)
    if len(highs) < 2 or len(lows) < 2:
        return None
    scale = _mean_close(segment)
    high_slope = _trendline(highs)[0] / scale
    low_slope = _trendline(lows)[0] / scale
    if abs(low_slope) >= FLAT_SLOPE or high_slope >= -SLOPED_MIN:
        return None
    support = float(np.mean([point.price for point in lows]))
    resistance = max(point.price for point in highs)
    close = segment[-1].close
    if close >= support * 1.05 or resistance <= support:
        return None
    fit = 0.5 * (1.0 - abs(low_slope) / FLAT_SLOPE) + 0.5 * min(1.0, (1.05 - close / support) / 0.05)
    return Detection(
        confidence=_confidence(fit),
        support=support,
        resistance=resistance,
        height=resistance - support,
        description="Descending triangle pressing flat support",
    )


# Double top / bottom ------------------------------------------------------


def detect_double_bottom(window: Sequence[Candle], index: int) -> Detection | None:
    """Second low retesting an earlier confirmed swing low, anchored at the second low.

    The anchor must print the lowest low of the last four candles and close
    bullish; the earlier swing low must sit within 3 % of it, at least five
    candles back, with a neckline at least 2 % above the pair.
    """
    segment = _segment(window, index, DOUBLE_CANDLES)
    if segment is None:
        return None
    anchor = segment[-1]
    last = len(segment) - 1
    if not anchor.is_bullish or anchor.low >= min(candle.low for candle in segment[last - 3 : last]):
        return None
    lows = np.array([candle.low for candle in segment], dtype=float)
    highs = np.array([candle.high for candle in segment], dtype=float)
    best: Tuple[float, float, float, float] | None = None
    for j in swing_indices(lows, "low"):
        if last - j < DOUBLE_MIN_SEPARATION or lows[j] <= 0:
            continue
        diff = abs(lows[j] - anchor.low) / lows[j]
        if diff > DOUBLE_TOLERANCE:
            continue
        neckline = float(highs[j:].max())
        retracement = neckline / max(lows[j], anchor.low) - 1.0
        if retracement < DOUBLE_MIN_RETRACEMENT:
            continue
        if best is None or diff <= best[0]:
            best = (diff, neckline, retracement, float(lows[j]))
    if best is None:
        return None
    diff, neckline, retracement, first_low = best
    support = min(first_low, anchor.low)
    fit = 0.6 * (1.0 - diff / DOUBLE_TOLERANCE) + 0.4 * min(1.0, retracement / 0.06)
    return Detection(
        confidence=_confidence(fit),
        support=support,
        resistance=neckline,
        height=neckline - support,
        description="Double bottom retesting a prior swing low",
    )


def detect_double_top(window: Sequence[Candle], index: int) -> Detection | None:
    """Second high retesting an earlier confirmed swing high, anchored at the second high."""
    segment = _segment(window, index, DOUBLE_CANDLES)
    if segment is None:
        return None
    anchor = segment[-1]
    last = len(segment) - 1
    if not anchor.is_bearish or anchor.high <= max(candle.high for candle in segment[last - 3 : last]):
        return None
    lows = np.array([candle.low for candle in segment], dtype=float)
    highs = np.array([candle.high for candle in segment], dtype=float)
    best: Tuple[float, float, float, float] | None = None
    for j in swing_indices(highs, "high"):
        if last - j < DOUBLE_MIN_SEPARATION or highs[j] <= 0:
            continue
        diff = abs(highs[j] - anchor.high) / highs[j]
        if diff > DOUBLE_TOLERANCE:
            continue
        neckline = float(lows[j:].min())
        retracement = 1.0 - neckline / min(highs[j], anchor.high)
        if retracement < DOUBLE_MIN_RETRACEMENT:
            continue
        if best is None or diff <= best[0]:
            best = (diff, neckline, retracement, float(highs[j]))
    if best is None:
        return None
    diff, neckline, retracement, first_high = best
    resistance = max(first_high, anchor.high)
    fit = 0.6 * (1.0 - diff / DOUBLE_TOLERANCE) + 0.4 * min(1.0, retracement / 0.06)
    return Detection(
        confidence=_confidence(fit),
        support=neckline,
        resistance=resistance,
        height=resistance - neckline,
        description="Double top retesting a prior swing high",
    )


# Head and shoulders -------------------------------------------------------


def detect_head_and_shoulders(window: Sequence[Candle], index: int) -> Detection | None:
    """Three swing highs with a dominant head, anchored at the neckline break.

    The head must be the highest of the three and stand at least 2 % above the
    average shoulder, shoulders within 5 % of each other and neckline lows
    within 3 %. The anchor is the first close below the neckline within eight
    candles of the right shoulder.
    """
    segment = _segment(window, index, HEAD_SHOULDERS_CANDLES)
    if segment is None:
        return None
    highs, _ = _split_swings(segment)
    if len(highs) < 3:
        return None
    left, head, right = highs[-3:]
    last = len(segment) - 1
    if last - right.index > 8:
        return None
    if head.price <= max(left.price, right.price):
        return None
    shoulder_avg = (left.price + right.price) / 2
    if shoulder_avg <= 0 or (head.price - shoulder_avg) / shoulder_avg < 0.02:
        return None
    similarity = 1.0 - abs(left.price - right.price) / max(left.price, right.price)
    if similarity < 0.95:
        return None
    neck_left = min(candle.low for candle in segment[left.index + 1 : head.index])
    neck_right = min(candle.low for candle in segment[head.index + 1 : right.index])
    neckline = (neck_left + neck_right) / 2
    if neckline <= 0 or abs(neck_left - neck_right) / neckline > 0.03:
        return None
    if not (segment[-1].close < neckline <= segment[-2].close):
        return None
    neck_diff = abs(neck_left - neck_right) / neckline
    fit = 0.5 * (similarity - 0.95) / 0.05 + 0.5 * (1.0 - neck_diff / 0.03)
    return Detection(
        confidence=_confidence(fit),
        support=neckline,
        resistance=right.price,
        height=head.price - neckline,
        description="Head and shoulders breaking its neckline",
    )


def detect_inverse_head_and_shoulders(window: Sequence[Candle], index: int) -> Detection | None:
    """Mirror of :func:`detect_head_and_shoulders` built from swing lows."""
    segment = _segment(window, index, HEAD_SHOULDERS_CANDLES)
    if segment is None:
        return None
    _, lows = _split_swings(segment)
    if len(lows) < 3:
        return None
    left, head, right = lows[-3:]
    last = len(segment) - 1
    if last - right.index > 8:
        return None
    if head.price >= min(left.price, right.price):
        return None
    shoulder_avg = (left.price + right.price) / 2
    if shoulder_avg <= 0 or (shoulder_avg - head.price) / shoulder_avg < 0.02:
        return None
    similarity = 1.0 - abs(left.price - right.price) / max(left.price, right.price)
    if similarity < 0.95:
        return None
    neck_left = max(candle.high for candle in segment[left.index + 1 : head.index])
    neck_right = max(candle.high for candle in segment[head.index + 1 : right.index])
    neckline = (neck_left + neck_right) / 2
    if neckline <= 0 or abs(neck_left - neck_right) / neckline > 0.03:
        return None
    if not (segment[-2].close <= neckline < segment[-1].close):
        return None
    neck_diff = abs(neck_left - neck_right) / neckline
    fit = 0.5 * (similarity - 0.95) / 0.05 + 0.5 * (1.0 - neck_diff / 0.03)
    return Detection(
        confidence=_confidence(fit),
        support=right.price,
        resistance=neckline,
        height=neckline - head.price,
        description="Inverse head and shoulders breaking its neckline",
    )


__all__ = [
    "detect_falling_wedge",
    "detect_rising_wedge",
    "detect_bull_flag",
    "detect_bear_flag",
    "detect_ascending_triangle",
    "detect_descending_triangle",
    "detect_double_bottom",
    "detect_double_top",
    "detect_head_and_shoulders",
    "detect_inverse_head_and_shoulders",
]
