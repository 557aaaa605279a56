"""Single, two and three candle detectors.

Every detector shares the calling convention ``(window, index) ->
Detection | None``: ``window[index]`` is the candle under evaluation and only
``window[index - required_candles + 1 : index + 1]`` is inspected for the
pattern geometry. The reversal kinds additionally read up to
:data:`TREND_LOOKBACK` earlier candles to establish the prior trend, never a
candle after ``index``.

Thresholds are expressed as percentages of the candle range (``body_pct``,
``upper_shadow_pct``...) so they behave identically across price scales.
Base confidences reflect how reliable each formation has proven to be and are
nudged by the anchor volume relative to the preceding candles (see
:func:`volume_adjusted_confidence`).
"""

from __future__ import annotations

from typing import Sequence

from pattern_signals.services.candles import MIN_CANDLE_RANGE, Candle, average_volume
from pattern_signals.services.patterns.models import Detection

#: Candles inspected before the anchor to classify the prior trend.
TREND_LOOKBACK = 5
#: Candles averaged to compare the anchor volume against.
VOLUME_LOOKBACK = 20
#: Relative tolerance for tweezer extremes (0.5 %).
PRICE_TOLERANCE = 0.005
#: Body share (of range) under which a candle has a small body.
SMALL_BODY_PCT = 30.0


def volume_adjusted_confidence(base: float, window: Sequence[Candle], index: int) -> float:
    """Adjust ``base`` by the anchor volume relative to the preceding candles.

    Ratio above 1.5 adds 10 points, above 1.2 adds 5 and below 0.8 removes 10.
    Boosted values are capped at 95 and penalised values floored at 50. With
    no usable volume history ``base`` is returned unchanged.
    """
    history = window[max(0, index - VOLUME_LOOKBACK) : index]
    avg = average_volume(history)
    if avg <= 0:
        return base
    ratio = window[index].volume / avg
    if ratio > 1.5:
        return min(base + 10, 95.0)
    if ratio > 1.2:
        return min(base + 5, 95.0)
    if ratio < 0.8:
        return max(base - 10, 50.0)
    return base


def _trend_window(window: Sequence[Candle], index: int) -> Sequence[Candle] | None:
    lookback = min(TREND_LOOKBACK, index)
    if lookback < 2:
        return None
    return window[index - lookback : index + 1]


def is_uptrend(window: Sequence[Candle], index: int) -> bool:
    """Closes rising over the lookback with at least 60 % bullish candles."""
    segment = _trend_window(window, index)
    if segment is None:
        return False
    bullish = sum(1 for candle in segment if candle.is_bullish)
    return segment[-1].close > segment[0].close and bullish / len(segment) >= 0.6


def is_downtrend(window: Sequence[Candle], index: int) -> bool:
    """Closes falling over the lookback with at least 60 % bearish candles."""
    segment = _trend_window(window, index)
    if segment is None:
        return False
    bearish = sum(1 for candle in segment if candle.is_bearish)
    return segment[-1].close < segment[0].close and bearish / len(segment) >= 0.6


def _significant(candle: Candle) -> bool:
    return candle.range >= MIN_CANDLE_RANGE


def _has_small_body(candle: Candle) -> bool:
    return candle.body_pct < SMALL_BODY_PCT


def _hammer_shape(candle: Candle) -> bool:
    return (
        _has_small_body(candle)
        and candle.lower_shadow >= 2 * candle.body
        and candle.upper_shadow < 0.3 * candle.body
        and candle.upper_shadow_pct < 20
    )


def _inverted_shape(candle: Candle) -> bool:
    return (
        _has_small_body(candle)
        and candle.upper_shadow >= 2 * candle.body
        and candle.lower_shadow < 0.3 * candle.body
        and candle.lower_shadow_pct < 20
    )


# Single candle ------------------------------------------------------------


def detect_hammer(window: Sequence[Candle], index: int) -> Detection | None:
    candle = window[index]
    if not _significant(candle) or not _hammer_shape(candle) or not is_downtrend(window, index):
        return None
    return Detection(
        confidence=volume_adjusted_confidence(70, window, index),
        support=candle.low,
        resistance=candle.high,
        description="Hammer after a decline, potential bullish reversal",
    )


def detect_inverted_hammer(window: Sequence[Candle], index: int) -> Detection | None:
    candle = window[index]
    if not _significant(candle) or not _inverted_shape(candle) or not is_downtrend(window, index):
        return None
    return Detection(
        confidence=volume_adjusted_confidence(70, window, index),
        support=candle.low,
        resistance=candle.high,
        description="Inverted hammer after a decline, potential bullish reversal",
    )


def detect_hanging_man(window: Sequence[Candle], index: int) -> Detection | None:
    candle = window[index]
    if not _significant(candle) or not _hammer_shape(candle) or not is_uptrend(window, index):
        return None
    return Detection(
        confidence=volume_adjusted_confidence(65, window, index),
        support=candle.low,
        resistance=candle.high,
        description="Hanging man after an advance, potential bearish reversal",
    )


def detect_shooting_star(window: Sequence[Candle], index: int) -> Detection | None:
    candle = window[index]
    if not _significant(candle) or not _inverted_shape(candle) or not is_uptrend(window, index):
        return None
    return Detection(
        confidence=volume_adjusted_confidence(70, window, index),
        support=candle.low,
        resistance=candle.high,
        description="Shooting star after an advance, potential bearish reversal",
    )


def detect_doji(window: Sequence[Candle], index: int) -> Detection | None:
    candle = window[index]
    if not _significant(candle) or not candle.is_doji:
        return None
    return Detection(
        confidence=60.0,
        support=candle.low,
        resistance=candle.high,
        description="Doji, indecision in the market",
    )


def detect_dragonfly_doji(window: Sequence[Candle], index: int) -> Detection | None:
    candle = window[index]
    if not _significant(candle) or not candle.is_doji:
        return None
    if candle.lower_shadow_pct <= 60 or candle.upper_shadow_pct >= 10:
        return None
    return Detection(
        confidence=75.0,
        support=candle.low,
        resistance=candle.high,
        description="Dragonfly doji, buyers rejected the lows",
    )


def detect_gravestone_doji(window: Sequence[Candle], index: int) -> Detection | None:
    candle = window[index]
    if not _significant(candle) or not candle.is_doji:
        return None
    if candle.upper_shadow_pct <= 60 or candle.lower_shadow_pct >= 10:
        return None
    return Detection(
        confidence=75.0,
        support=candle.low,
        resistance=candle.high,
        description="Gravestone doji, sellers rejected the highs",
    )


def detect_spinning_top(window: Sequence[Candle], index: int) -> Detection | None:
    candle = window[index]
    if not _significant(candle):
        return None
    if not 10 < candle.body_pct < 30:
        return None
    if candle.upper_shadow_pct <= 30 or candle.lower_shadow_pct <= 30:
        return None
    return Detection(
        confidence=60.0,
        support=candle.low,
        resistance=candle.high,
        description="Spinning top, market indecision",
    )


# Two candles --------------------------------------------------------------


def detect_bullish_engulfing(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 1:
        return None
    prev, curr = window[index - 1], window[index]
    if not prev.is_bearish or not curr.is_bullish:
        return None
    if curr.open > prev.close or curr.close < prev.open or curr.body_pct <= 50:
        return None
    return Detection(
        confidence=volume_adjusted_confidence(80, window, index),
        support=min(prev.low, curr.low),
        resistance=max(prev.high, curr.high),
        description="Bullish engulfing, strong reversal signal",
    )


def detect_bearish_engulfing(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 1:
        return None
    prev, curr = window[index - 1], window[index]
    if not prev.is_bullish or not curr.is_bearish:
        return None
    if curr.open < prev.close or curr.close > prev.open or curr.body_pct <= 50:
        return None
    return Detection(
        confidence=volume_adjusted_confidence(80, window, index),
        support=min(prev.low, curr.low),
        resistance=max(prev.high, curr.high),
        description="Bearish engulfing, strong reversal signal",
    )


def detect_bullish_harami(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 1:
        return None
    prev, curr = window[index - 1], window[index]
    if not prev.is_bearish or not curr.is_bullish:
        return None
    if prev.body_pct <= 60 or not _has_small_body(curr):
        return None
    if curr.open < prev.close or curr.close > prev.open:
        return None
    return Detection(
        confidence=70.0,
        support=prev.low,
        resistance=prev.high,
        description="Bullish harami, selling pressure fading",
    )


def detect_bearish_harami(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 1:
        return None
    prev, curr = window[index - 1], window[index]
    if not prev.is_bullish or not curr.is_bearish:
        return None
    if prev.body_pct <= 60 or not _has_small_body(curr):
        return None
    if curr.open > prev.close or curr.close < prev.open:
        return None
    return Detection(
        confidence=70.0,
        support=prev.low,
        resistance=prev.high,
        description="Bearish harami, buying pressure fading",
    )


def detect_piercing_line(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 1:
        return None
    prev, curr = window[index - 1], window[index]
    if not prev.is_bearish or not curr.is_bullish:
        return None
    if not (curr.open < prev.close and prev.midpoint < curr.close < prev.open):
        return None
    return Detection(
        confidence=volume_adjusted_confidence(75, window, index),
        support=curr.low,
        resistance=prev.high,
        description="Piercing line, bullish reversal",
    )


def detect_dark_cloud_cover(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 1:
        return None
    prev, curr = window[index - 1], window[index]
    if not prev.is_bullish or not curr.is_bearish:
        return None
    if not (curr.open > prev.close and prev.open < curr.close < prev.midpoint):
        return None
    return Detection(
        confidence=volume_adjusted_confidence(75, window, index),
        support=prev.low,
        resistance=curr.high,
        description="Dark cloud cover, bearish reversal",
    )


def detect_tweezer_top(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 1:
        return None
    prev, curr = window[index - 1], window[index]
    if not prev.is_bullish or not curr.is_bearish or prev.high <= 0:
        return None
    if abs(prev.high - curr.high) / prev.high >= PRICE_TOLERANCE:
        return None
    return Detection(
        confidence=70.0,
        support=min(prev.low, curr.low),
        resistance=max(prev.high, curr.high),
        description="Tweezer top, resistance confirmed",
    )


def detect_tweezer_bottom(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 1:
        return None
    prev, curr = window[index - 1], window[index]
    if not prev.is_bearish or not curr.is_bullish or prev.low <= 0:
        return None
    if abs(prev.low - curr.low) / prev.low >= PRICE_TOLERANCE:
        return None
    return Detection(
        confidence=70.0,
        support=min(prev.low, curr.low),
        resistance=max(prev.high, curr.high),
        description="Tweezer bottom, support confirmed",
    )


# Three candles ------------------------------------------------------------


def detect_morning_star(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 2:
        return None
    first, star, third = window[index - 2], window[index - 1], window[index]
    if not first.is_bearish or first.body_pct < 60:
        return None
    if not _has_small_body(star) or star.high >= first.close:
        return None
    if not third.is_bullish or third.body_pct <= 60 or third.close <= first.midpoint:
        return None
    return Detection(
        confidence=volume_adjusted_confidence(85, window, index),
        support=min(star.low, third.low),
        resistance=first.high,
        description="Morning star, strong bullish reversal",
    )


def detect_evening_star(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 2:
        return None
    first, star, third = window[index - 2], window[index - 1], window[index]
    if not first.is_bullish or first.body_pct < 60:
        return None
    if not _has_small_body(star) or star.low <= first.close:
        return None
    if not third.is_bearish or third.body_pct <= 60 or third.close >= first.midpoint:
        return None
    return Detection(
        confidence=volume_adjusted_confidence(85, window, index),
        support=first.low,
        resistance=max(star.high, third.high),
        description="Evening star, strong bearish reversal",
    )


def _opens_near(candle: Candle, reference_close: float) -> bool:
    return reference_close * 0.95 <= candle.open <= reference_close * 1.05


def detect_three_white_soldiers(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 2:
        return None
    first, second, third = window[index - 2], window[index - 1], window[index]
    trio = (first, second, third)
    if not all(candle.is_bullish and candle.body_pct > 40 for candle in trio):
        return None
    if not (first.close < second.close < third.close):
        return None
    if not (_opens_near(second, first.close) and _opens_near(third, second.close)):
        return None
    if any(candle.upper_shadow_pct >= 35 for candle in trio):
        return None
    return Detection(
        confidence=volume_adjusted_confidence(80, window, index),
        support=first.low,
        resistance=third.high,
        description="Three white soldiers, strong bullish continuation",
    )


def detect_three_black_crows(window: Sequence[Candle], index: int) -> Detection | None:
    if index < 2:
        return None
    first, second, third = window[index - 2], window[index - 1], window[index]
    trio = (first, second, third)
    if not all(candle.is_bearish and candle.body_pct > 40 for candle in trio):
        return None
    if not (first.close > second.close > third.close):
        return None
    if not (_opens_near(second, first.close) and _opens_near(third, second.close)):
        return None
    if any(candle.lower_shadow_pct >= 35 for candle in trio):
        return None
    return Detection(
        confidence=volume_adjusted_confidence(80, window, index),
        support=third.low,
        resistance=first.high,
        description="Three black crows, strong bearish continuation",
    )


__all__ = [
    "TREND_LOOKBACK",
    "VOLUME_LOOKBACK",
    "volume_adjusted_confidence",
    "is_uptrend",
    "is_downtrend",
    "detect_hammer",
    "detect_inverted_hammer",
    "detect_hanging_man",
    "detect_shooting_star",
    "detect_doji",
    "detect_dragonfly_doji",
    "detect_gravestone_doji",
    "detect_spinning_top",
    "detect_bullish_engulfing",
    "detect_bearish_engulfing",
    "detect_bullish_harami",
    "detect_bearish_harami",
    "detect_piercing_line",
    "detect_dark_cloud_cover",
    "detect_tweezer_top",
    "detect_tweezer_bottom",
    "detect_morning_star",
    "detect_evening_star",
    "detect_three_white_soldiers",
    "detect_three_black_crows",
]
