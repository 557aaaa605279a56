"""Detector registry and the scan loop running it over a candle sequence."""

from __future__ import annotations

from collections import Counter
from typing import Callable, Dict, List, Mapping, Sequence

from loguru import logger

from pattern_signals.services.candles import Candle
from pattern_signals.services.patterns import candlesticks, chart
from pattern_signals.services.patterns.kinds import KIND_ORDER, Bias, PatternKind
from pattern_signals.services.patterns.models import Detection, PatternMatch

Detector = Callable[[Sequence[Candle], int], "Detection | None"]
"""Pure function inspecting ``window[index]`` and earlier candles only."""

DETECTORS: Mapping[PatternKind, Detector] = {
    PatternKind.HAMMER: candlesticks.detect_hammer,
    PatternKind.INVERTED_HAMMER: candlesticks.detect_inverted_hammer,
    PatternKind.HANGING_MAN: candlesticks.detect_hanging_man,
    PatternKind.SHOOTING_STAR: candlesticks.detect_shooting_star,
    PatternKind.DOJI: candlesticks.detect_doji,
    PatternKind.DRAGONFLY_DOJI: candlesticks.detect_dragonfly_doji,
    PatternKind.GRAVESTONE_DOJI: candlesticks.detect_gravestone_doji,
    PatternKind.SPINNING_TOP: candlesticks.detect_spinning_top,
    PatternKind.BULLISH_ENGULFING: candlesticks.detect_bullish_engulfing,
    PatternKind.BEARISH_ENGULFING: candlesticks.detect_bearish_engulfing,
    PatternKind.BULLISH_HARAMI: candlesticks.detect_bullish_harami,
    PatternKind.BEARISH_HARAMI: candlesticks.detect_bearish_harami,
    PatternKind.PIERCING_LINE: candlesticks.detect_piercing_line,
    PatternKind.DARK_CLOUD_COVER: candlesticks.detect_dark_cloud_cover,
    PatternKind.TWEEZER_TOP: candlesticks.detect_tweezer_top,
    PatternKind.TWEEZER_BOTTOM: candlesticks.detect_tweezer_bottom,
    PatternKind.MORNING_STAR: candlesticks.detect_morning_star,
    PatternKind.EVENING_STAR: candlesticks.detect_evening_star,
    PatternKind.THREE_WHITE_SOLDIERS: candlesticks.detect_three_white_soldiers,
    PatternKind.THREE_BLACK_CROWS: candlesticks.detect_three_black_crows,
    PatternKind.FALLING_WEDGE: chart.detect_falling_wedge,
    PatternKind.RISING_WEDGE: chart.detect_rising_wedge,
    PatternKind.BULL_FLAG: chart.detect_bull_flag,
    PatternKind.BEAR_FLAG: chart.detect_bear_flag,
    PatternKind.ASCENDING_TRIANGLE: chart.detect_ascending_triangle,
    PatternKind.DESCENDING_TRIANGLE: chart.detect_descending_triangle,
    PatternKind.DOUBLE_TOP: chart.detect_double_top,
    PatternKind.DOUBLE_BOTTOM: chart.detect_double_bottom,
    PatternKind.HEAD_AND_SHOULDERS: chart.detect_head_and_shoulders,
    PatternKind.INVERSE_HEAD_AND_SHOULDERS: chart.detect_inverse_head_and_shoulders,
}


def detect(
    kind: PatternKind,
    window: Sequence[Candle],
    index: int,
    symbol: str,
    detectors: Mapping[PatternKind, Detector] = DETECTORS,
) -> PatternMatch | None:
    """Run the detector registered for ``kind`` on ``window[index]``.

    Returns ``None`` when fewer than ``required_candles`` candles end at
    ``index`` or the geometry does not match.
    """
    if index < 0 or index >= len(window) or index + 1 < kind.required_candles:
        return None
    detection = detectors[kind](window, index)
    if detection is None:
        return None
    anchor = window[index]
    return PatternMatch(
        symbol=symbol,
        kind=kind,
        confidence=float(min(100.0, max(0.0, detection.confidence))),
        ts=anchor.ts,
        anchor_index=index,
        support=detection.support,
        resistance=detection.resistance,
        height=detection.height,
        description=detection.description,
    )


class PatternEngine:
    """Run every registered detector over every candle of a sequence.

    Matches are not deduplicated across kinds: several kinds firing on the same
    candle is exactly what the confluence clusterer looks for.
    """

    def __init__(self, detectors: Mapping[PatternKind, Detector] | None = None) -> None:
        self.detectors: Dict[PatternKind, Detector] = dict(detectors or DETECTORS)

    def scan(self, candles: Sequence[Candle], symbol: str) -> List[PatternMatch]:
        """Return matches ordered by anchor time then kind declaration order."""
        if not candles:
            return []
        kinds = sorted(self.detectors, key=KIND_ORDER.__getitem__)
        matches: List[PatternMatch] = []
        for index in range(len(candles)):
            for kind in kinds:
                match = detect(kind, candles, index, symbol, self.detectors)
                if match is not None:
                    matches.append(match)
        logger.bind(symbol=symbol, candles=len(candles), matches=len(matches)).debug(
            "patterns.scanned"
        )
        return matches


def recent(matches: Sequence[PatternMatch], limit: int) -> List[PatternMatch]:
    """Return the ``limit`` most recent matches, newest first."""
    ordered = sorted(matches, key=lambda match: (match.ts, KIND_ORDER[match.kind]), reverse=True)
    return ordered[: max(0, limit)]


def filter_by_bias(matches: Sequence[PatternMatch], bias: Bias) -> List[PatternMatch]:
    return [match for match in matches if match.bias is bias]


def filter_by_confidence(matches: Sequence[PatternMatch], minimum: float) -> List[PatternMatch]:
    return [match for match in matches if match.confidence >= minimum]


def summarize(matches: Sequence[PatternMatch]) -> Dict[str, object]:
    """Count matches per bias and per kind."""
    by_bias = Counter(match.bias.value for match in matches)
    by_kind = Counter(match.kind.value for match in matches)
    return {
        "total": len(matches),
        "bullish": by_bias.get(Bias.BULLISH.value, 0),
        "bearish": by_bias.get(Bias.BEARISH.value, 0),
        "neutral": by_bias.get(Bias.NEUTRAL.value, 0),
        "chart_patterns": sum(1 for match in matches if match.is_chart_pattern),
        "by_kind": dict(by_kind),
    }


__all__ = [
    "Detector",
    "DETECTORS",
    "detect",
    "PatternEngine",
    "recent",
    "filter_by_bias",
    "filter_by_confidence",
    "summarize",
]
