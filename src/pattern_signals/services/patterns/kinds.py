"""Closed set of pattern kinds and their static descriptors.

Everything that is a fact about a *kind* (display name, bias, trailing candles
needed, strength points used by the scorer, filtering tier) lives in the
:data:`DESCRIPTORS` table rather than on detector code, so the scorer and the
filters can reason about a kind without running a detector.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping

#: Minimum trailing candles from which a kind is treated as a chart pattern.
CHART_PATTERN_MIN_CANDLES = 15


class Bias(str, Enum):
    """Directional expectation carried by a pattern kind."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class PatternKind(str, Enum):
    """Every pattern the engine can detect, in declaration (tie-break) order."""

    HAMMER = "HAMMER"
    INVERTED_HAMMER = "INVERTED_HAMMER"
    HANGING_MAN = "HANGING_MAN"
    SHOOTING_STAR = "SHOOTING_STAR"
    DOJI = "DOJI"
    DRAGONFLY_DOJI = "DRAGONFLY_DOJI"
    GRAVESTONE_DOJI = "GRAVESTONE_DOJI"
    SPINNING_TOP = "SPINNING_TOP"
    BULLISH_ENGULFING = "BULLISH_ENGULFING"
    BEARISH_ENGULFING = "BEARISH_ENGULFING"
    BULLISH_HARAMI = "BULLISH_HARAMI"
    BEARISH_HARAMI = "BEARISH_HARAMI"
    PIERCING_LINE = "PIERCING_LINE"
    DARK_CLOUD_COVER = "DARK_CLOUD_COVER"
    TWEEZER_TOP = "TWEEZER_TOP"
    TWEEZER_BOTTOM = "TWEEZER_BOTTOM"
    MORNING_STAR = "MORNING_STAR"
    EVENING_STAR = "EVENING_STAR"
    THREE_WHITE_SOLDIERS = "THREE_WHITE_SOLDIERS"
    THREE_BLACK_CROWS = "THREE_BLACK_CROWS"
    FALLING_WEDGE = "FALLING_WEDGE"
    RISING_WEDGE = "RISING_WEDGE"
    BULL_FLAG = "BULL_FLAG"
    BEAR_FLAG = "BEAR_FLAG"
    ASCENDING_TRIANGLE = "ASCENDING_TRIANGLE"
    DESCENDING_TRIANGLE = "DESCENDING_TRIANGLE"
    DOUBLE_TOP = "DOUBLE_TOP"
    DOUBLE_BOTTOM = "DOUBLE_BOTTOM"
    HEAD_AND_SHOULDERS = "HEAD_AND_SHOULDERS"
    INVERSE_HEAD_AND_SHOULDERS = "INVERSE_HEAD_AND_SHOULDERS"

    @property
    def descriptor(self) -> "PatternDescriptor":
        return DESCRIPTORS[self]

    @property
    def display_name(self) -> str:
        return DESCRIPTORS[self].display_name

    @property
    def bias(self) -> Bias:
        return DESCRIPTORS[self].bias

    @property
    def required_candles(self) -> int:
        return DESCRIPTORS[self].required_candles

    @property
    def is_chart_pattern(self) -> bool:
        return DESCRIPTORS[self].is_chart_pattern


@dataclass(frozen=True)
class PatternDescriptor:
    """Static facts attached to a :class:`PatternKind`.

    Attributes
    ----------
    display_name:
        Human readable label (``"Bullish Engulfing"``).
    bias:
        Direction implied by the pattern.
    required_candles:
        Trailing candles, anchor included, the detector needs.
    strength:
        Points (0-25) describing the historical reliability of the kind; fed
        into the signal quality composite.
    tier:
        Filtering tier: 1 strong, 2 good, 3 weak, 4 never traded alone.
    """

    display_name: str
    bias: Bias
    required_candles: int
    strength: int
    tier: int

    @property
    def is_chart_pattern(self) -> bool:
        return self.required_candles >= CHART_PATTERN_MIN_CANDLES


_B, _S, _N = Bias.BULLISH, Bias.BEARISH, Bias.NEUTRAL

DESCRIPTORS: Mapping[PatternKind, PatternDescriptor] = {
    PatternKind.HAMMER: PatternDescriptor("Hammer", _B, 1, 15, 2),
    PatternKind.INVERTED_HAMMER: PatternDescriptor("Inverted Hammer", _B, 1, 10, 3),
    PatternKind.HANGING_MAN: PatternDescriptor("Hanging Man", _S, 1, 10, 3),
    PatternKind.SHOOTING_STAR: PatternDescriptor("Shooting Star", _S, 1, 15, 2),
    PatternKind.DOJI: PatternDescriptor("Doji", _N, 1, 2, 4),
    PatternKind.DRAGONFLY_DOJI: PatternDescriptor("Dragonfly Doji", _B, 1, 2, 4),
    PatternKind.GRAVESTONE_DOJI: PatternDescriptor("Gravestone Doji", _S, 1, 2, 4),
    PatternKind.SPINNING_TOP: PatternDescriptor("Spinning Top", _N, 1, 2, 4),
    PatternKind.BULLISH_ENGULFING: PatternDescriptor("Bullish Engulfing", _B, 2, 20, 1),
    PatternKind.BEARISH_ENGULFING: PatternDescriptor("Bearish Engulfing", _S, 2, 20, 1),
    PatternKind.BULLISH_HARAMI: PatternDescriptor("Bullish Harami", _B, 2, 5, 3),
    PatternKind.BEARISH_HARAMI: PatternDescriptor("Bearish Harami", _S, 2, 5, 3),
    PatternKind.PIERCING_LINE: PatternDescriptor("Piercing Line", _B, 2, 10, 2),
    PatternKind.DARK_CLOUD_COVER: PatternDescriptor("Dark Cloud Cover", _S, 2, 10, 2),
    PatternKind.TWEEZER_TOP: PatternDescriptor("Tweezer Top", _S, 2, 5, 3),
    PatternKind.TWEEZER_BOTTOM: PatternDescriptor("Tweezer Bottom", _B, 2, 5, 3),
    PatternKind.MORNING_STAR: PatternDescriptor("Morning Star", _B, 3, 20, 1),
    PatternKind.EVENING_STAR: PatternDescriptor("Evening Star", _S, 3, 20, 1),
    PatternKind.THREE_WHITE_SOLDIERS: PatternDescriptor("Three White Soldiers", _B, 3, 15, 1),
    PatternKind.THREE_BLACK_CROWS: PatternDescriptor("Three Black Crows", _S, 3, 15, 1),
    PatternKind.FALLING_WEDGE: PatternDescriptor("Falling Wedge", _B, 20, 25, 1),
    PatternKind.RISING_WEDGE: PatternDescriptor("Rising Wedge", _S, 20, 25, 1),
    PatternKind.BULL_FLAG: PatternDescriptor("Bull Flag", _B, 15, 22, 1),
    PatternKind.BEAR_FLAG: PatternDescriptor("Bear Flag", _S, 15, 22, 1),
    PatternKind.ASCENDING_TRIANGLE: PatternDescriptor("Ascending Triangle", _B, 20, 22, 1),
    PatternKind.DESCENDING_TRIANGLE: PatternDescriptor("Descending Triangle", _S, 20, 22, 1),
    PatternKind.DOUBLE_TOP: PatternDescriptor("Double Top", _S, 15, 22, 1),
    PatternKind.DOUBLE_BOTTOM: PatternDescriptor("Double Bottom", _B, 15, 22, 1),
    PatternKind.HEAD_AND_SHOULDERS: PatternDescriptor("Head and Shoulders", _S, 25, 25, 1),
    PatternKind.INVERSE_HEAD_AND_SHOULDERS: PatternDescriptor(
        "Inverse Head and Shoulders", _B, 25, 25, 1
    ),
}

#: Position of every kind in declaration order, used to break ties.
KIND_ORDER: Dict[PatternKind, int] = {kind: position for position, kind in enumerate(PatternKind)}

#: Highest strength value in the table; normalises the scorer's strength term.
MAX_STRENGTH = max(descriptor.strength for descriptor in DESCRIPTORS.values())


__all__ = [
    "CHART_PATTERN_MIN_CANDLES",
    "Bias",
    "PatternKind",
    "PatternDescriptor",
    "DESCRIPTORS",
    "KIND_ORDER",
    "MAX_STRENGTH",
]
