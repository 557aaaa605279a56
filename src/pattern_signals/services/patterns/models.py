"""Records exchanged between detectors, the engine and the clusterer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pattern_signals.services.patterns.kinds import Bias, PatternKind
from pattern_signals.utils.timezones import to_utc_datetime


@dataclass(frozen=True)
class Detection:
    """Raw detector output before the engine attaches symbol and anchor.

    ``support``/``resistance`` describe the structure boundaries the detector
    observed and ``height`` the measured move (chart patterns only); the
    scorer uses them to place stops and project targets.
    """

    confidence: float
    support: float | None = None
    resistance: float | None = None
    height: float | None = None
    description: str = ""


@dataclass(frozen=True)
class PatternMatch:
    """Pattern detected on the candle at ``anchor_index``.

    Attributes
    ----------
    symbol:
        Instrument the candles belong to.
    kind:
        Detected :class:`PatternKind`; bias and chart/candlestick category are
        static facts of the kind.
    confidence:
        Raw detector confidence in ``[0, 100]``.
    ts:
        UTC epoch seconds of the anchor candle.
    anchor_index:
        Position of the anchor candle in the analysed sequence.
    support / resistance / height:
        Geometry reported by the detector, see :class:`Detection`.
    """

    symbol: str
    kind: PatternKind
    confidence: float
    ts: int
    anchor_index: int
    support: float | None = None
    resistance: float | None = None
    height: float | None = None
    description: str = ""

    @property
    def bias(self) -> Bias:
        return self.kind.bias

    @property
    def is_chart_pattern(self) -> bool:
        return self.kind.is_chart_pattern

    @property
    def timestamp(self) -> datetime:
        return to_utc_datetime(self.ts)


__all__ = ["Detection", "PatternMatch"]
