"""Turn confluence groups into scored, tradeable entry signals.

The scorer is a pure function of a :class:`ConfluenceGroup`, the candles up to
(and including) the group's anchor candle and a :class:`ScoringConfig`. It
derives the direction, prices the entry/stop/target, measures volume
confirmation and folds everything into a ``0-100`` quality score:

``100 * (0.40 * confidence/100 + 0.25 * min(rr/3, 1) + 0.20 * min(volume/2, 1)
+ 0.15 * strength/25)`` plus a confluence bonus, optionally multiplied by the
trend and ADX factors of the enhanced filters.

Groups without a usable direction, with zero risk or with prices violating the
direction invariant are non-tradeable: :meth:`SignalScorer.score` returns
``None`` and logs the reason at DEBUG level.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Sequence, Tuple

from loguru import logger

from pattern_signals.services.candles import Candle
from pattern_signals.services.confluence import ConfluenceGroup
from pattern_signals.services.indicators import (
    TrendDirection,
    average_directional_index,
    determine_trend,
)
from pattern_signals.services.levels import LEVEL_LOOKBACK, nearest_resistance, nearest_support
from pattern_signals.services.patterns.kinds import MAX_STRENGTH, Bias
from pattern_signals.services.patterns.models import PatternMatch
from pattern_signals.types import JSONDict
from pattern_signals.utils.timezones import to_utc_datetime

QUALITY_WEIGHTS: Dict[str, float] = {
    "confidence": 0.40,
    "risk_reward": 0.25,
    "volume": 0.20,
    "strength": 0.15,
}
RR_SATURATION = 3.0
VOLUME_SATURATION = 2.0

VOLUME_LOOKBACK = 20
VOLUME_CONFIRMATION_RATIO = 1.5

STOP_BUFFER = 0.01
DEFAULT_REWARD_MULTIPLE = 3.0
EXTENDED_REWARD_MULTIPLE = 4.0
EXTENDED_TARGET_CONFIDENCE = 85.0

URGENT_MINUTES = 5
MODERATE_MINUTES = 15
FRESHNESS_INTERVALS = 2

CONFLUENCE_BONUS: Dict[int, float] = {2: 10.0, 3: 15.0}
CONFLUENCE_BONUS_MAX = 20.0
MIXED_CONFLUENCE_BONUS = 5.0
STRONG_CONFLUENCE_BONUS = 5.0

WITH_TREND_FACTOR = 1.2
COUNTER_TREND_FACTOR = 0.4
WEAK_TREND_ADX = 20.0
STRONG_TREND_ADX = 25.0
WEAK_TREND_FACTOR = 0.6
STRONG_TREND_FACTOR = 1.15

#: Minimum quality (and whether volume confirmation is required) per tier.
STRENGTH_GATE: Dict[int, Tuple[float, bool]] = {
    1: (70.0, False),
    2: (75.0, True),
    3: (85.0, True),
}


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class DirectionFilter(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    ALL = "ALL"


class PatternTypeFilter(str, Enum):
    ALL = "ALL"
    CHART_ONLY = "CHART_ONLY"
    CANDLESTICK_ONLY = "CANDLESTICK_ONLY"
    STRONG_ONLY = "STRONG_ONLY"


class Urgency(str, Enum):
    URGENT = "URGENT"
    MODERATE = "MODERATE"
    WATCH = "WATCH"


@dataclass(frozen=True)
class ScoringConfig:
    """Per-request scoring and filtering options.

    Attributes
    ----------
    interval_minutes:
        Candle interval, drives freshness (``age < 2 * interval``).
    as_of:
        Request time (aware UTC). Ages are measured against it.
    min_quality:
        Signals below this quality are dropped by :func:`filter_signals`.
    direction / pattern_type:
        Post-scoring filters.
    enhanced_filters:
        Apply the trend and ADX multipliers to the quality score.
    apply_strength_gate:
        Apply the per-tier quality and volume requirements.
    """

    interval_minutes: int
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    min_quality: float = 0.0
    direction: DirectionFilter = DirectionFilter.ALL
    pattern_type: PatternTypeFilter = PatternTypeFilter.ALL
    enhanced_filters: bool = False
    apply_strength_gate: bool = False


@dataclass(frozen=True)
class Signal:
    """Scored entry recommendation derived from one confluence group."""

    symbol: str
    group: ConfluenceGroup
    direction: Direction
    entry_price: float
    target: float
    stop_loss: float
    risk_percent: float
    reward_percent: float
    risk_reward_ratio: float
    volume: float
    avg_volume: float
    volume_ratio: float
    has_volume_confirmation: bool
    signal_quality: float
    age_minutes: int
    urgency: Urgency
    is_fresh: bool
    reason: str = ""
    trend: TrendDirection | None = None
    adx: float | None = None

    @property
    def ts(self) -> int:
        return self.group.ts

    @property
    def primary(self) -> PatternMatch:
        return self.group.primary

    @property
    def is_chart_pattern(self) -> bool:
        return self.group.primary.is_chart_pattern

    def to_payload(self) -> JSONDict:
        """Render the camelCase shape consumed by API callers."""
        group = self.group
        return {
            "symbol": self.symbol,
            "pattern": group.primary.kind.value,
            "confidence": round(group.combined_confidence, 2),
            "signalQuality": round(self.signal_quality, 2),
            "entryPrice": round(self.entry_price, 4),
            "target": round(self.target, 4),
            "stopLoss": round(self.stop_loss, 4),
            "riskPercent": round(self.risk_percent, 2),
            "rewardPercent": round(self.reward_percent, 2),
            "riskRewardRatio": round(self.risk_reward_ratio, 2),
            "direction": self.direction.value,
            "timestamp": to_utc_datetime(self.ts).isoformat().replace("+00:00", "Z"),
            "ageMinutes": self.age_minutes,
            "urgency": self.urgency.value,
            "volume": self.volume,
            "avgVolume": round(self.avg_volume, 2),
            "volumeRatio": round(self.volume_ratio, 2),
            "hasVolumeConfirmation": self.has_volume_confirmation,
            "isChartPattern": self.is_chart_pattern,
            "isConfluence": group.is_confluence,
            "confluenceCount": group.confluence_count,
            "confluentPatterns": list(group.kinds) if group.is_confluence else None,
            "isFresh": self.is_fresh,
            "reason": self.reason,
            "trend": self.trend.value if self.trend is not None else None,
            "adx": round(self.adx, 2) if self.adx is not None else None,
        }


def risk_reward(entry: float, stop_loss: float, target: float) -> Tuple[float, float, float] | None:
    """Return ``(risk %, reward %, reward/risk)`` or ``None`` when risk is zero."""
    if entry <= 0:
        return None
    risk_percent = abs(entry - stop_loss) / entry * 100
    reward_percent = abs(target - entry) / entry * 100
    if risk_percent == 0 or not math.isfinite(risk_percent):
        return None
    return risk_percent, reward_percent, reward_percent / risk_percent


def volume_profile(candles: Sequence[Candle]) -> Tuple[float, float, float]:
    """Return ``(anchor volume, trailing average, ratio)`` for the last candle.

    The average covers up to :data:`VOLUME_LOOKBACK` candles before the anchor.
    Without history, or with a zero average, the ratio is neutral (``1.0``).
    """
    anchor = candles[-1]
    history = candles[-(VOLUME_LOOKBACK + 1) : -1]
    if not history:
        return anchor.volume, 0.0, 1.0
    average = sum(candle.volume for candle in history) / len(history)
    if average <= 0:
        return anchor.volume, average, 1.0
    return anchor.volume, average, anchor.volume / average


def has_volume_confirmation(volume_ratio: float) -> bool:
    return volume_ratio >= VOLUME_CONFIRMATION_RATIO


def classify_urgency(age_minutes: float) -> Urgency:
    if age_minutes < URGENT_MINUTES:
        return Urgency.URGENT
    if age_minutes < MODERATE_MINUTES:
        return Urgency.MODERATE
    return Urgency.WATCH


def age_in_minutes(anchor_ts: int, as_of: datetime) -> int:
    """Whole minutes elapsed between the anchor candle start and ``as_of``."""
    elapsed = as_of.timestamp() - anchor_ts
    return max(0, int(math.floor(elapsed / 60)))


def is_fresh(age_minutes: float, interval_minutes: int) -> bool:
    return age_minutes < interval_minutes * FRESHNESS_INTERVALS


def confluence_bonus(members: Sequence[PatternMatch]) -> float:
    """Bonus points for several same-direction patterns on one candle."""
    count = len(members)
    if count < 2:
        return 0.0
    bonus = CONFLUENCE_BONUS.get(count, CONFLUENCE_BONUS_MAX)
    has_chart = any(member.is_chart_pattern for member in members)
    has_candle = any(not member.is_chart_pattern for member in members)
    if has_chart and has_candle:
        bonus += MIXED_CONFLUENCE_BONUS
    if sum(1 for member in members if member.kind.descriptor.tier == 1) >= 2:
        bonus += STRONG_CONFLUENCE_BONUS
    return bonus


def base_quality(confidence: float, rr_ratio: float, volume_ratio: float, strength: float) -> float:
    weights = QUALITY_WEIGHTS
    return 100 * (
        weights["confidence"] * confidence / 100
        + weights["risk_reward"] * min(rr_ratio / RR_SATURATION, 1.0)
        + weights["volume"] * min(volume_ratio / VOLUME_SATURATION, 1.0)
        + weights["strength"] * strength / MAX_STRENGTH
    )


def trend_factor(direction: Direction, trend: TrendDirection) -> float:
    if trend is TrendDirection.NEUTRAL:
        return 1.0
    aligned = (direction is Direction.LONG) == (trend is TrendDirection.UPTREND)
    return WITH_TREND_FACTOR if aligned else COUNTER_TREND_FACTOR


def adx_factor(adx: float) -> float:
    if adx < WEAK_TREND_ADX:
        return WEAK_TREND_FACTOR
    if adx > STRONG_TREND_ADX:
        return STRONG_TREND_FACTOR
    return 1.0


def _group_direction(group: ConfluenceGroup) -> Direction | None:
    for member in group.members:
        if member.bias is Bias.BULLISH:
            return Direction.LONG
        if member.bias is Bias.BEARISH:
            return Direction.SHORT
    return None


def _member_levels(
    member: PatternMatch,
    direction: Direction,
    candles: Sequence[Candle],
    entry: float,
    reward_multiple: float,
) -> Tuple[float, float]:
    """Return ``(stop, target)`` implied by one member."""
    anchor = candles[-1]
    long = direction is Direction.LONG
    if member.is_chart_pattern and member.height and member.support is not None and member.resistance is not None:
        if long:
            return member.support * (1 - STOP_BUFFER), member.resistance + member.height
        return member.resistance * (1 + STOP_BUFFER), member.support - member.height

    if long:
        extreme = member.support if member.support is not None else anchor.low
        stop = extreme * (1 - STOP_BUFFER)
        level = nearest_resistance(candles, entry, LEVEL_LOOKBACK)
        target = level if level is not None else entry + (entry - stop) * reward_multiple
    else:
        extreme = member.resistance if member.resistance is not None else anchor.high
        stop = extreme * (1 + STOP_BUFFER)
        level = nearest_support(candles, entry, LEVEL_LOOKBACK)
        target = level if level is not None else entry - (stop - entry) * reward_multiple
    return stop, target


def _reason(group: ConfluenceGroup, direction: Direction, entry: float, volume_confirmed: bool) -> str:
    if group.is_confluence:
        label = f"{group.description} (CONFLUENCE: {group.confluence_count} patterns)"
    else:
        label = group.primary.kind.value
    reason = f"{label} {direction.value} at ${entry:.2f} ({group.combined_confidence:.0f}% conf)"
    if volume_confirmed:
        reason += " + VOLUME"
    if group.primary.description:
        reason += f": {group.primary.description}"
    return reason


class SignalScorer:
    """Score confluence groups into :class:`Signal` records."""

    def score(
        self, group: ConfluenceGroup, candles: Sequence[Candle], config: ScoringConfig
    ) -> Signal | None:
        """Return the signal for ``group`` or ``None`` when it is not tradeable.

        ``candles`` must end with the anchor candle; any later candle would leak
        the future into stops, targets and volume ratios and is rejected.
        """
        symbol = group.primary.symbol
        if not candles or candles[-1].ts != group.ts or any(candle.ts > group.ts for candle in candles):
            logger.bind(symbol=symbol, ts=group.ts).debug("signal.rejected.lookahead")
            return None

        direction = _group_direction(group)
        if direction is None:
            logger.bind(symbol=symbol, pattern=group.description).debug("signal.rejected.neutral")
            return None
        bias = Bias.BULLISH if direction is Direction.LONG else Bias.BEARISH
        directional = [member for member in group.members if member.bias is bias]

        anchor = candles[-1]
        entry = anchor.typical_price
        volume, avg_volume, ratio = volume_profile(candles)
        confirmed = has_volume_confirmation(ratio)
        multiple = (
            EXTENDED_REWARD_MULTIPLE
            if group.combined_confidence >= EXTENDED_TARGET_CONFIDENCE and confirmed
            else DEFAULT_REWARD_MULTIPLE
        )

        levels = [_member_levels(member, direction, candles, entry, multiple) for member in directional]
        if direction is Direction.LONG:
            stop = max(level[0] for level in levels)
            target = max(level[1] for level in levels)
            valid = stop < entry < target
        else:
            stop = min(level[0] for level in levels)
            target = min(level[1] for level in levels)
            valid = target < entry < stop
        if not valid:
            logger.bind(symbol=symbol, entry=entry, stop=stop, target=target).debug(
                "signal.rejected.levels"
            )
            return None

        measured = risk_reward(entry, stop, target)
        if measured is None:
            logger.bind(symbol=symbol, entry=entry, stop=stop).debug("signal.rejected.zero_risk")
            return None
        risk_percent, reward_percent, rr_ratio = measured

        strength = max(member.kind.descriptor.strength for member in directional)
        quality = base_quality(group.combined_confidence, rr_ratio, ratio, strength)
        quality += confluence_bonus(directional)

        trend: TrendDirection | None = None
        adx: float | None = None
        if config.enhanced_filters:
            trend = determine_trend(candles)
            adx = average_directional_index(candles)
            quality *= trend_factor(direction, trend) * adx_factor(adx)
        quality = min(100.0, max(0.0, quality))

        age = age_in_minutes(group.ts, config.as_of)
        return Signal(
            symbol=symbol,
            group=group,
            direction=direction,
            entry_price=entry,
            target=target,
            stop_loss=stop,
            risk_percent=risk_percent,
            reward_percent=reward_percent,
            risk_reward_ratio=rr_ratio,
            volume=volume,
            avg_volume=avg_volume,
            volume_ratio=ratio,
            has_volume_confirmation=confirmed,
            signal_quality=quality,
            age_minutes=age,
            urgency=classify_urgency(age),
            is_fresh=is_fresh(age, config.interval_minutes),
            reason=_reason(group, direction, entry, confirmed),
            trend=trend,
            adx=adx,
        )


def passes_strength_gate(signal: Signal) -> bool:
    """Apply the per-tier quality and volume requirements to the primary kind."""
    gate = STRENGTH_GATE.get(signal.primary.kind.descriptor.tier)
    if gate is None:
        return False
    minimum, needs_volume = gate
    if signal.signal_quality < minimum:
        return False
    return signal.has_volume_confirmation or not needs_volume


def _matches_pattern_type(signal: Signal, pattern_type: PatternTypeFilter) -> bool:
    if pattern_type is PatternTypeFilter.CHART_ONLY:
        return signal.is_chart_pattern
    if pattern_type is PatternTypeFilter.CANDLESTICK_ONLY:
        return not signal.is_chart_pattern
    if pattern_type is PatternTypeFilter.STRONG_ONLY:
        return signal.primary.kind.descriptor.tier == 1
    return True


def filter_signals(signals: Iterable[Signal], config: ScoringConfig) -> List[Signal]:
    """Apply quality, direction, pattern type and strength filters."""
    kept: List[Signal] = []
    for signal in signals:
        if signal.signal_quality < config.min_quality:
            continue
        if config.direction is not DirectionFilter.ALL and signal.direction.value != config.direction.value:
            continue
        if not _matches_pattern_type(signal, config.pattern_type):
            continue
        if config.apply_strength_gate and not passes_strength_gate(signal):
            continue
        kept.append(signal)
    return kept


__all__ = [
    "QUALITY_WEIGHTS",
    "VOLUME_CONFIRMATION_RATIO",
    "Direction",
    "DirectionFilter",
    "PatternTypeFilter",
    "Urgency",
    "ScoringConfig",
    "Signal",
    "SignalScorer",
    "risk_reward",
    "volume_profile",
    "has_volume_confirmation",
    "classify_urgency",
    "age_in_minutes",
    "is_fresh",
    "confluence_bonus",
    "base_quality",
    "trend_factor",
    "adx_factor",
    "passes_strength_gate",
    "filter_signals",
]
