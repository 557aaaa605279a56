from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from pattern_signals.services.candles import Candle
from pattern_signals.services.confluence import build_group
from pattern_signals.services.patterns import PatternKind, PatternMatch
from pattern_signals.services.signals import (
    Direction,
    DirectionFilter,
    PatternTypeFilter,
    ScoringConfig,
    SignalScorer,
    Urgency,
    adx_factor,
    age_in_minutes,
    base_quality,
    classify_urgency,
    confluence_bonus,
    filter_signals,
    has_volume_confirmation,
    is_fresh,
    passes_strength_gate,
    risk_reward,
    trend_factor,
    volume_profile,
)
from pattern_signals.services.indicators import TrendDirection

ANCHOR_INDEX = 20
ANCHOR_TS = ANCHOR_INDEX * 300


def _history(anchor_volume: float = 150.0) -> list[Candle]:
    candles = [
        Candle(ts=i * 300, open=100.0, high=100.5, low=99.5, close=100.0, volume=100.0, interval_minutes=5)
        for i in range(ANCHOR_INDEX)
    ]
    candles.append(
        Candle(
            ts=ANCHOR_TS,
            open=100.0,
            high=101.0,
            low=99.0,
            close=100.5,
            volume=anchor_volume,
            interval_minutes=5,
        )
    )
    return candles


def _match(kind: PatternKind, confidence: float, **geometry: float) -> PatternMatch:
    return PatternMatch(
        symbol="AAPL",
        kind=kind,
        confidence=confidence,
        ts=ANCHOR_TS,
        anchor_index=ANCHOR_INDEX,
        **geometry,
    )


def _config(**overrides) -> ScoringConfig:
    as_of = datetime.fromtimestamp(ANCHOR_TS, tz=timezone.utc) + timedelta(minutes=3)
    return ScoringConfig(interval_minutes=5, as_of=as_of, **overrides)


def test_risk_reward_matches_reference_trade():
    risk, reward, ratio = risk_reward(175.23, 172.10, 182.50)
    assert risk == pytest.approx(1.79, abs=0.01)
    assert reward == pytest.approx(4.15, abs=0.01)
    assert ratio == pytest.approx(2.32, abs=0.01)


def test_risk_reward_zero_risk_is_none():
    assert risk_reward(100.0, 100.0, 110.0) is None
    assert risk_reward(0.0, -1.0, 1.0) is None


def test_volume_confirmation_threshold():
    assert has_volume_confirmation(1.5)
    assert not has_volume_confirmation(1.499)


def test_volume_profile_uses_prior_candles_only():
    volume, average, ratio = volume_profile(_history(anchor_volume=300.0))
    assert (volume, average, ratio) == (300.0, 100.0, 3.0)
    assert volume_profile(_history()[-1:]) == (150.0, 0.0, 1.0)


@pytest.mark.parametrize(
    ("age", "expected"),
    [(0, Urgency.URGENT), (4, Urgency.URGENT), (5, Urgency.MODERATE), (14, Urgency.MODERATE), (15, Urgency.WATCH)],
)
def test_urgency_boundaries(age, expected):
    assert classify_urgency(age) is expected


def test_age_and_freshness():
    as_of = datetime.fromtimestamp(600 + 299, tz=timezone.utc)
    assert age_in_minutes(600, as_of) == 4
    assert age_in_minutes(600, datetime.fromtimestamp(0, tz=timezone.utc)) == 0
    assert is_fresh(9, 5)
    assert not is_fresh(10, 5)


def test_confluence_bonus_rules():
    hammer = _match(PatternKind.HAMMER, 70.0)
    double_bottom = _match(PatternKind.DOUBLE_BOTTOM, 80.0)
    flag = _match(PatternKind.BULL_FLAG, 75.0)
    engulfing = _match(PatternKind.BULLISH_ENGULFING, 80.0)
    assert confluence_bonus([hammer]) == 0.0
    assert confluence_bonus([double_bottom, hammer]) == 15.0
    assert confluence_bonus([double_bottom, flag]) == 15.0
    assert confluence_bonus([double_bottom, flag, engulfing]) == 25.0
    assert confluence_bonus([double_bottom, flag, engulfing, hammer]) == 30.0


def test_enhanced_factors():
    assert trend_factor(Direction.LONG, TrendDirection.UPTREND) == 1.2
    assert trend_factor(Direction.SHORT, TrendDirection.UPTREND) == 0.4
    assert trend_factor(Direction.SHORT, TrendDirection.NEUTRAL) == 1.0
    assert adx_factor(10.0) == 0.6
    assert adx_factor(22.0) == 1.0
    assert adx_factor(30.0) == 1.15


def test_chart_pattern_long_uses_measured_move():
    group = build_group([_match(PatternKind.DOUBLE_BOTTOM, 80.0, support=98.0, resistance=102.0, height=4.0)])
    signal = SignalScorer().score(group, _history(), _config())

    assert signal is not None
    assert signal.direction is Direction.LONG
    assert signal.entry_price == pytest.approx(301.5 / 3)
    assert signal.stop_loss == pytest.approx(97.02)
    assert signal.target == pytest.approx(106.0)
    assert signal.stop_loss < signal.entry_price < signal.target
    assert signal.volume_ratio == pytest.approx(1.5)
    assert signal.has_volume_confirmation
    expected = base_quality(80.0, signal.risk_reward_ratio, 1.5, 22)
    assert signal.signal_quality == pytest.approx(expected)
    assert signal.age_minutes == 3
    assert signal.urgency is Urgency.URGENT
    assert signal.is_fresh


def test_candlestick_long_falls_back_to_reward_multiple():
    group = build_group([_match(PatternKind.HAMMER, 70.0, support=99.0, resistance=101.0)])
    signal = SignalScorer().score(group, _history(), _config())

    assert signal is not None
    entry = signal.entry_price
    assert signal.stop_loss == pytest.approx(98.01)
    assert signal.target == pytest.approx(entry + (entry - 98.01) * 3)
    assert signal.risk_reward_ratio == pytest.approx(3.0)


def test_bearish_pattern_yields_short():
    group = build_group([_match(PatternKind.BEARISH_ENGULFING, 80.0, support=99.0, resistance=101.0)])
    signal = SignalScorer().score(group, _history(anchor_volume=100.0), _config())

    assert signal is not None
    assert signal.direction is Direction.SHORT
    assert signal.target < signal.entry_price < signal.stop_loss
    assert signal.stop_loss == pytest.approx(102.01)
    assert not signal.has_volume_confirmation


def test_neutral_group_is_not_tradeable():
    group = build_group([_match(PatternKind.DOJI, 60.0, support=99.0, resistance=101.0)])
    assert SignalScorer().score(group, _history(), _config()) is None


def test_mixed_group_takes_direction_from_directional_member():
    group = build_group(
        [
            _match(PatternKind.DOJI, 90.0, support=99.0, resistance=101.0),
            _match(PatternKind.HAMMER, 70.0, support=99.0, resistance=101.0),
        ]
    )
    signal = SignalScorer().score(group, _history(), _config())
    assert signal is not None
    assert signal.primary.kind is PatternKind.DOJI
    assert signal.direction is Direction.LONG


def test_lookahead_candles_are_rejected():
    group = build_group([_match(PatternKind.HAMMER, 70.0, support=99.0, resistance=101.0)])
    candles = _history()
    later = replace(candles[-1], ts=ANCHOR_TS + 300)
    assert SignalScorer().score(group, candles + [later], _config()) is None


def test_invalid_levels_are_rejected():
    group = build_group([_match(PatternKind.DOUBLE_BOTTOM, 80.0, support=101.5, resistance=102.0, height=0.5)])
    assert SignalScorer().score(group, _history(), _config()) is None


def test_scoring_is_idempotent():
    group = build_group([_match(PatternKind.DOUBLE_BOTTOM, 80.0, support=98.0, resistance=102.0, height=4.0)])
    scorer = SignalScorer()
    assert scorer.score(group, _history(), _config()) == scorer.score(group, _history(), _config())


def test_enhanced_filters_scale_quality():
    group = build_group([_match(PatternKind.DOUBLE_BOTTOM, 80.0, support=98.0, resistance=102.0, height=4.0)])
    plain = SignalScorer().score(group, _history(), _config())
    enhanced = SignalScorer().score(group, _history(), _config(enhanced_filters=True))
    assert plain is not None and enhanced is not None
    assert enhanced.trend is TrendDirection.NEUTRAL
    assert enhanced.adx == 0.0
    assert enhanced.signal_quality == pytest.approx(plain.signal_quality * 0.6)
    assert plain.to_payload()["trend"] is None


def test_payload_shape():
    group = build_group([_match(PatternKind.DOUBLE_BOTTOM, 80.0, support=98.0, resistance=102.0, height=4.0)])
    payload = SignalScorer().score(group, _history(), _config()).to_payload()

    assert payload["pattern"] == "DOUBLE_BOTTOM"
    assert payload["direction"] == "LONG"
    assert payload["timestamp"] == "1970-01-01T01:40:00Z"
    assert payload["stopLoss"] == 97.02
    assert payload["isChartPattern"] is True
    assert payload["isConfluence"] is False
    assert payload["confluentPatterns"] is None
    assert payload["reason"].startswith("DOUBLE_BOTTOM LONG at $100.17 (80% conf) + VOLUME")


def _signals():
    scorer = SignalScorer()
    long_chart = scorer.score(
        build_group([_match(PatternKind.DOUBLE_BOTTOM, 90.0, support=98.0, resistance=102.0, height=4.0)]),
        _history(),
        _config(),
    )
    short_candle = scorer.score(
        build_group([_match(PatternKind.TWEEZER_TOP, 70.0, support=99.0, resistance=101.0)]),
        _history(anchor_volume=100.0),
        _config(),
    )
    return long_chart, short_candle


def test_filters_by_direction_and_type():
    long_chart, short_candle = _signals()
    both = [long_chart, short_candle]
    assert filter_signals(both, _config(direction=DirectionFilter.LONG)) == [long_chart]
    assert filter_signals(both, _config(direction=DirectionFilter.SHORT)) == [short_candle]
    assert filter_signals(both, _config(pattern_type=PatternTypeFilter.CHART_ONLY)) == [long_chart]
    assert filter_signals(both, _config(pattern_type=PatternTypeFilter.CANDLESTICK_ONLY)) == [short_candle]
    assert filter_signals(both, _config(pattern_type=PatternTypeFilter.STRONG_ONLY)) == [long_chart]
    assert filter_signals(both, _config(min_quality=101.0)) == []


def test_strength_gate_requires_volume_for_weak_tiers():
    long_chart, short_candle = _signals()
    assert passes_strength_gate(long_chart) is (long_chart.signal_quality >= 70)
    # Tweezers are tier 3 and this one lacks volume confirmation.
    assert not passes_strength_gate(short_candle)
    assert filter_signals([short_candle], _config(apply_strength_gate=True)) == []
