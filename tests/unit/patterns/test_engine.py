from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import (
    DOUBLE_BOTTOM_ANCHOR,
    PATTERN_START,
    SCENARIO_CANDLES,
    build_double_bottom_series,
    candles_to_ticks,
)
from pattern_signals.services.candles import Candle, build_candles
from pattern_signals.services.confluence import cluster
from pattern_signals.services.patterns import (
    DESCRIPTORS,
    DETECTORS,
    Bias,
    Detection,
    PatternEngine,
    PatternKind,
    detect,
)
from pattern_signals.services.patterns.engine import (
    filter_by_bias,
    filter_by_confidence,
    recent,
    summarize,
)
from pattern_signals.services.signals import Direction, ScoringConfig, SignalScorer


@pytest.fixture(scope="module")
def series() -> list[Candle]:
    return build_double_bottom_series()[600:760]


@pytest.fixture(scope="module")
def matches(series):
    return PatternEngine().scan(series, "AAPL")


def test_every_kind_has_a_detector_and_descriptor():
    assert set(DETECTORS) == set(PatternKind)
    assert set(DESCRIPTORS) == set(PatternKind)


def test_kind_descriptors():
    assert PatternKind.DOUBLE_BOTTOM.is_chart_pattern
    assert PatternKind.DOUBLE_BOTTOM.bias is Bias.BULLISH
    assert not PatternKind.HAMMER.is_chart_pattern
    assert PatternKind.DOJI.bias is Bias.NEUTRAL
    assert PatternKind.MORNING_STAR.required_candles == 3


def test_scan_finds_the_double_bottom(matches, series):
    anchor_index = DOUBLE_BOTTOM_ANCHOR - 600
    doubles = [match for match in matches if match.kind is PatternKind.DOUBLE_BOTTOM]
    assert len(doubles) == 1
    match = doubles[0]
    assert match.anchor_index == anchor_index
    assert match.ts == series[anchor_index].ts
    assert match.symbol == "AAPL"
    assert match.bias is Bias.BULLISH


def test_scan_is_ordered_and_deterministic(matches, series):
    keys = [(match.ts, list(PatternKind).index(match.kind)) for match in matches]
    assert keys == sorted(keys)
    assert PatternEngine().scan(series, "AAPL") == matches


def test_scan_never_looks_ahead(matches, series):
    cut = DOUBLE_BOTTOM_ANCHOR - 600 + 1
    prefix_matches = PatternEngine().scan(series[:cut], "AAPL")
    assert prefix_matches == [match for match in matches if match.anchor_index < cut]


def test_detect_requires_enough_candles(series):
    assert detect(PatternKind.DOUBLE_BOTTOM, series, 13, "AAPL") is None
    assert detect(PatternKind.DOUBLE_BOTTOM, series, len(series), "AAPL") is None


def test_custom_detectors_and_confidence_clamp(series):
    engine = PatternEngine({PatternKind.DOJI: lambda window, index: Detection(confidence=150.0)})
    found = engine.scan(series[:3], "X")
    assert [match.confidence for match in found] == [100.0, 100.0, 100.0]


def test_empty_scan():
    assert PatternEngine().scan([], "AAPL") == []


def test_match_helpers(matches):
    newest = recent(matches, 2)
    assert len(newest) == 2
    assert newest[0].ts >= newest[1].ts
    assert recent(matches, 0) == []

    bullish = filter_by_bias(matches, Bias.BULLISH)
    assert bullish and all(match.bias is Bias.BULLISH for match in bullish)
    assert all(match.confidence >= 80 for match in filter_by_confidence(matches, 80))

    summary = summarize(matches)
    assert summary["total"] == len(matches)
    assert summary["bullish"] + summary["bearish"] + summary["neutral"] == len(matches)
    assert summary["by_kind"]["DOUBLE_BOTTOM"] == 1
    assert summary["chart_patterns"] >= 1


def test_three_day_tick_feed_yields_one_double_bottom():
    source = build_double_bottom_series()
    ticks, volumes = candles_to_ticks(source)
    candles = build_candles(ticks, volumes, 5, tick_zone="Asia/Jerusalem", volume_zone="America/New_York")

    assert len(candles) == SCENARIO_CANDLES
    assert candles == source

    matches = PatternEngine().scan(candles, "AAPL")
    doubles = [match for match in matches if match.kind is PatternKind.DOUBLE_BOTTOM]
    assert [match.anchor_index for match in doubles] == [DOUBLE_BOTTOM_ANCHOR]

    first_low = min(range(PATTERN_START, DOUBLE_BOTTOM_ANCHOR), key=lambda i: candles[i].low)
    assert DOUBLE_BOTTOM_ANCHOR - first_low == 5
    assert doubles[0].support == pytest.approx(candles[first_low].low)

    anchor = candles[DOUBLE_BOTTOM_ANCHOR]
    group = next(group for group in cluster(matches) if group.ts == anchor.ts)
    config = ScoringConfig(
        interval_minutes=5,
        as_of=datetime.fromtimestamp(anchor.ts, tz=timezone.utc) + timedelta(minutes=3),
    )
    signal = SignalScorer().score(group, candles[: DOUBLE_BOTTOM_ANCHOR + 1], config)
    assert signal is not None
    assert signal.direction is Direction.LONG
    assert signal.primary.kind is PatternKind.DOUBLE_BOTTOM
    assert signal.has_volume_confirmation
