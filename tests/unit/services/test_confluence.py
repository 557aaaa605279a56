from __future__ import annotations

import pytest

from pattern_signals.services.confluence import build_group, cluster
from pattern_signals.services.patterns import PatternKind, PatternMatch


def _m(kind: PatternKind, confidence: float, ts: int = 600) -> PatternMatch:
    return PatternMatch(symbol="AAPL", kind=kind, confidence=confidence, ts=ts, anchor_index=ts // 300)


def test_same_anchor_matches_form_a_confluence():
    groups = cluster([_m(PatternKind.HAMMER, 72.0), _m(PatternKind.DOUBLE_BOTTOM, 80.0)])
    assert len(groups) == 1
    group = groups[0]
    assert group.primary.kind is PatternKind.DOUBLE_BOTTOM
    assert group.confluence_count == 2
    assert group.combined_confidence == 85.0
    assert group.kinds == ["DOUBLE_BOTTOM", "HAMMER"]
    assert group.description == "DOUBLE_BOTTOM + HAMMER"
    assert group.has_chart_pattern and group.has_candlestick_pattern
    assert group.bullish_count == 2


def test_singleton_keeps_confidence():
    (group,) = cluster([_m(PatternKind.DOJI, 60.0)])
    assert not group.is_confluence
    assert group.confluence_count == 0
    assert group.combined_confidence == 60.0


def test_groups_ordered_by_anchor():
    groups = cluster(
        [_m(PatternKind.DOJI, 60.0, ts=900), _m(PatternKind.HAMMER, 70.0, ts=300)]
    )
    assert [group.ts for group in groups] == [300, 900]


def test_confidence_ties_follow_kind_order():
    group = build_group([_m(PatternKind.TWEEZER_BOTTOM, 70.0), _m(PatternKind.HAMMER, 70.0)])
    assert group.primary.kind is PatternKind.HAMMER


def test_combined_confidence_capped():
    matches = [
        _m(PatternKind.MORNING_STAR, 95.0),
        _m(PatternKind.BULLISH_ENGULFING, 90.0),
        _m(PatternKind.HAMMER, 80.0),
    ]
    assert build_group(matches).combined_confidence == 100.0


def test_mixed_bias_members_stay_together():
    (group,) = cluster([_m(PatternKind.HAMMER, 70.0), _m(PatternKind.SHOOTING_STAR, 70.0)])
    assert group.bullish_count == 1
    assert group.bearish_count == 1


def test_tolerance_chains_nearby_anchors():
    matches = [_m(PatternKind.HAMMER, 70.0, ts=300), _m(PatternKind.DOJI, 60.0, ts=600)]
    assert len(cluster(matches)) == 2
    assert len(cluster(matches, tolerance_seconds=300)) == 1


def test_empty_input():
    assert cluster([]) == []
    with pytest.raises(ValueError):
        build_group([])
