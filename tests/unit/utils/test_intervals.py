from __future__ import annotations

from datetime import timedelta

import pytest

from pattern_signals.utils.errors import BadRequest
from pattern_signals.utils.intervals import (
    SUPPORTED_INTERVALS,
    ccxt_timeframe,
    interval_seconds,
    parse_interval,
    to_timedelta,
    truncate_epoch,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(5, 5), ("15", 15), (" 30 ", 30), ("5m", 5), ("1h", 60), ("1H", 60)],
)
def test_parse_interval_accepts_supported_forms(value, expected):
    assert parse_interval(value) == expected


@pytest.mark.parametrize("value", [0, 4, 240, "", "abc", "4h", True])
def test_parse_interval_rejects_unsupported_values(value):
    with pytest.raises(BadRequest):
        parse_interval(value)


def test_unsupported_interval_lists_supported_values():
    with pytest.raises(BadRequest) as excinfo:
        parse_interval(7)
    assert excinfo.value.details == {"supported": list(SUPPORTED_INTERVALS)}


def test_interval_durations():
    assert interval_seconds(15) == 900
    assert to_timedelta(60) == timedelta(hours=1)


def test_truncate_epoch_floors_to_bucket_start():
    assert truncate_epoch(1_704_880_799, 5) == 1_704_880_500
    assert truncate_epoch(1_704_880_500, 5) == 1_704_880_500
    assert truncate_epoch(-1, 1) == -60


def test_ccxt_timeframe_tokens():
    assert ccxt_timeframe(1) == "1m"
    assert ccxt_timeframe(60) == "1h"
