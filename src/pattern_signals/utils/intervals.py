"""Utilities for validating candle intervals and truncating timestamps.

Intervals are expressed in whole minutes. The helpers centralise validation
so the aggregator, the providers and the HTTP layer share a single source of
truth. Unsupported values raise :class:`BadRequest` so API clients immediately
understand that the request must be fixed.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Dict, Tuple

from pattern_signals.utils.errors import BadRequest

# Ordered from the fastest to the slowest interval; the CCXT token is the
# closest exchange timeframe for each entry.
_INTERVAL_DEFINITIONS: Tuple[Tuple[int, str], ...] = (
    (1, "1m"),
    (2, "2m"),
    (3, "3m"),
    (5, "5m"),
    (10, "10m"),
    (15, "15m"),
    (30, "30m"),
    (60, "1h"),
)

_INTERVAL_TO_CCXT: Dict[int, str] = {minutes: token for minutes, token in _INTERVAL_DEFINITIONS}

SUPPORTED_INTERVALS: Tuple[int, ...] = tuple(minutes for minutes, _ in _INTERVAL_DEFINITIONS)


def parse_interval(value: int | str) -> int:
    """Return ``value`` as a validated interval in minutes.

    Accepts integers and numeric strings (``"5"``) as well as the short
    exchange tokens (``"5m"``, ``"1h"``).
    """
    if isinstance(value, bool):
        raise BadRequest(f"Unsupported interval '{value}'")
    if isinstance(value, str):
        cleaned = value.strip().lower()
        if not cleaned:
            raise BadRequest("Interval cannot be empty")
        for minutes, token in _INTERVAL_DEFINITIONS:
            if cleaned == token:
                return minutes
        try:
            value = int(cleaned)
        except ValueError as exc:
            raise BadRequest(f"Unsupported interval '{value}'") from exc
    if value not in _INTERVAL_TO_CCXT:
        raise BadRequest(
            f"Unsupported interval '{value}'",
            details={"supported": list(SUPPORTED_INTERVALS)},
        )
    return int(value)


def interval_seconds(minutes: int) -> int:
    """Return the interval duration in seconds."""
    return parse_interval(minutes) * 60


def to_timedelta(minutes: int) -> timedelta:
    """Return a timedelta representing the interval duration."""
    return timedelta(seconds=interval_seconds(minutes))


def truncate_epoch(epoch_seconds: int, minutes: int) -> int:
    """Return the start of the interval bucket containing ``epoch_seconds``.

    Uses floor division so instants before the Unix epoch still fall into the
    bucket that starts at or before them.
    """
    step = interval_seconds(minutes)
    return (int(epoch_seconds) // step) * step


def ccxt_timeframe(minutes: int) -> str:
    """Return the exact timeframe token expected by CCXT."""
    return _INTERVAL_TO_CCXT[parse_interval(minutes)]


__all__ = [
    "SUPPORTED_INTERVALS",
    "parse_interval",
    "interval_seconds",
    "to_timedelta",
    "truncate_epoch",
    "ccxt_timeframe",
]
