"""Conversions between zone-local wall clocks and UTC epoch seconds.

Raw ticks arrive as wall-clock strings recorded in the tick zone, while
volume records carry an epoch whose *calendar fields*, read as UTC, are the
local time of the volume zone. Both need to land on the same UTC instant
before candles can be assembled.

DST handling follows ``zoneinfo`` with ``fold=0``:

* an ambiguous wall clock (fall-back overlap) resolves to the earlier instant;
* a non-existent wall clock (spring-forward gap) is read with the offset in
  force before the transition, i.e. it lands one gap-length later in local
  terms.
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pattern_signals.utils.errors import BadRequest

LOCAL_FORMAT = "%Y-%m-%d %H:%M:%S"


@lru_cache(maxsize=32)
def get_zone(name: str) -> ZoneInfo:
    """Return the cached :class:`ZoneInfo` for ``name``."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise BadRequest(f"Unknown timezone '{name}'") from exc


def parse_local(text: str, zone: str) -> datetime:
    """Parse a ``YYYY-MM-DD HH:MM:SS`` wall clock as an aware datetime in ``zone``."""
    try:
        naive = datetime.strptime(text.strip(), LOCAL_FORMAT)
    except (AttributeError, ValueError) as exc:
        raise BadRequest(
            f"Malformed local timestamp '{text}'",
            details={"expected_format": LOCAL_FORMAT},
        ) from exc
    return naive.replace(tzinfo=get_zone(zone), fold=0)


def local_to_epoch(text: str, zone: str) -> int:
    """Return the UTC epoch seconds of a wall clock recorded in ``zone``."""
    return int(parse_local(text, zone).timestamp())


def format_local(epoch_seconds: int, zone: str) -> str:
    """Render ``epoch_seconds`` as a wall clock in ``zone``.

    ``local_to_epoch(format_local(e, z), z) == e`` holds for every instant
    outside the second occurrence of a fall-back hour.
    """
    moment = datetime.fromtimestamp(int(epoch_seconds), tz=get_zone(zone))
    return moment.strftime(LOCAL_FORMAT)


def reinterpret_epoch(epoch_seconds: int, zone: str) -> int:
    """Reinterpret an epoch whose UTC calendar fields are local time in ``zone``.

    The epoch is rendered as a UTC wall clock, the same year/month/day/hour/
    minute/second fields are then read as local time in ``zone`` and the true
    UTC instant of that local time is returned.
    """
    wall = datetime.fromtimestamp(int(epoch_seconds), tz=timezone.utc)
    local = wall.replace(tzinfo=get_zone(zone), fold=0)
    return int(local.timestamp())


def to_utc_datetime(epoch_seconds: int) -> datetime:
    """Return an aware UTC datetime for ``epoch_seconds``."""
    return datetime.fromtimestamp(int(epoch_seconds), tz=timezone.utc)


__all__ = [
    "LOCAL_FORMAT",
    "get_zone",
    "parse_local",
    "local_to_epoch",
    "format_local",
    "reinterpret_epoch",
    "to_utc_datetime",
]
