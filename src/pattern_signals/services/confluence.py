"""Group co-anchored pattern matches into confluence groups.

Matches anchored on the same candle reinforce each other. The clusterer sorts
matches once by anchor time and partitions them into groups; inside a group
members are ordered by descending confidence (ties broken by kind declaration
order) so the first member is the primary match.

``combined_confidence`` boosts the primary confidence by
:data:`CONFLUENCE_INCREMENT` points for every additional member and caps the
result at 100. A singleton group passes the confidence through unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import groupby
from typing import List, Sequence, Tuple

from loguru import logger

from pattern_signals.services.patterns.kinds import KIND_ORDER, Bias
from pattern_signals.services.patterns.models import PatternMatch

#: Confidence points added for each member beyond the primary match.
CONFLUENCE_INCREMENT = 5.0


@dataclass(frozen=True)
class ConfluenceGroup:
    """Matches sharing an anchor, primary first."""

    primary: PatternMatch
    members: Tuple[PatternMatch, ...]
    combined_confidence: float

    @property
    def ts(self) -> int:
        return self.primary.ts

    @property
    def is_confluence(self) -> bool:
        return len(self.members) >= 2

    @property
    def confluence_count(self) -> int:
        """Number of members when the group is a confluence, ``0`` otherwise."""
        return len(self.members) if self.is_confluence else 0

    @property
    def kinds(self) -> List[str]:
        """Distinct member kind names in member order."""
        return list(dict.fromkeys(member.kind.value for member in self.members))

    @property
    def description(self) -> str:
        return " + ".join(self.kinds)

    @property
    def bullish_count(self) -> int:
        return sum(1 for member in self.members if member.bias is Bias.BULLISH)

    @property
    def bearish_count(self) -> int:
        return sum(1 for member in self.members if member.bias is Bias.BEARISH)

    @property
    def has_chart_pattern(self) -> bool:
        return any(member.is_chart_pattern for member in self.members)

    @property
    def has_candlestick_pattern(self) -> bool:
        return any(not member.is_chart_pattern for member in self.members)


def _member_order(match: PatternMatch) -> Tuple[float, int]:
    return (-match.confidence, KIND_ORDER[match.kind])


def build_group(members: Sequence[PatternMatch]) -> ConfluenceGroup:
    """Return the group formed by ``members`` (at least one match)."""
    if not members:
        raise ValueError("A confluence group needs at least one match")
    ordered = tuple(sorted(members, key=_member_order))
    primary = ordered[0]
    combined = min(100.0, primary.confidence + CONFLUENCE_INCREMENT * (len(ordered) - 1))
    return ConfluenceGroup(primary=primary, members=ordered, combined_confidence=combined)


def cluster(matches: Sequence[PatternMatch], tolerance_seconds: int = 0) -> List[ConfluenceGroup]:
    """Partition ``matches`` into confluence groups ordered by anchor time.

    With the default ``tolerance_seconds=0`` only identical anchors group
    together. A positive tolerance chains matches whose anchor lies within the
    tolerance of the first anchor of the current group.
    """
    if not matches:
        return []
    ordered = sorted(matches, key=lambda match: (match.ts, KIND_ORDER[match.kind]))
    if tolerance_seconds <= 0:
        partitions = [list(items) for _, items in groupby(ordered, key=lambda match: match.ts)]
    else:
        partitions = []
        for match in ordered:
            if partitions and match.ts - partitions[-1][0].ts <= tolerance_seconds:
                partitions[-1].append(match)
            else:
                partitions.append([match])
    groups = [build_group(partition) for partition in partitions]
    logger.bind(
        matches=len(matches),
        groups=len(groups),
        confluences=sum(1 for group in groups if group.is_confluence),
    ).debug("confluence.clustered")
    return groups


__all__ = ["CONFLUENCE_INCREMENT", "ConfluenceGroup", "build_group", "cluster"]
