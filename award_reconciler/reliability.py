"""
Reliability classification for published award availability.

A cabin is reliable on a segment when its seat count reaches the operating
airline's minimum (or 1 for exempted cabins). A segment with no reliable cabin
is treated as a cash or positioning leg.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .schema import FlightSegment, ReliabilityRule
from .types import CABIN_CLASSES

logger = logging.getLogger(__name__)

DEFAULT_RULE = ReliabilityRule()


class ReliabilityTable:
    """Per-airline reliability rules with a permissive default."""

    def __init__(self, rules: Optional[Mapping[str, ReliabilityRule]] = None):
        self._rules: Dict[str, ReliabilityRule] = {
            code.upper(): rule for code, rule in (rules or {}).items()
        }

    def rule_for(self, airline_code: str) -> ReliabilityRule:
        return self._rules.get(airline_code.upper(), DEFAULT_RULE)

    def __contains__(self, airline_code: str) -> bool:
        return airline_code.upper() in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    @classmethod
    def from_rows(cls, rows: Iterable[Dict[str, Any]]) -> "ReliabilityTable":
        """Build from directory rows ``{code, min_count, exemption}``."""
        rules = {}
        for row in rows:
            code = (row.get("code") or row.get("airline") or "").upper()
            if not code:
                logger.debug(f"Skipping reliability row without code: {row}")
                continue
            rules[code] = ReliabilityRule.from_dict(row)
        return cls(rules)


def is_class_reliable(segment: FlightSegment, cabin: str, rule: Optional[ReliabilityRule] = None) -> bool:
    rule = rule or DEFAULT_RULE
    return segment.seat_count(cabin) >= rule.threshold(cabin)


def is_segment_reliable(segment: FlightSegment, rule: Optional[ReliabilityRule] = None) -> bool:
    """True iff at least one cabin meets its effective minimum."""
    return any(is_class_reliable(segment, cabin, rule) for cabin in CABIN_CLASSES)


def is_unreliable(segment: FlightSegment, table: ReliabilityTable) -> bool:
    return not is_segment_reliable(segment, table.rule_for(segment.airline_code))


def unreliable_classes(segment: FlightSegment, rule: Optional[ReliabilityRule] = None) -> List[str]:
    """Cabins that show seats but fall short of the reliability threshold."""
    return [
        cabin for cabin in CABIN_CLASSES
        if segment.seat_count(cabin) > 0 and not is_class_reliable(segment, cabin, rule)
    ]


def unreliable_share(segments: Iterable[FlightSegment], table: ReliabilityTable) -> float:
    """
    Fraction of total flight time spent on unreliable segments.

    Returns 0.0 for an itinerary with no recorded duration.
    """
    total = 0
    unreliable = 0
    for segment in segments:
        total += segment.total_duration
        if is_unreliable(segment, table):
            unreliable += segment.total_duration
    if total == 0:
        return 0.0
    return unreliable / total


__all__ = [
    "DEFAULT_RULE",
    "ReliabilityTable",
    "is_class_reliable",
    "is_segment_reliable",
    "is_unreliable",
    "unreliable_classes",
    "unreliable_share",
]
