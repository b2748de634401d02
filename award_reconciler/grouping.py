"""
Partition an itinerary into contiguous runs of one booking classification.

Classification per segment is "unreliable" or, for reliable segments, the
operating airline's alliance key. Unreliable is decided first and
short-circuits the alliance comparison, so two unreliable segments always
share a group even across alliances, and an unreliable segment never joins
a reliable neighbour of the same alliance.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .alliances import alliance_of
from .reliability import ReliabilityTable, is_unreliable
from .schema import FlightSegment, ItineraryCard, SegmentGroup

logger = logging.getLogger(__name__)


def group_segments(
    segments: Sequence[FlightSegment],
    reliability: Optional[ReliabilityTable] = None,
) -> List[SegmentGroup]:
    """
    Group segments by reliability and alliance.

    Args:
        segments: Flight segments in itinerary order
        reliability: Per-airline rules; missing rules fall back to the default

    Returns:
        Groups covering every index exactly once, in order
    """
    table = reliability or ReliabilityTable()
    groups: List[SegmentGroup] = []

    start = 0
    current_unreliable = False
    current_alliance: Optional[str] = None

    for index, segment in enumerate(segments):
        unreliable = is_unreliable(segment, table)
        alliance = None
        if not unreliable:
            key = alliance_of(segment.airline_code)
            alliance = key.value if key is not None else None

        if index == 0:
            start, current_unreliable, current_alliance = 0, unreliable, alliance
            continue

        if unreliable != current_unreliable or (not unreliable and alliance != current_alliance):
            groups.append(SegmentGroup(start, index - 1, current_unreliable, current_alliance))
            start, current_unreliable, current_alliance = index, unreliable, alliance

    if segments:
        groups.append(SegmentGroup(start, len(segments) - 1, current_unreliable, current_alliance))

    logger.debug(f"Grouped {len(segments)} segments into {len(groups)} groups")
    return groups


def group_card(card: ItineraryCard, reliability: Optional[ReliabilityTable] = None) -> List[SegmentGroup]:
    return group_segments(card.segments, reliability)


def group_spans(card: ItineraryCard, groups: Sequence[SegmentGroup]) -> List[str]:
    """Route span key of each group, e.g. ``["JFK-LHR", "LHR-DXB"]``."""
    return [card.span_key(group.start, group.end) for group in groups]


def segments_of(group: SegmentGroup, segments: Sequence[FlightSegment]) -> List[FlightSegment]:
    return list(segments[group.start:group.end + 1])


__all__ = [
    "group_segments",
    "group_card",
    "group_spans",
    "segments_of",
]
