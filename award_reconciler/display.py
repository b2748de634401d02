"""
Render-side helpers for verification outcomes.

A multi-group merged result covers several groups with one price. Only the
first of those groups in scan order shows it; the others are hidden so the
same span is never priced twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .live_schema import (
    LiveSearchResponse,
    LiveSearchResult,
    LiveSegment,
    MergedResult,
    PriceBundle,
)
from .schema import FlightSegment, ItineraryCard, SegmentGroup
from .utils import normalize_flight_number


@dataclass(frozen=True)
class VisibleResult:
    """A result shown next to one group."""
    group: SegmentGroup
    span: str
    result: LiveSearchResult

    @property
    def merged(self) -> bool:
        return isinstance(self.result, MergedResult)


def _result_for(group: SegmentGroup, results: Dict[str, LiveSearchResult]) -> Optional[LiveSearchResult]:
    individual = None
    for result in results.values():
        if group.start not in result.group_starts:
            continue
        if isinstance(result, MergedResult) and len(result.group_starts) >= 2:
            return result
        individual = result
    return individual


def visible_results(
    card: ItineraryCard,
    groups: Sequence[SegmentGroup],
    results: Dict[str, LiveSearchResult],
) -> List[VisibleResult]:
    """
    Results to render, one per shown group, in scan order.

    Groups without a result are skipped.
    """
    shown_spans = set()
    visible: List[VisibleResult] = []

    for group in groups:
        result = _result_for(group, results)
        if result is None:
            continue
        if isinstance(result, MergedResult) and len(result.group_starts) >= 2:
            if result.span in shown_spans:
                continue
            shown_spans.add(result.span)
            visible.append(VisibleResult(group, result.span, result))
        else:
            visible.append(VisibleResult(group, card.span_key(group.start, group.end), result))

    return visible


@dataclass(frozen=True)
class MatchedFlight:
    """A live segment paired with the card segment it confirms."""
    segment: LiveSegment
    original: FlightSegment
    route: str
    pricing: List[PriceBundle]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segment": self.segment.model_dump(by_alias=True, exclude_none=True),
            "original_flight": self.original.to_dict(),
            "route": self.route,
            "pricing": [b.model_dump(by_alias=True, exclude_none=True) for b in self.pricing],
        }


def find_matching_flights(
    response: Optional[LiveSearchResponse],
    segments: Sequence[FlightSegment],
    route: str,
) -> List[MatchedFlight]:
    """
    Pair live-search segments with card segments by flight number.

    Each match carries the price bundles of the option it came from.
    """
    if response is None:
        return []

    by_number = {normalize_flight_number(s.flight_number): s for s in segments}
    matches: List[MatchedFlight] = []
    for option in response.itinerary:
        for live in option.segments:
            original = by_number.get(normalize_flight_number(live.flightnumber))
            if original is not None:
                matches.append(MatchedFlight(live, original, route, list(option.bundles)))
    return matches


__all__ = [
    "VisibleResult",
    "visible_results",
    "MatchedFlight",
    "find_matching_flights",
]
