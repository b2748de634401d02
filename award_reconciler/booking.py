"""
Booking-option aggregation for segment groups.

For each group this lists every loyalty program that can plausibly book it
(alliance partners and bonus-earning relationships) and the subset that the
operating carriers all recommend and that live verification supports.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from .alliances import AirlineCatalog, Alliance
from .config import get_config
from .schema import AirlineRecord, BookingOption, BookingOptions, FlightSegment, SegmentGroup

logger = logging.getLogger(__name__)


def operating_codes(group: SegmentGroup, segments: Sequence[FlightSegment]) -> List[str]:
    """Distinct airline codes flying the group, in first-seen order."""
    codes: List[str] = []
    for segment in segments[group.start:group.end + 1]:
        if segment.airline_code not in codes:
            codes.append(segment.airline_code)
    return codes


def recommended_programs(
    codes: Iterable[str],
    catalog: AirlineCatalog,
    supported: Iterable[str],
) -> FrozenSet[str]:
    """
    Programs every operating carrier recommends, limited to supported ones.

    A carrier missing from the catalog or with no recommendations empties
    the result.
    """
    result: Optional[set] = None
    for code in codes:
        record = catalog.get(code)
        recommends = set(record.recommend) if record else set()
        result = recommends if result is None else result & recommends
        if not result:
            return frozenset()
    if result is None:
        return frozenset()
    return frozenset(result & {s.upper() for s in supported})


def booking_options(
    group: SegmentGroup,
    segments: Sequence[FlightSegment],
    catalog: AirlineCatalog,
    supported: Optional[Iterable[str]] = None,
) -> BookingOptions:
    """
    Compute booking options for one group.

    Args:
        group: The segment group
        segments: All segments of the itinerary
        catalog: Airline catalog
        supported: Programs live verification supports (default: from config)

    Returns:
        BookingOptions with all candidates sorted by name and the recommended codes
    """
    if supported is None:
        supported = get_config().live_verification_programs

    codes = operating_codes(group, segments)

    candidates: Dict[str, AirlineRecord] = {}
    if not group.is_unreliable and group.alliance is not None:
        for record in catalog.alliance_members(Alliance(group.alliance)):
            candidates.setdefault(record.code, record)
    for record in catalog.bonus_providers(codes):
        candidates.setdefault(record.code, record)
    for record in catalog.bonus_recipients(codes):
        candidates.setdefault(record.code, record)

    all_options = sorted(
        (BookingOption.from_record(r) for r in candidates.values()),
        key=lambda o: (o.name.lower(), o.airline_code),
    )

    recommended: FrozenSet[str] = frozenset()
    if not group.is_unreliable:
        recommended = recommended_programs(codes, catalog, supported)

    return BookingOptions(all=all_options, recommended=recommended)


def options_for_groups(
    groups: Sequence[SegmentGroup],
    segments: Sequence[FlightSegment],
    catalog: AirlineCatalog,
    supported: Optional[Iterable[str]] = None,
) -> List[BookingOptions]:
    return [booking_options(g, segments, catalog, supported) for g in groups]


__all__ = [
    "operating_codes",
    "recommended_programs",
    "booking_options",
    "options_for_groups",
]
