"""
Live verification of an itinerary card's award availability.

A verification request takes the program a user picked for each verifiable
segment group and confirms availability against the live-search backend:

1. Adjacent groups booked through the same program are tried as one merged
   lookup over their combined span.
2. A merged result is accepted only when one of its itinerary options flies
   every segment of every merged group; otherwise those groups fall back to
   their own lookups.
3. All remaining groups are looked up individually and concurrently.

A failed lookup leaves its span without a result and never fails the request.

Usage:
    >>> verifier = LiveVerifier(catalog=catalog, reliability=table)
    >>> outcome = verifier.verify_sync(card, {0: "AS", 1: "AS"}, seats=2)
    >>> outcome.state
    <VerificationState.SUCCESS: 'success'>
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .alliances import AirlineCatalog
from .async_api import cached_search
from .booking import booking_options
from .cache import LiveSearchCache, get_live_search_cache
from .config import get_config
from .errors import VerificationError, rejected_selection
from .grouping import group_segments
from .live_schema import (
    IndividualResult,
    LiveSearchResponse,
    LiveSearchResult,
    LookupFailure,
    MergedResult,
)
from .live_search import LiveSearchClient
from .reliability import ReliabilityTable
from .schema import BookingOptions, ItineraryCard, SegmentGroup
from .utils import depart_date_for, normalize_flight_number

logger = logging.getLogger(__name__)

GroupKey = Union[int, str]
"""A group is selected by its start index or by its route span, e.g. "SEA-NRT"."""


class VerificationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"


# ============================================================================
# Planning
# ============================================================================

@dataclass
class CardPlan:
    """Groups of a card with their spans and booking options."""
    card: ItineraryCard
    groups: List[SegmentGroup]
    spans: List[str]
    options: List[BookingOptions]

    def find(self, key: GroupKey) -> Optional[int]:
        """Position of the group with this start index or span."""
        for position, group in enumerate(self.groups):
            if isinstance(key, int) and group.start == key:
                return position
            if isinstance(key, str) and self.spans[position] == key.upper():
                return position
        return None

    def to_dict(self) -> dict:
        return {
            "card_key": self.card.card_key,
            "groups": [
                {**g.to_dict(), "span": s, "options": o.to_dict()}
                for g, s, o in zip(self.groups, self.spans, self.options)
            ],
        }


def plan_card(
    card: ItineraryCard,
    catalog: AirlineCatalog,
    reliability: Optional[ReliabilityTable] = None,
    supported: Optional[Sequence[str]] = None,
) -> CardPlan:
    groups = group_segments(card.segments, reliability)
    return CardPlan(
        card=card,
        groups=groups,
        spans=[card.span_key(g.start, g.end) for g in groups],
        options=[booking_options(g, card.segments, catalog, supported) for g in groups],
    )


@dataclass(frozen=True)
class GroupSelection:
    """The program chosen to verify one group."""
    group: SegmentGroup
    span: str
    program: str


@dataclass
class MergeCandidate:
    """A maximal run of route-adjacent selections sharing one program."""
    program: str
    selections: List[GroupSelection] = field(default_factory=list)

    @property
    def start(self) -> int:
        return self.selections[0].group.start

    @property
    def end(self) -> int:
        return self.selections[-1].group.end

    @property
    def is_multi(self) -> bool:
        return len(self.selections) >= 2

    def accepts(self, selection: GroupSelection) -> bool:
        return selection.program == self.program and self.end + 1 == selection.group.start


def validate_selections(
    plan: CardPlan,
    selections: Mapping[GroupKey, Optional[str]],
    seats: int,
) -> List[GroupSelection]:
    """
    Resolve user selections against a card plan.

    Returns:
        Selections in scan order

    Raises:
        VerificationRejected: If the request cannot be started
    """
    card_key = plan.card.card_key
    chosen = {k: v for k, v in selections.items() if v}

    if not chosen:
        raise rejected_selection("No program selected for verification", card_key=card_key)
    if seats < 1:
        raise rejected_selection(f"Seat count must be at least 1, got {seats}", card_key=card_key)

    by_position: Dict[int, str] = {}
    for key, program in chosen.items():
        position = plan.find(key)
        if position is None:
            raise rejected_selection(f"No segment group matches {key!r}", card_key=card_key, group=key)

        group = plan.groups[position]
        span = plan.spans[position]
        if group.is_unreliable:
            raise rejected_selection(f"Group {span} is unreliable and cannot be verified", card_key=card_key, span=span)

        program = program.upper()
        if program not in plan.options[position].recommended:
            raise rejected_selection(
                f"{program} is not a recommended program for {span}",
                card_key=card_key,
                span=span,
                program=program,
            )
        by_position[position] = program

    missing = [
        plan.spans[i]
        for i, (group, options) in enumerate(zip(plan.groups, plan.options))
        if not group.is_unreliable and options.offered_for_verification and i not in by_position
    ]
    if missing:
        raise rejected_selection(
            f"Select a program for every verifiable group; missing {', '.join(missing)}",
            card_key=card_key,
            missing=missing,
        )

    return [
        GroupSelection(plan.groups[i], plan.spans[i], by_position[i])
        for i in sorted(by_position)
    ]


def build_merge_candidates(selections: Sequence[GroupSelection]) -> List[MergeCandidate]:
    """
    Partition selections, in scan order, into maximal same-program runs of
    route-adjacent groups.
    """
    candidates: List[MergeCandidate] = []
    for selection in selections:
        if candidates and candidates[-1].accepts(selection):
            candidates[-1].selections.append(selection)
        else:
            candidates.append(MergeCandidate(selection.program, [selection]))
    return candidates


def required_flight_numbers(card: ItineraryCard, candidate: MergeCandidate) -> List[str]:
    """Flight numbers of every segment in every group of a candidate."""
    return [
        normalize_flight_number(card.segments[i].flight_number)
        for selection in candidate.selections
        for i in selection.group.indices
    ]


# ============================================================================
# Outcome
# ============================================================================

@dataclass
class VerificationOutcome:
    """Results of one verification request, keyed by route span."""
    card_key: str
    generation: int
    state: VerificationState
    results: Dict[str, LiveSearchResult] = field(default_factory=dict)
    failures: Dict[str, LookupFailure] = field(default_factory=dict)
    stale: bool = False

    def to_dict(self) -> dict:
        return {
            "card_key": self.card_key,
            "generation": self.generation,
            "state": self.state.value,
            "stale": self.stale,
            "results": {k: v.model_dump(mode="json", by_alias=True) for k, v in self.results.items()},
            "failures": {k: v.model_dump(mode="json") for k, v in self.failures.items()},
        }


# ============================================================================
# Verifier
# ============================================================================

class LiveVerifier:
    """
    Runs verification requests and keeps the latest outcome per card.

    Args:
        client: Live-search client (default: new client from config)
        cache: Live-search cache (default: the process-wide cache)
        catalog: Airline catalog used for booking options
        reliability: Reliability rules used for grouping
        supported: Programs live verification supports (default: from config)
        lookup_timeout: Upper bound on one lookup in seconds (default: from config)
    """

    def __init__(
        self,
        client: Optional[LiveSearchClient] = None,
        cache: Optional[LiveSearchCache] = None,
        catalog: Optional[AirlineCatalog] = None,
        reliability: Optional[ReliabilityTable] = None,
        supported: Optional[Sequence[str]] = None,
        lookup_timeout: Optional[float] = None,
    ):
        config = get_config()
        self.client = client or LiveSearchClient()
        self.cache = cache if cache is not None else get_live_search_cache()
        self.catalog = catalog or AirlineCatalog()
        self.reliability = reliability or ReliabilityTable()
        self.supported = list(supported) if supported is not None else list(config.live_verification_programs)
        self.lookup_timeout = lookup_timeout if lookup_timeout is not None else config.lookup_timeout_seconds

        self._generations: Dict[str, int] = {}
        self._states: Dict[str, VerificationState] = {}
        self._outcomes: Dict[str, VerificationOutcome] = {}

    def plan(self, card: ItineraryCard) -> CardPlan:
        return plan_card(card, self.catalog, self.reliability, self.supported)

    def state(self, card_key: str) -> VerificationState:
        return self._states.get(card_key, VerificationState.IDLE)

    def latest(self, card_key: str) -> Optional[VerificationOutcome]:
        return self._outcomes.get(card_key)

    def generation(self, card_key: str) -> int:
        return self._generations.get(card_key, 0)

    async def _lookup(
        self,
        program: str,
        from_iata: str,
        to_iata: str,
        depart: str,
        seats: int,
    ) -> Tuple[LiveSearchResponse, bool]:
        # Verification makes one attempt per span; a failure leaves the span empty
        lookup = cached_search(
            self.client, self.cache, program, from_iata, to_iata, depart, seats, retry=False
        )
        if self.lookup_timeout is None:
            return await lookup
        return await asyncio.wait_for(lookup, timeout=self.lookup_timeout)

    async def _try_merge(
        self,
        card: ItineraryCard,
        candidate: MergeCandidate,
        seats: int,
    ) -> Optional[MergedResult]:
        span = card.span_key(candidate.start, candidate.end)
        depart = depart_date_for(card.date, card.segments[candidate.start].departs_at)
        from_iata, to_iata = span.split("-")

        try:
            response, hit = await self._lookup(candidate.program, from_iata, to_iata, depart, seats)
        except Exception as e:
            logger.warning(f"Merged lookup {candidate.program} {span} {depart} failed, falling back: {e}")
            return None

        required = required_flight_numbers(card, candidate)
        if not response.covers(required):
            logger.info(f"Merged lookup {candidate.program} {span} does not cover {required}, falling back")
            return None

        return MergedResult(
            span=span,
            program=candidate.program,
            depart=depart,
            routes=[s.span for s in candidate.selections],
            group_starts=[s.group.start for s in candidate.selections],
            data=response,
            from_cache=hit,
        )

    async def _lookup_group(
        self,
        card: ItineraryCard,
        selection: GroupSelection,
        seats: int,
    ) -> Union[IndividualResult, LookupFailure]:
        depart = depart_date_for(card.date, card.segments[selection.group.start].departs_at)
        from_iata, to_iata = selection.span.split("-")
        common = dict(
            span=selection.span,
            program=selection.program,
            depart=depart,
            routes=[selection.span],
            group_starts=[selection.group.start],
        )

        try:
            response, hit = await self._lookup(selection.program, from_iata, to_iata, depart, seats)
        except Exception as e:
            logger.warning(f"Lookup {selection.program} {selection.span} {depart} failed: {e}")
            return LookupFailure(**common, error=VerificationError.from_exception(e))

        return IndividualResult(**common, data=response, from_cache=hit)

    async def verify(
        self,
        card: ItineraryCard,
        selections: Mapping[GroupKey, Optional[str]],
        seats: int,
    ) -> VerificationOutcome:
        """
        Verify a card's selected programs against live search.

        Args:
            card: The itinerary card
            selections: Program per group, keyed by group start index or span
            seats: Number of seats to search for

        Returns:
            The outcome; ``stale`` is set when a newer request for the same
            card was started before this one finished

        Raises:
            VerificationRejected: If the selection is invalid
        """
        plan = self.plan(card)
        chosen = validate_selections(plan, selections, seats)

        card_key = card.card_key
        generation = self._generations.get(card_key, 0) + 1
        self._generations[card_key] = generation
        self._states[card_key] = VerificationState.PENDING
        logger.info(f"Verifying {card_key} (generation {generation}): {len(chosen)} group(s), {seats} seat(s)")

        candidates = build_merge_candidates(chosen)
        merged = await asyncio.gather(
            *(self._try_merge(card, c, seats) for c in candidates if c.is_multi)
        )

        results: Dict[str, LiveSearchResult] = {}
        covered = set()
        for result in merged:
            if result is not None:
                results[result.span] = result
                covered.update(result.group_starts)

        individual = await asyncio.gather(
            *(self._lookup_group(card, s, seats) for s in chosen if s.group.start not in covered)
        )

        failures: Dict[str, LookupFailure] = {}
        for outcome in individual:
            if isinstance(outcome, LookupFailure):
                failures[outcome.span] = outcome
            else:
                results[outcome.span] = outcome

        state = VerificationState.PARTIAL_FAILURE if failures else VerificationState.SUCCESS
        outcome = VerificationOutcome(card_key, generation, state, results, failures)

        if self._generations.get(card_key) != generation:
            logger.info(f"Discarding stale verification of {card_key} (generation {generation})")
            outcome.stale = True
            return outcome

        self._states[card_key] = state
        self._outcomes[card_key] = outcome
        logger.info(f"Verified {card_key}: {len(results)} result(s), {len(failures)} failure(s)")
        return outcome

    def verify_sync(
        self,
        card: ItineraryCard,
        selections: Mapping[GroupKey, Optional[str]],
        seats: int,
    ) -> VerificationOutcome:
        return asyncio.run(self.verify(card, selections, seats))


__all__ = [
    "VerificationState",
    "CardPlan",
    "plan_card",
    "GroupSelection",
    "MergeCandidate",
    "validate_selections",
    "build_merge_candidates",
    "required_flight_numbers",
    "VerificationOutcome",
    "LiveVerifier",
]
