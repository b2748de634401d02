"""
award-reconciler: group award itineraries by booking alliance and verify
them against live search.

Award search results list seat counts that are not always bookable. This
library decides which segments of an itinerary can be trusted, groups the
trusted ones by alliance, lists the loyalty programs that can book each
group, and confirms the selected programs with live-search lookups.

Quick Start:
    >>> from award_reconciler import ItineraryCard, AirlineCatalog, LiveVerifier
    >>> card = ItineraryCard.from_dict({
    ...     "route": "SEA-NRT",
    ...     "date": "2024-05-01",
    ...     "itinerary": [{
    ...         "FlightNumbers": "AS1",
    ...         "DepartsAt": "2024-05-01T10:00:00Z",
    ...         "ArrivesAt": "2024-05-02T13:00:00Z",
    ...         "JCount": 2,
    ...     }],
    ... })
    >>> groups = group_segments(card.segments)
    >>> verifier = LiveVerifier(catalog=AirlineCatalog.from_rows(rows))
    >>> outcome = verifier.verify_sync(card, {0: "AS"}, seats=2)

Main Functions:
    - group_segments(): Split an itinerary into reliability/alliance groups
    - booking_options(): Programs that can book a group
    - generate_cache_key(): Key for a live-search lookup
    - visible_results(): Results to render after deduplicating merges

Classes:
    - FlightSegment, ItineraryCard: Itinerary data
    - ReliabilityTable, AirlineCatalog: Reference data
    - LiveSearchClient: Live-search HTTP client
    - LiveSearchCache: TTL cache for live-search results
    - LiveVerifier: Runs verification requests
"""

__version__ = "0.1.0"

from .alliances import Alliance, AirlineCatalog, alliance_of
from .booking import booking_options, options_for_groups
from .cache import (
    InMemoryCacheStorage,
    LiveSearchCache,
    SQLiteCacheStorage,
    generate_cache_key,
    get_live_search_cache,
)
from .config import ReconcilerConfig, configure, get_config, reset_config
from .directory import AirlineDirectory, CityLookup, StaticDirectory, resolve_city_names
from .display import find_matching_flights, visible_results
from .errors import (
    ErrorCode,
    LiveSearchError,
    ReconcilerException,
    VerificationError,
    VerificationRejected,
)
from .grouping import group_card, group_segments
from .live_schema import (
    IndividualResult,
    LiveSearchResponse,
    LookupFailure,
    MergedResult,
)
from .live_search import LiveSearchClient
from .reliability import ReliabilityTable, is_segment_reliable
from .schema import (
    AirlineRecord,
    BookingOption,
    BookingOptions,
    FlightSegment,
    ItineraryCard,
    ReliabilityRule,
    SegmentGroup,
)
from .verification import LiveVerifier, VerificationOutcome, VerificationState

__all__ = [
    "__version__",
    # Data model
    "FlightSegment",
    "ItineraryCard",
    "ReliabilityRule",
    "AirlineRecord",
    "SegmentGroup",
    "BookingOption",
    "BookingOptions",
    # Reliability and alliances
    "ReliabilityTable",
    "is_segment_reliable",
    "Alliance",
    "AirlineCatalog",
    "alliance_of",
    # Grouping and booking
    "group_segments",
    "group_card",
    "booking_options",
    "options_for_groups",
    # Live search
    "LiveSearchClient",
    "LiveSearchResponse",
    "MergedResult",
    "IndividualResult",
    "LookupFailure",
    # Cache
    "generate_cache_key",
    "LiveSearchCache",
    "InMemoryCacheStorage",
    "SQLiteCacheStorage",
    "get_live_search_cache",
    # Verification
    "LiveVerifier",
    "VerificationOutcome",
    "VerificationState",
    "visible_results",
    "find_matching_flights",
    # Directory
    "AirlineDirectory",
    "StaticDirectory",
    "CityLookup",
    "resolve_city_names",
    # Configuration
    "ReconcilerConfig",
    "get_config",
    "configure",
    "reset_config",
    # Errors
    "ErrorCode",
    "VerificationError",
    "ReconcilerException",
    "LiveSearchError",
    "VerificationRejected",
]
