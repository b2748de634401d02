"""
Pydantic models for the live-search wire format and lookup outcomes.

The request and response models mirror the live-search backend's JSON
exactly (``from``, ``to``, ``depart``, ``ADT``; ``itinerary``, ``segments``,
``bundles``). Unknown response fields are kept so that cached payloads
round-trip unchanged.

Lookup outcomes are one tagged union, resolved once when a lookup finishes:
``MergedResult | IndividualResult | LookupFailure``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import VerificationError
from .utils import normalize_flight_number


# ============================================================================
# Wire models
# ============================================================================

class LiveSearchRequest(BaseModel):
    """Body posted to ``live-search-{program}``."""

    model_config = ConfigDict(populate_by_name=True)

    from_iata: str = Field(
        alias="from",
        min_length=3,
        max_length=3,
        description="Origin airport IATA code"
    )
    to_iata: str = Field(
        alias="to",
        min_length=3,
        max_length=3,
        description="Destination airport IATA code"
    )
    depart: str = Field(
        pattern=r"^\d{4}-\d{2}-\d{2}$",
        description="Departure date (YYYY-MM-DD)"
    )
    adults: int = Field(
        alias="ADT",
        ge=1,
        description="Number of seats"
    )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class LiveSegment(BaseModel):
    """One flight of a live-search itinerary option."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    flightnumber: str
    from_iata: Optional[str] = Field(default=None, alias="from")
    to_iata: Optional[str] = Field(default=None, alias="to")
    depart: Optional[str] = None
    arrive: Optional[str] = None
    distance: Optional[Union[int, float, str]] = None
    classes: Optional[Any] = None


class PriceBundle(BaseModel):
    """Award price for one cabin class."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    cabin: str = Field(alias="class")
    points: Optional[Union[int, float, str]] = None
    fare_tax: Optional[Union[int, float, str]] = Field(default=None, alias="fareTax")


class ItineraryOption(BaseModel):
    """One bookable itinerary returned by live search."""

    model_config = ConfigDict(extra="allow")

    segments: List[LiveSegment] = Field(default_factory=list)
    bundles: List[PriceBundle] = Field(default_factory=list)

    @property
    def flight_numbers(self) -> List[str]:
        return [normalize_flight_number(s.flightnumber) for s in self.segments]

    def covers(self, flight_numbers: List[str]) -> bool:
        """True when every given flight number appears in this option."""
        own = set(self.flight_numbers)
        return all(normalize_flight_number(f) in own for f in flight_numbers)


class LiveSearchResponse(BaseModel):
    """Parsed live-search response body."""

    model_config = ConfigDict(extra="allow")

    itinerary: List[ItineraryOption] = Field(default_factory=list)

    def covers(self, flight_numbers: List[str]) -> bool:
        """True when some option contains all of the given flight numbers."""
        return any(option.covers(flight_numbers) for option in self.itinerary)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# Lookup outcomes
# ============================================================================

class MergedResult(BaseModel):
    """A single lookup that verified several adjacent groups at once."""

    kind: Literal["merged"] = "merged"
    span: str
    program: str
    depart: str
    routes: List[str] = Field(description="Span keys of the groups this result covers")
    group_starts: List[int] = Field(default_factory=list)
    data: LiveSearchResponse
    from_cache: bool = False


class IndividualResult(BaseModel):
    """A lookup for one group's own span."""

    kind: Literal["individual"] = "individual"
    span: str
    program: str
    depart: str
    routes: List[str] = Field(default_factory=list)
    group_starts: List[int] = Field(default_factory=list)
    data: LiveSearchResponse
    from_cache: bool = False


class LookupFailure(BaseModel):
    """A lookup that produced no usable result."""

    kind: Literal["failure"] = "failure"
    span: str
    program: str
    depart: str
    routes: List[str] = Field(default_factory=list)
    group_starts: List[int] = Field(default_factory=list)
    error: VerificationError


class ProgramSearchResult(BaseModel):
    """Outcome of one program's search in a multi-program fan-out."""

    program: str
    from_iata: str
    to_iata: str
    depart: str
    seats: int
    data: Optional[LiveSearchResponse] = None
    error: Optional[VerificationError] = None
    from_cache: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and self.data is not None

    @property
    def option_count(self) -> int:
        return len(self.data.itinerary) if self.data else 0


LiveSearchResult = Union[MergedResult, IndividualResult]
LookupOutcome = Union[MergedResult, IndividualResult, LookupFailure]


__all__ = [
    "LiveSearchRequest",
    "LiveSegment",
    "PriceBundle",
    "ItineraryOption",
    "LiveSearchResponse",
    "MergedResult",
    "IndividualResult",
    "LookupFailure",
    "ProgramSearchResult",
    "LiveSearchResult",
    "LookupOutcome",
]
