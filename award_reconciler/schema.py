from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from .types import CABIN_CLASSES
from .utils import airline_code_of, parse_local_time, to_date


def _as_code_set(value: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    if not value:
        return frozenset()
    if isinstance(value, str):
        return frozenset(ch.upper() for ch in value if ch.strip() and ch != ",")
    return frozenset(str(v).upper() for v in value)


@dataclass(frozen=True)
class FlightSegment:
    """One operated flight leg within a priced itinerary."""
    flight_number: str
    departs_at: datetime
    arrives_at: datetime
    total_duration: int = 0
    y_count: int = 0
    w_count: int = 0
    j_count: int = 0
    f_count: int = 0
    aircraft: str = ""

    def __post_init__(self):
        if self.total_duration < 0:
            raise ValueError(f"total_duration must be >= 0, got {self.total_duration}")
        for cabin in CABIN_CLASSES:
            if self.seat_count(cabin) < 0:
                raise ValueError(f"{cabin} seat count must be >= 0 on {self.flight_number}")

    @property
    def airline_code(self) -> str:
        return airline_code_of(self.flight_number)

    def seat_count(self, cabin: str) -> int:
        return {
            "Y": self.y_count,
            "W": self.w_count,
            "J": self.j_count,
            "F": self.f_count,
        }[cabin.upper()]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlightSegment":
        """Create from an upstream itinerary-search flight row."""
        return cls(
            flight_number=data["FlightNumbers"],
            departs_at=parse_local_time(data["DepartsAt"]),
            arrives_at=parse_local_time(data["ArrivesAt"]),
            total_duration=int(data.get("TotalDuration") or 0),
            y_count=int(data.get("YCount") or 0),
            w_count=int(data.get("WCount") or 0),
            j_count=int(data.get("JCount") or 0),
            f_count=int(data.get("FCount") or 0),
            aircraft=data.get("Aircraft") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "FlightNumbers": self.flight_number,
            "DepartsAt": self.departs_at.isoformat(),
            "ArrivesAt": self.arrives_at.isoformat(),
            "TotalDuration": self.total_duration,
            "YCount": self.y_count,
            "WCount": self.w_count,
            "JCount": self.j_count,
            "FCount": self.f_count,
            "Aircraft": self.aircraft,
        }


@dataclass(frozen=True)
class ItineraryCard:
    """A priced itinerary as shown on one result card."""
    route: Tuple[str, ...]
    date: date
    segments: Tuple[FlightSegment, ...]
    index: int = 0

    def __post_init__(self):
        if len(self.route) != len(self.segments) + 1:
            raise ValueError(
                f"Route {'-'.join(self.route)} has {len(self.route)} airports "
                f"but itinerary has {len(self.segments)} segments"
            )

    @property
    def card_key(self) -> str:
        return f"{'-'.join(self.route)}-{self.date.isoformat()}-{self.index}"

    def span_key(self, start: int, end: int) -> str:
        """Route span covering segments ``start`` to ``end`` inclusive."""
        return f"{self.route[start]}-{self.route[end + 1]}"

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        flights: Optional[Dict[str, Dict[str, Any]]] = None,
        index: int = 0,
    ) -> "ItineraryCard":
        """
        Create from a card row ``{route, date, itinerary}``.

        ``itinerary`` holds either flight ids resolved through ``flights``
        or the flight rows themselves.
        """
        rows = []
        for item in data["itinerary"]:
            if isinstance(item, str):
                if flights is None or item not in flights:
                    raise ValueError(f"Unknown flight id in itinerary: {item}")
                rows.append(flights[item])
            else:
                rows.append(item)
        route = data["route"]
        if isinstance(route, str):
            route = route.split("-")
        return cls(
            route=tuple(code.upper() for code in route),
            date=to_date(data["date"]),
            segments=tuple(FlightSegment.from_dict(row) for row in rows),
            index=index,
        )


@dataclass(frozen=True)
class ReliabilityRule:
    """Per-airline policy for trusting published award availability."""
    min_count: int = 1
    exemption: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if self.min_count < 1:
            raise ValueError(f"min_count must be >= 1, got {self.min_count}")

    def threshold(self, cabin: str) -> int:
        return 1 if cabin.upper() in self.exemption else self.min_count

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReliabilityRule":
        return cls(
            min_count=int(data.get("min_count") or 1),
            exemption=_as_code_set(data.get("exemption")),
        )


@dataclass(frozen=True)
class AirlineRecord:
    """An airline catalog row."""
    code: str
    name: str
    loyalty_program: Optional[str] = None
    bonus: FrozenSet[str] = field(default_factory=frozenset)
    recommend: FrozenSet[str] = field(default_factory=frozenset)
    alliance: Optional[str] = None

    @property
    def has_program(self) -> bool:
        return bool(self.loyalty_program and self.loyalty_program.strip())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AirlineRecord":
        """Create from a directory row ``{code, name, alliance, ffp, bonus, recommend}``."""
        return cls(
            code=data["code"].upper(),
            name=data.get("name") or data["code"],
            loyalty_program=data.get("ffp") or None,
            bonus=frozenset(c.upper() for c in (data.get("bonus") or [])),
            recommend=frozenset(c.upper() for c in (data.get("recommend") or [])),
            alliance=data.get("alliance") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "alliance": self.alliance,
            "ffp": self.loyalty_program,
            "bonus": sorted(self.bonus),
            "recommend": sorted(self.recommend),
        }


UNRELIABLE = "Unreliable"


@dataclass(frozen=True)
class SegmentGroup:
    """A maximal run of contiguous segments sharing one booking classification."""
    start: int
    end: int
    is_unreliable: bool
    alliance: Optional[str] = None

    @property
    def classification(self) -> Optional[str]:
        if self.is_unreliable:
            return UNRELIABLE
        return self.alliance

    @property
    def indices(self) -> range:
        return range(self.start, self.end + 1)

    def __len__(self) -> int:
        return self.end - self.start + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "is_unreliable": self.is_unreliable,
            "alliance": self.alliance,
            "classification": self.classification,
        }


@dataclass(frozen=True)
class BookingOption:
    """A loyalty program that can book a segment group."""
    airline_code: str
    name: str
    loyalty_program: Optional[str] = None

    @classmethod
    def from_record(cls, record: AirlineRecord) -> "BookingOption":
        return cls(record.code, record.name, record.loyalty_program)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "airline_code": self.airline_code,
            "name": self.name,
            "loyalty_program": self.loyalty_program,
        }


@dataclass
class BookingOptions:
    """All booking options for a group plus the recommended subset."""
    all: List[BookingOption] = field(default_factory=list)
    recommended: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def offered_for_verification(self) -> bool:
        return bool(self.recommended)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "all": [o.to_dict() for o in self.all],
            "recommended": sorted(self.recommended),
        }
