"""
Airport and airline directory.

The directory is the data-access collaborator behind reconciliation: it
resolves IATA codes to city names and supplies the airline catalog and the
reliability rules. City lookups are best-effort; a failing directory falls
back to the raw codes plus an error marker instead of failing the caller.

Usage:
    >>> directory = StaticDirectory.from_json_file("directory.json")
    >>> lookup = resolve_city_names(directory, ["SEA", "NRT"])
    >>> lookup.names
    {'SEA': 'Seattle', 'NRT': 'Tokyo'}
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .alliances import AirlineCatalog
from .errors import DirectoryError, VerificationError
from .reliability import ReliabilityTable
from .schema import AirlineRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Airport:
    iata: str
    name: str = ""
    city_name: str = ""
    country: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Airport":
        """Accepts both ``{IATA, Name, CityName, Country}`` and snake/camel case rows."""
        return cls(
            iata=(data.get("IATA") or data.get("iata") or "").upper(),
            name=data.get("Name") or data.get("name") or "",
            city_name=data.get("CityName") or data.get("cityName") or data.get("city_name") or "",
            country=data.get("Country") or data.get("country") or "",
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "iata": self.iata,
            "name": self.name,
            "city_name": self.city_name,
            "country": self.country,
        }


class AirlineDirectory(ABC):
    """Abstract source of airport and airline reference data."""

    @abstractmethod
    def get_city_names(self, iatas: Iterable[str]) -> Dict[str, str]:
        """Map each known IATA code to its city name."""
        pass

    @abstractmethod
    def get_airlines(self) -> List[AirlineRecord]:
        """Return the full airline catalog."""
        pass

    @abstractmethod
    def get_reliability(self) -> ReliabilityTable:
        """Return the per-airline reliability rules."""
        pass

    def catalog(self) -> AirlineCatalog:
        return AirlineCatalog(self.get_airlines())


class StaticDirectory(AirlineDirectory):
    """
    Directory held in memory, built from row lists.

    Args:
        airports: Airport rows
        airlines: Airline catalog rows ``{code, name, alliance, ffp, bonus, recommend}``
        reliability: Reliability rows ``{code, min_count, exemption}``
    """

    def __init__(
        self,
        airports: Iterable[Dict[str, Any]] = (),
        airlines: Iterable[Dict[str, Any]] = (),
        reliability: Iterable[Dict[str, Any]] = (),
    ):
        self._airports: Dict[str, Airport] = {}
        for row in airports:
            airport = Airport.from_dict(row)
            if airport.iata:
                self._airports[airport.iata] = airport
        self._airlines = [AirlineRecord.from_dict(row) for row in airlines]
        self._reliability = ReliabilityTable.from_rows(reliability)

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "StaticDirectory":
        """
        Load ``{"airports": [...], "airlines": [...], "reliability": [...]}``.

        Raises:
            DirectoryError: If the file cannot be read or parsed
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise DirectoryError.from_code(
                message=f"Failed to load directory from {path}: {e}",
                details={"path": str(path)},
            ) from e
        return cls(
            airports=data.get("airports") or [],
            airlines=data.get("airlines") or [],
            reliability=data.get("reliability") or [],
        )

    def get_city_names(self, iatas: Iterable[str]) -> Dict[str, str]:
        names = {}
        for iata in iatas:
            airport = self._airports.get(iata.upper())
            if airport and airport.city_name:
                names[airport.iata] = airport.city_name
        return names

    def get_airlines(self) -> List[AirlineRecord]:
        return list(self._airlines)

    def get_reliability(self) -> ReliabilityTable:
        return self._reliability

    def search_airports(self, query: str = "", page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        """
        Search airports by IATA code, city or country.

        Codes starting with the query rank first, then results sort by city.
        """
        search = query.strip().lower()
        matches = [
            a for a in self._airports.values()
            if not search
            or search in a.iata.lower()
            or search in a.city_name.lower()
            or search in a.country.lower()
        ]
        matches.sort(key=lambda a: (
            0 if search and a.iata.lower().startswith(search) else 1,
            a.city_name.lower(),
        ))

        start = (max(page, 1) - 1) * page_size
        return {
            "airports": [a.to_dict() for a in matches[start:start + page_size]],
            "total": len(matches),
            "page": page,
            "page_size": page_size,
        }


@dataclass
class CityLookup:
    """City names for a set of IATA codes; unknown codes map to themselves."""
    names: Dict[str, str] = field(default_factory=dict)
    error: Optional[VerificationError] = None

    def name(self, iata: str) -> str:
        return self.names.get(iata.upper(), iata.upper())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "names": self.names,
            "error": self.error.to_dict() if self.error else None,
        }


def resolve_city_names(directory: Optional[AirlineDirectory], iatas: Iterable[str]) -> CityLookup:
    """
    Resolve city names, falling back to the raw codes on any directory failure.
    """
    codes = [code.upper() for code in iatas]
    fallback = {code: code for code in codes}

    if directory is None:
        return CityLookup(fallback)

    try:
        found = directory.get_city_names(codes)
    except Exception as e:
        logger.error(f"City lookup failed for {codes}: {e}")
        if isinstance(e, DirectoryError):
            error = e.error
        else:
            error = DirectoryError.from_code(
                message=f"City lookup failed: {e}",
                details={"iatas": codes},
            ).error
        return CityLookup(fallback, error)

    return CityLookup({**fallback, **found})


__all__ = [
    "Airport",
    "AirlineDirectory",
    "StaticDirectory",
    "CityLookup",
    "resolve_city_names",
]
