"""
Airline alliance and bonus-earning resolution.

Provides the static alliance partition used to classify segments and an
airline catalog that answers which loyalty programs relate to a set of
operating carriers.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from .schema import AirlineRecord


# ============================================================================
# Airline Alliances
# ============================================================================

class Alliance(str, Enum):
    """Partner networks, plus singleton keys for carriers with no network."""
    ONEWORLD = "OW"
    STAR_ALLIANCE = "SA"
    SKYTEAM = "ST"
    ETIHAD = "EY"
    EMIRATES = "EK"
    STARLUX = "JX"
    JETBLUE = "B6"
    CONDOR = "DE"
    GULF_AIR = "GF"

    @property
    def display_name(self) -> str:
        return ALLIANCE_NAMES[self]


ALLIANCE_NAMES: Dict[Alliance, str] = {
    Alliance.ONEWORLD: "Oneworld",
    Alliance.STAR_ALLIANCE: "Star Alliance",
    Alliance.SKYTEAM: "SkyTeam",
    Alliance.ETIHAD: "Etihad",
    Alliance.EMIRATES: "Emirates",
    Alliance.STARLUX: "Starlux",
    Alliance.JETBLUE: "JetBlue",
    Alliance.CONDOR: "Condor",
    Alliance.GULF_AIR: "Gulf Air",
}

ONEWORLD_MEMBERS: Set[str] = {
    "AS",  # Alaska Airlines
    "AA",  # American Airlines
    "BA",  # British Airways
    "CX",  # Cathay Pacific
    "FJ",  # Fiji Airways (oneworld connect)
    "AY",  # Finnair
    "IB",  # Iberia
    "JL",  # Japan Airlines
    "QF",  # Qantas
    "QR",  # Qatar Airways
    "AT",  # Royal Air Maroc
    "RJ",  # Royal Jordanian
    "UL",  # SriLankan Airlines
    "WY",  # Oman Air
    "MH",  # Malaysia Airlines
}

STAR_ALLIANCE_MEMBERS: Set[str] = {
    "A3",  # Aegean Airlines
    "AC",  # Air Canada
    "CA",  # Air China
    "AI",  # Air India
    "NZ",  # Air New Zealand
    "NH",  # ANA (All Nippon Airways)
    "NQ",  # Air Japan
    "EQ",  # TAME
    "OZ",  # Asiana Airlines
    "OS",  # Austrian Airlines
    "AV",  # Avianca
    "SN",  # Brussels Airlines
    "CM",  # Copa Airlines
    "OU",  # Croatia Airlines
    "MS",  # EgyptAir
    "ET",  # Ethiopian Airlines
    "BR",  # EVA Air
    "LO",  # LOT Polish Airlines
    "LH",  # Lufthansa
    "CL",  # Lufthansa CityLine
    "SQ",  # Singapore Airlines
    "SA",  # South African Airways
    "LX",  # Swiss International Air Lines
    "TP",  # TAP Air Portugal
    "TG",  # Thai Airways
    "UA",  # United Airlines
    "TK",  # Turkish Airlines
}

SKYTEAM_MEMBERS: Set[str] = {
    "AR",  # Aerolíneas Argentinas
    "AM",  # Aeroméxico
    "UX",  # Air Europa
    "AF",  # Air France
    "CI",  # China Airlines
    "MU",  # China Eastern Airlines
    "DL",  # Delta Air Lines
    "GA",  # Garuda Indonesia
    "KQ",  # Kenya Airways
    "KL",  # KLM Royal Dutch Airlines
    "KE",  # Korean Air
    "ME",  # Middle East Airlines
    "SV",  # Saudia
    "SK",  # SAS Scandinavian Airlines
    "RO",  # TAROM
    "VN",  # Vietnam Airlines
    "VS",  # Virgin Atlantic
    "MF",  # Xiamen Airlines
}

ALLIANCE_MAP: Dict[Alliance, Set[str]] = {
    Alliance.ONEWORLD: ONEWORLD_MEMBERS,
    Alliance.STAR_ALLIANCE: STAR_ALLIANCE_MEMBERS,
    Alliance.SKYTEAM: SKYTEAM_MEMBERS,
    Alliance.ETIHAD: {"EY"},
    Alliance.EMIRATES: {"EK"},
    Alliance.STARLUX: {"JX"},
    Alliance.JETBLUE: {"B6"},
    Alliance.CONDOR: {"DE"},
    Alliance.GULF_AIR: {"GF"},
}

_ALLIANCE_BY_CODE: Dict[str, Alliance] = {
    code: alliance for alliance, members in ALLIANCE_MAP.items() for code in members
}


def alliance_of(code: str) -> Optional[Alliance]:
    """Get the alliance key for an airline, or None if it has no partner network."""
    return _ALLIANCE_BY_CODE.get(code.upper())


def parse_alliance(value: str) -> Alliance:
    """
    Resolve an alliance from its key or display name.

    Raises:
        ValueError: If the value names no known alliance
    """
    text = value.strip()
    try:
        return Alliance(text.upper())
    except ValueError:
        pass
    for alliance, name in ALLIANCE_NAMES.items():
        if name.lower().replace(" ", "") == text.lower().replace(" ", "").replace("_", ""):
            return alliance
    raise ValueError(f"Unknown alliance: {value}")


# ============================================================================
# Airline Catalog
# ============================================================================

class AirlineCatalog:
    """
    Airline catalog rows indexed by code.

    Answers alliance membership and bonus-earning relationships for a set
    of operating carriers.
    """

    def __init__(self, records: Iterable[AirlineRecord] = ()):
        self._records: Dict[str, AirlineRecord] = {}
        for record in records:
            self._records[record.code.upper()] = record

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, code: str) -> bool:
        return code.upper() in self._records

    def __iter__(self):
        return iter(self._records.values())

    def get(self, code: str) -> Optional[AirlineRecord]:
        return self._records.get(code.upper())

    def alliance_members(self, alliance: Optional[Alliance]) -> List[AirlineRecord]:
        """Catalog airlines in the alliance that have a bookable loyalty program."""
        if alliance is None:
            return []
        codes = ALLIANCE_MAP.get(Alliance(alliance), set())
        return [
            record for code, record in self._records.items()
            if code in codes and record.has_program
        ]

    def bonus_providers(self, codes: Iterable[str]) -> List[AirlineRecord]:
        """
        Programs that earn bonus miles on any of the given carriers.

        An airline never counts as its own provider.
        """
        operating = {c.upper() for c in codes}
        providers = []
        for record in self._records.values():
            if any(code in record.bonus and code != record.code for code in operating):
                providers.append(record)
        return providers

    def bonus_recipients(self, codes: Iterable[str]) -> List[AirlineRecord]:
        """
        Programs named in the given carriers' own bonus lists.

        Targets without a loyalty program are dropped since they cannot be
        used to book.
        """
        recipients: Dict[str, AirlineRecord] = {}
        for code in {c.upper() for c in codes}:
            record = self._records.get(code)
            if record is None:
                continue
            for target in record.bonus:
                target_record = self._records.get(target)
                if target_record is not None and target_record.has_program:
                    recipients[target_record.code] = target_record
        return list(recipients.values())

    @classmethod
    def from_rows(cls, rows: Iterable[dict]) -> "AirlineCatalog":
        return cls(AirlineRecord.from_dict(row) for row in rows)


__all__ = [
    "Alliance",
    "ALLIANCE_NAMES",
    "ALLIANCE_MAP",
    "ONEWORLD_MEMBERS",
    "STAR_ALLIANCE_MEMBERS",
    "SKYTEAM_MEMBERS",
    "alliance_of",
    "parse_alliance",
    "AirlineCatalog",
]
