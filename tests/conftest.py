import json
import threading

import pytest

from award_reconciler.alliances import AirlineCatalog
from award_reconciler.cache import LiveSearchCache, reset_live_search_cache
from award_reconciler.config import reset_config
from award_reconciler.live_search import LiveSearchClient
from award_reconciler.reliability import ReliabilityTable
from award_reconciler.schema import FlightSegment, ItineraryCard
from award_reconciler.types import DummyResponse
from award_reconciler.utils import parse_local_time


AIRLINE_ROWS = [
    {"code": "AS", "name": "Alaska Airlines", "alliance": "OW", "ffp": "Mileage Plan",
     "bonus": [], "recommend": ["AS"]},
    {"code": "AA", "name": "American Airlines", "alliance": "OW", "ffp": "AAdvantage",
     "bonus": [], "recommend": ["AS", "AA"]},
    {"code": "BA", "name": "British Airways", "alliance": "OW", "ffp": "Executive Club",
     "bonus": [], "recommend": ["AS"]},
    {"code": "B6", "name": "JetBlue", "alliance": None, "ffp": "TrueBlue",
     "bonus": ["EK"], "recommend": ["AS", "B6"]},
    {"code": "EK", "name": "Emirates", "alliance": None, "ffp": "Skywards",
     "bonus": ["QF", "XX"], "recommend": []},
    {"code": "QF", "name": "Qantas", "alliance": "OW", "ffp": "Frequent Flyer",
     "bonus": [], "recommend": ["AS"]},
    {"code": "XX", "name": "No Program Air", "alliance": None, "ffp": None,
     "bonus": [], "recommend": []},
]

RELIABILITY_ROWS = [
    {"code": "BA", "min_count": 2, "exemption": "F"},
    {"code": "EK", "min_count": 3, "exemption": "JF"},
]


@pytest.fixture(autouse=True)
def reset_globals():
    reset_config()
    reset_live_search_cache()
    yield
    reset_config()
    reset_live_search_cache()


def make_segment(flight_number, departs_at, arrives_at, y=0, w=0, j=0, f=0, duration=0):
    return FlightSegment(
        flight_number=flight_number,
        departs_at=parse_local_time(departs_at),
        arrives_at=parse_local_time(arrives_at),
        total_duration=duration,
        y_count=y,
        w_count=w,
        j_count=j,
        f_count=f,
    )


def live_payload(*options):
    """Live-search body with one itinerary option per list of flight numbers."""
    return {
        "itinerary": [
            {
                "segments": [{"flightnumber": number} for number in numbers],
                "bundles": [{"class": "J", "points": 70000, "fareTax": 56.1}],
            }
            for numbers in options
        ]
    }


class FakeTransport:
    """Answers live-search posts from a table keyed by (program, from, to)."""

    def __init__(self):
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, program, from_iata, to_iata, response):
        if isinstance(response, dict):
            response = DummyResponse(200, json.dumps(response))
        self.routes[(program.lower(), from_iata, to_iata)] = response

    def __call__(self, url, payload):
        program = url.rsplit("live-search-", 1)[1]
        with self._lock:
            self.calls.append((program, payload["from"], payload["to"], payload["depart"], payload["ADT"]))
        response = self.routes.get((program, payload["from"], payload["to"]), DummyResponse(404, ""))
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response

    def spans(self):
        return [f"{c[1]}-{c[2]}" for c in self.calls]


@pytest.fixture
def catalog():
    return AirlineCatalog.from_rows(AIRLINE_ROWS)


@pytest.fixture
def reliability():
    return ReliabilityTable.from_rows(RELIABILITY_ROWS)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(transport):
    return LiveSearchClient(base_url="https://live.test/api", transport=transport, sleep=lambda _: None)


@pytest.fixture
def clock():
    class Clock:
        now = 1_000_000.0

        def __call__(self):
            return self.now

    return Clock()


@pytest.fixture
def cache(clock):
    return LiveSearchCache(ttl_seconds=1800, clock=clock)


@pytest.fixture
def jfk_sea_card():
    """JetBlue JFK-BOS then Alaska BOS-SEA: two groups, both bookable with AS."""
    return ItineraryCard(
        route=("JFK", "BOS", "SEA"),
        date=parse_local_time("2024-05-01T00:00:00").date(),
        segments=(
            make_segment("B6101", "2024-05-01T06:00:00Z", "2024-05-01T07:30:00Z", y=4, j=2, duration=90),
            make_segment("AS5", "2024-05-01T09:00:00Z", "2024-05-01T12:30:00Z", y=4, j=2, duration=390),
        ),
    )
