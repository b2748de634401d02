import json

import pytest

from award_reconciler.directory import AirlineDirectory, StaticDirectory, resolve_city_names
from award_reconciler.errors import DirectoryError, ErrorCode

from conftest import AIRLINE_ROWS, RELIABILITY_ROWS

AIRPORT_ROWS = [
    {"IATA": "SEA", "Name": "Seattle-Tacoma International", "CityName": "Seattle", "Country": "United States"},
    {"IATA": "NRT", "Name": "Narita International", "CityName": "Tokyo", "Country": "Japan"},
    {"IATA": "HND", "Name": "Haneda", "CityName": "Tokyo", "Country": "Japan"},
    {"iata": "sfo", "name": "San Francisco International", "cityName": "San Francisco", "country": "United States"},
]


class BrokenDirectory(AirlineDirectory):
    def get_city_names(self, iatas):
        raise RuntimeError("directory offline")

    def get_airlines(self):
        return []

    def get_reliability(self):
        raise NotImplementedError


@pytest.fixture
def directory():
    return StaticDirectory(AIRPORT_ROWS, AIRLINE_ROWS, RELIABILITY_ROWS)


def test_city_names(directory):
    assert directory.get_city_names(["sea", "NRT", "XXX"]) == {"SEA": "Seattle", "NRT": "Tokyo"}


def test_resolve_falls_back_to_codes_for_unknown(directory):
    lookup = resolve_city_names(directory, ["SEA", "xxx"])
    assert lookup.names == {"SEA": "Seattle", "XXX": "XXX"}
    assert lookup.error is None
    assert lookup.name("sea") == "Seattle"


def test_resolve_survives_directory_failure():
    lookup = resolve_city_names(BrokenDirectory(), ["SEA", "NRT"])
    assert lookup.names == {"SEA": "SEA", "NRT": "NRT"}
    assert lookup.error.code == ErrorCode.DIRECTORY_UNAVAILABLE
    assert lookup.to_dict()["error"]["code"] == "DIRECTORY_UNAVAILABLE"


def test_resolve_without_directory():
    assert resolve_city_names(None, ["sea"]).names == {"SEA": "SEA"}


def test_catalog_and_reliability(directory):
    assert directory.catalog().get("b6").loyalty_program == "TrueBlue"
    assert directory.get_reliability().rule_for("EK").min_count == 3


def test_from_json_file(tmp_path):
    path = tmp_path / "directory.json"
    path.write_text(json.dumps({"airports": AIRPORT_ROWS, "airlines": AIRLINE_ROWS}))

    directory = StaticDirectory.from_json_file(path)

    assert len(directory.get_airlines()) == len(AIRLINE_ROWS)
    assert len(directory.get_reliability()) == 0


def test_from_json_file_errors(tmp_path):
    with pytest.raises(DirectoryError):
        StaticDirectory.from_json_file(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(DirectoryError) as info:
        StaticDirectory.from_json_file(bad)
    assert info.value.error.details == {"path": str(bad)}


def test_search_airports_ranks_code_prefix_first(directory):
    result = directory.search_airports("s")
    codes = [a["iata"] for a in result["airports"]]
    assert codes[:2] == ["SFO", "SEA"]
    assert result["total"] == 2

    page = directory.search_airports("tokyo", page=2, page_size=1)
    assert page["total"] == 2
    assert len(page["airports"]) == 1


class OfflineDirectory(BrokenDirectory):
    def get_city_names(self, iatas):
        raise ConnectionError("connection refused by directory host")


def test_connection_failure_is_still_a_directory_error():
    lookup = resolve_city_names(OfflineDirectory(), ["SEA"])
    assert lookup.names == {"SEA": "SEA"}
    assert lookup.error.code == ErrorCode.DIRECTORY_UNAVAILABLE
    assert lookup.error.details == {"iatas": ["SEA"]}
