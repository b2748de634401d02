import asyncio

import pytest

from award_reconciler.async_api import cached_search, dates_in_range, search_matrix, search_programs
from award_reconciler.cache import generate_cache_key
from award_reconciler.errors import (
    ErrorCode,
    LiveSearchHTTPError,
    LiveSearchNetworkError,
    LiveSearchParseError,
)
from award_reconciler.live_schema import LiveSearchRequest, LiveSearchResponse
from award_reconciler.live_search import LiveSearchClient, parse_response
from award_reconciler.types import DummyResponse

from conftest import live_payload


def test_request_uses_wire_names():
    request = LiveSearchRequest(from_iata="SEA", to_iata="NRT", depart="2024-05-01", adults=2)
    assert request.to_payload() == {"from": "SEA", "to": "NRT", "depart": "2024-05-01", "ADT": 2}


def test_endpoint_per_program():
    client = LiveSearchClient(base_url="https://api.example.com/api/")
    assert client.endpoint("AS") == "https://api.example.com/api/live-search-as"


def test_search_posts_and_parses(client, transport):
    transport.add("as", "SEA", "NRT", live_payload(["AS 1", "JL 2"]))

    response = client.search("AS", "sea", "nrt", "2024-05-01", 2)

    assert transport.calls == [("as", "SEA", "NRT", "2024-05-01", 2)]
    assert response.itinerary[0].flight_numbers == ["AS1", "JL2"]
    assert response.itinerary[0].bundles[0].cabin == "J"
    assert response.itinerary[0].bundles[0].fare_tax == 56.1
    assert response.covers(["JL2"])
    assert not response.covers(["JL2", "AA3"])


def test_transient_status_is_retried(client, transport):
    responses = [DummyResponse(500), DummyResponse.from_json(live_payload(["AS1"]))]
    transport.add("aa", "JFK", "LAX", lambda: responses.pop(0))

    response = client.search("AA", "JFK", "LAX", "2024-05-01", 1)

    assert len(transport.calls) == 2
    assert response.covers(["AS1"])


def test_client_error_is_not_retried(client, transport):
    with pytest.raises(LiveSearchHTTPError) as info:
        client.search("AA", "JFK", "LAX", "2024-05-01", 1)

    assert info.value.status_code == 404
    assert info.value.error.code == ErrorCode.LIVE_SEARCH_HTTP_ERROR
    assert len(transport.calls) == 1


def test_network_failure_uses_program_attempts(client, transport):
    transport.add("as", "SEA", "NRT", ConnectionError("connection reset"))

    with pytest.raises(LiveSearchNetworkError):
        client.search("AS", "SEA", "NRT", "2024-05-01", 1)

    assert len(transport.calls) == 2


def test_malformed_body(client, transport):
    transport.add("b6", "JFK", "BOS", DummyResponse(200, "<html>"))
    with pytest.raises(LiveSearchParseError):
        client.search("B6", "JFK", "BOS", "2024-05-01", 1)

    transport.add("b6", "JFK", "BOS", DummyResponse(200, "[1, 2]"))
    with pytest.raises(LiveSearchParseError):
        client.search("B6", "JFK", "BOS", "2024-05-01", 1)


def test_schema_mismatch_is_a_parse_error():
    with pytest.raises(LiveSearchParseError):
        parse_response({"itinerary": [{"segments": [{"from": "SEA"}]}]})


def test_unknown_fields_survive_round_trip():
    payload = {"itinerary": [{"segments": [{"flightnumber": "AS1", "cabin": "J"}], "bundles": [], "id": 7}]}
    assert LiveSearchResponse.model_validate(payload).to_payload() == payload


def test_cached_search_stores_only_successes(client, transport, cache):
    transport.add("as", "SEA", "NRT", live_payload(["AS1"]))

    first, hit = asyncio.run(cached_search(client, cache, "AS", "SEA", "NRT", "2024-05-01", 2))
    assert not hit
    again, hit = asyncio.run(cached_search(client, cache, "AS", "SEA", "NRT", "2024-05-01", 2))
    assert hit
    assert again == first
    assert len(transport.calls) == 1
    assert cache.get(generate_cache_key("AS", "SEA", "NRT", "2024-05-01", 2)) is not None

    with pytest.raises(LiveSearchHTTPError):
        asyncio.run(cached_search(client, cache, "AS", "SEA", "HND", "2024-05-01", 2))
    assert len(cache) == 1


def test_search_programs_reports_errors_per_program(client, transport):
    transport.add("as", "SEA", "NRT", live_payload(["AS1"], ["JL2"]))

    results = asyncio.run(search_programs("SEA", "NRT", "2024-05-01", 1, ["as", "aa"], client=client))

    assert [r.program for r in results] == ["as", "aa"]
    assert results[0].success and results[0].option_count == 2
    assert not results[1].success
    assert results[1].error.code == ErrorCode.LIVE_SEARCH_HTTP_ERROR


def test_dates_in_range():
    assert dates_in_range("2024-02-28", "2024-03-01") == ["2024-02-28", "2024-02-29", "2024-03-01"]
    assert dates_in_range("2024-03-02", "2024-03-01") == []


def test_search_matrix_skips_same_airport(client, transport):
    results = asyncio.run(search_matrix(
        ["SEA", "PDX"], ["sea", "NRT"], ["2024-05-01"], 1, programs=["as"], client=client,
    ))
    assert sorted((r.from_iata, r.to_iata) for r in results) == [("PDX", "NRT"), ("PDX", "SEA"), ("SEA", "NRT")]
    assert len(transport.calls) == 3


def test_cached_search_single_attempt(client, transport, cache):
    responses = [DummyResponse(500), DummyResponse.from_json(live_payload(["B6101"]))]
    transport.add("b6", "JFK", "BOS", lambda: responses.pop(0))

    with pytest.raises(LiveSearchHTTPError) as info:
        asyncio.run(cached_search(client, cache, "B6", "JFK", "BOS", "2024-05-01", 1, retry=False))

    assert info.value.status_code == 500
    assert len(transport.calls) == 1
    assert len(cache) == 0


def test_program_case_shares_cache_entries(client, transport, cache):
    transport.add("as", "SEA", "NRT", live_payload(["AS1"]))

    asyncio.run(search_programs("SEA", "NRT", "2024-05-01", 1, ["as"], client=client, cache=cache))
    _, hit = asyncio.run(cached_search(client, cache, "AS", "sea", "nrt", "2024-05-01", 1))

    assert hit
    assert len(transport.calls) == 1
