import asyncio
import time

import pytest

from award_reconciler.errors import ErrorCode, VerificationRejected
from award_reconciler.live_schema import IndividualResult, MergedResult
from award_reconciler.schema import ItineraryCard, SegmentGroup
from award_reconciler.types import DummyResponse
from award_reconciler.utils import to_date
from award_reconciler.verification import (
    GroupSelection,
    LiveVerifier,
    VerificationState,
    build_merge_candidates,
    plan_card,
)

from conftest import live_payload, make_segment


@pytest.fixture
def verifier(client, cache, catalog, reliability):
    return LiveVerifier(
        client=client,
        cache=cache,
        catalog=catalog,
        reliability=reliability,
        supported=["AS", "B6"],
        lookup_timeout=5,
    )


def selection(start, end, program, span="X-Y"):
    return GroupSelection(SegmentGroup(start, end, False, "OW"), span, program)


def test_merge_candidates_need_adjacency_and_same_program():
    selections = [
        selection(0, 0, "AS"),
        selection(1, 2, "AS"),
        selection(3, 3, "B6"),
        selection(5, 5, "B6"),
        selection(6, 6, "B6"),
    ]
    candidates = build_merge_candidates(selections)

    assert [(c.program, c.start, c.end, c.is_multi) for c in candidates] == [
        ("AS", 0, 2, True),
        ("B6", 3, 3, False),
        ("B6", 5, 6, True),
    ]


def test_plan_card(verifier, jfk_sea_card):
    plan = verifier.plan(jfk_sea_card)
    assert plan.spans == ["JFK-BOS", "BOS-SEA"]
    assert [sorted(o.recommended) for o in plan.options] == [["AS", "B6"], ["AS"]]
    assert plan.find("bos-sea") == 1
    assert plan.find(0) == 0
    assert plan.find(7) is None


def test_successful_merge_suppresses_individual_lookups(verifier, transport, jfk_sea_card):
    transport.add("as", "JFK", "SEA", live_payload(["B6101", "AS5"]))

    outcome = verifier.verify_sync(jfk_sea_card, {0: "AS", 1: "AS"}, seats=2)

    assert transport.calls == [("as", "JFK", "SEA", "2024-05-01", 2)]
    assert outcome.state is VerificationState.SUCCESS
    assert list(outcome.results) == ["JFK-SEA"]
    merged = outcome.results["JFK-SEA"]
    assert isinstance(merged, MergedResult)
    assert merged.routes == ["JFK-BOS", "BOS-SEA"]
    assert merged.group_starts == [0, 1]
    assert outcome.failures == {}
    assert verifier.state(jfk_sea_card.card_key) is VerificationState.SUCCESS
    assert verifier.latest(jfk_sea_card.card_key) is outcome


def test_merge_without_every_flight_falls_back(verifier, transport, jfk_sea_card):
    transport.add("as", "JFK", "SEA", live_payload(["B6101", "AS7"], ["AS5"]))
    transport.add("as", "JFK", "BOS", live_payload(["B6101"]))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    outcome = verifier.verify_sync(jfk_sea_card, {0: "AS", 1: "AS"}, seats=2)

    assert transport.spans()[0] == "JFK-SEA"
    assert sorted(transport.spans()[1:]) == ["BOS-SEA", "JFK-BOS"]
    assert sorted(outcome.results) == ["BOS-SEA", "JFK-BOS"]
    assert all(isinstance(r, IndividualResult) for r in outcome.results.values())


def test_failed_merge_lookup_falls_back(verifier, transport, jfk_sea_card):
    transport.add("as", "JFK", "SEA", DummyResponse(403))
    transport.add("as", "JFK", "BOS", live_payload(["B6101"]))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    outcome = verifier.verify_sync(jfk_sea_card, {"JFK-BOS": "as", "BOS-SEA": "as"}, seats=1)

    assert outcome.state is VerificationState.SUCCESS
    assert sorted(outcome.results) == ["BOS-SEA", "JFK-BOS"]


def test_different_programs_are_looked_up_separately(verifier, transport, jfk_sea_card):
    transport.add("b6", "JFK", "BOS", live_payload(["B6101"]))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    outcome = verifier.verify_sync(jfk_sea_card, {0: "B6", 1: "AS"}, seats=1)

    assert sorted(c[0] for c in transport.calls) == ["as", "b6"]
    assert outcome.results["JFK-BOS"].program == "B6"


def test_failed_lookup_is_absent_not_fatal(verifier, transport, jfk_sea_card):
    transport.add("b6", "JFK", "BOS", DummyResponse(404))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    outcome = verifier.verify_sync(jfk_sea_card, {0: "B6", 1: "AS"}, seats=1)

    assert outcome.state is VerificationState.PARTIAL_FAILURE
    assert list(outcome.results) == ["BOS-SEA"]
    assert outcome.failures["JFK-BOS"].error.code == ErrorCode.LIVE_SEARCH_HTTP_ERROR
    assert verifier.state(jfk_sea_card.card_key) is VerificationState.PARTIAL_FAILURE


def test_results_are_cached_failures_are_not(verifier, transport, jfk_sea_card):
    transport.add("b6", "JFK", "BOS", DummyResponse(404))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    verifier.verify_sync(jfk_sea_card, {0: "B6", 1: "AS"}, seats=1)
    second = verifier.verify_sync(jfk_sea_card, {0: "B6", 1: "AS"}, seats=1)

    assert sorted(transport.spans()) == ["BOS-SEA", "JFK-BOS", "JFK-BOS"]
    assert second.results["BOS-SEA"].from_cache
    assert second.generation == 2


def test_expired_cache_triggers_new_lookup(verifier, transport, clock, jfk_sea_card):
    transport.add("as", "JFK", "SEA", live_payload(["B6101", "AS5"]))

    verifier.verify_sync(jfk_sea_card, {0: "AS", 1: "AS"}, seats=2)
    clock.now += 1799
    verifier.verify_sync(jfk_sea_card, {0: "AS", 1: "AS"}, seats=2)
    assert len(transport.calls) == 1

    clock.now += 1
    verifier.verify_sync(jfk_sea_card, {0: "AS", 1: "AS"}, seats=2)
    assert len(transport.calls) == 2


def test_departure_date_follows_segment_day_offset(verifier, transport):
    card = ItineraryCard(
        route=("SEA", "NRT", "MNL"),
        date=to_date("2024-04-30"),
        segments=(
            make_segment("AS1", "2024-05-01T13:00:00Z", "2024-05-02T15:00:00Z", j=1),
            make_segment("AS9", "2024-05-02T23:30:00Z", "2024-05-03T03:00:00Z", j=1),
        ),
    )
    transport.add("as", "SEA", "MNL", live_payload(["AS1", "AS9"]))

    # Both legs share one alliance, so the card is a single group
    verifier.verify_sync(card, {0: "AS"}, seats=1)
    assert transport.calls == [("as", "SEA", "MNL", "2024-05-01", 1)]


def test_later_group_uses_its_own_departure_date(verifier, transport):
    card = ItineraryCard(
        route=("JFK", "BOS", "SEA"),
        date=to_date("2024-05-01"),
        segments=(
            make_segment("B6101", "2024-05-01T22:00:00Z", "2024-05-01T23:30:00Z", y=1),
            make_segment("AS5", "2024-05-02T07:00:00Z", "2024-05-02T10:30:00Z", y=1),
        ),
    )
    transport.add("b6", "JFK", "BOS", live_payload(["B6101"]))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    verifier.verify_sync(card, {0: "B6", 1: "AS"}, seats=1)
    assert sorted(c[3] for c in transport.calls) == ["2024-05-01", "2024-05-02"]


@pytest.mark.parametrize("selections,seats", [
    ({}, 1),
    ({0: None, 1: ""}, 1),
    ({0: "AS", 1: "AS"}, 0),
    ({0: "AS", 1: "B6"}, 1),
    ({0: "AS"}, 1),
    ({0: "AS", 1: "AS", 4: "AS"}, 1),
    ({0: "AA", 1: "AS"}, 1),
])
def test_invalid_requests_are_rejected(verifier, transport, jfk_sea_card, selections, seats):
    with pytest.raises(VerificationRejected) as info:
        verifier.verify_sync(jfk_sea_card, selections, seats)

    assert info.value.error.code == ErrorCode.INVALID_SELECTION
    assert transport.calls == []
    assert verifier.state(jfk_sea_card.card_key) is VerificationState.IDLE
    assert verifier.generation(jfk_sea_card.card_key) == 0


def test_unreliable_group_cannot_be_selected(verifier, transport):
    card = ItineraryCard(
        route=("JFK", "LHR", "DXB"),
        date=to_date("2024-05-01"),
        segments=(
            make_segment("AA100", "2024-05-01T18:00:00Z", "2024-05-02T06:00:00Z", j=1),
            make_segment("BA200", "2024-05-02T09:00:00Z", "2024-05-02T19:00:00Z"),
        ),
    )
    with pytest.raises(VerificationRejected, match="unreliable"):
        verifier.verify_sync(card, {0: "AS", 1: "AS"}, seats=1)

    transport.add("as", "JFK", "LHR", live_payload(["AA100"]))
    outcome = verifier.verify_sync(card, {0: "AS"}, seats=1)
    assert list(outcome.results) == ["JFK-LHR"]


def test_stale_request_is_discarded(verifier, transport, jfk_sea_card):
    transport.add("as", "JFK", "SEA", live_payload(["B6101", "AS5"]))
    transport.add("b6", "JFK", "BOS", live_payload(["B6101"]))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    async def run_both():
        return await asyncio.gather(
            verifier.verify(jfk_sea_card, {0: "AS", 1: "AS"}, seats=2),
            verifier.verify(jfk_sea_card, {0: "B6", 1: "AS"}, seats=2),
        )

    older, newer = asyncio.run(run_both())

    assert older.stale and older.generation == 1
    assert not newer.stale and newer.generation == 2
    assert verifier.latest(jfk_sea_card.card_key) is newer
    assert sorted(verifier.latest(jfk_sea_card.card_key).results) == ["BOS-SEA", "JFK-BOS"]


def test_hung_lookup_times_out_alone(client, cache, catalog, reliability, transport, jfk_sea_card):
    verifier = LiveVerifier(client, cache, catalog, reliability, ["AS", "B6"], lookup_timeout=0.3)

    def slow():
        time.sleep(1.5)
        return DummyResponse.from_json(live_payload(["B6101"]))

    transport.add("b6", "JFK", "BOS", slow)
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    outcome = verifier.verify_sync(jfk_sea_card, {0: "B6", 1: "AS"}, seats=1)

    assert outcome.state is VerificationState.PARTIAL_FAILURE
    assert list(outcome.results) == ["BOS-SEA"]
    assert outcome.failures["JFK-BOS"].error.code == ErrorCode.TIMEOUT


def test_plan_card_to_dict(catalog, jfk_sea_card):
    data = plan_card(jfk_sea_card, catalog, supported=["AS"]).to_dict()
    assert data["card_key"] == "JFK-BOS-SEA-2024-05-01-0"
    assert [g["span"] for g in data["groups"]] == ["JFK-BOS", "BOS-SEA"]
    assert data["groups"][0]["options"]["recommended"] == ["AS"]


def test_outcome_to_dict(verifier, transport, jfk_sea_card):
    transport.add("as", "JFK", "SEA", live_payload(["B6101", "AS5"]))
    data = verifier.verify_sync(jfk_sea_card, {0: "AS", 1: "AS"}, seats=2).to_dict()

    assert data["state"] == "success"
    result = data["results"]["JFK-SEA"]
    assert result["kind"] == "merged"
    assert result["data"]["itinerary"][0]["bundles"][0]["class"] == "J"


def test_server_error_leaves_span_empty_after_one_attempt(verifier, transport, jfk_sea_card):
    responses = [DummyResponse(500), DummyResponse.from_json(live_payload(["B6101"]))]
    transport.add("b6", "JFK", "BOS", lambda: responses.pop(0))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    outcome = verifier.verify_sync(jfk_sea_card, {0: "B6", 1: "AS"}, seats=1)

    assert sorted(transport.spans()) == ["BOS-SEA", "JFK-BOS"]
    assert outcome.state is VerificationState.PARTIAL_FAILURE
    assert list(outcome.results) == ["BOS-SEA"]
    assert outcome.failures["JFK-BOS"].error.details["status_code"] == 500


def test_large_party_is_searched(verifier, transport, jfk_sea_card):
    transport.add("b6", "JFK", "BOS", live_payload(["B6101"]))
    transport.add("as", "BOS", "SEA", live_payload(["AS5"]))

    outcome = verifier.verify_sync(jfk_sea_card, {0: "B6", 1: "AS"}, seats=10)

    assert sorted(c[4] for c in transport.calls) == [10, 10]
    assert outcome.state is VerificationState.SUCCESS
    assert sorted(outcome.results) == ["BOS-SEA", "JFK-BOS"]
