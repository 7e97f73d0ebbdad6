from __future__ import annotations

import pytest

from conftest import airing_record, program_record, station_record
from tvguide.exceptions import ConnectivityError, MissingField, PartialDecodeFailure, UpstreamRecordError
from tvguide.services.cache import program_key, schedule_key, station_key
from tvguide.services.decoder import decode_station
from tvguide.services.diagnostics import CollectingDecodeReporter
from tvguide.services.fetch_orchestrator import FetchOrchestrator


def test_all_misses_issue_exactly_one_call(transport, orchestrator):
    ids = [f"EP{index:012d}" for index in range(25)]
    transport.add_programs(*(program_record(program_id) for program_id in ids))

    result = orchestrator.fetch_programs(ids)

    assert transport.calls == 1
    assert transport.requests[0].body == ids
    assert set(result.entities) == set(ids)
    assert result.ok
    assert result.transport_calls == 1


def test_second_fetch_is_served_from_cache(transport, orchestrator):
    transport.add_programs(program_record("EP1"), program_record("EP2"))

    first = orchestrator.fetch_programs(["EP1", "EP2"])
    second = orchestrator.fetch_programs(["EP1", "EP2"])

    assert transport.calls == 1
    assert second.entities == first.entities
    assert second.cache_hits == 2
    assert second.transport_calls == 0


def test_only_misses_are_requested(transport, orchestrator):
    transport.add_programs(program_record("EP1"), program_record("EP2"))
    orchestrator.fetch_programs(["EP1"])

    result = orchestrator.fetch_programs(["EP1", "EP2", "EP1"])

    assert transport.calls == 2
    assert transport.requests[1].body == ["EP2"]
    assert set(result.entities) == {"EP1", "EP2"}
    assert result.cache_hits == 1


def test_one_malformed_record_in_ten(transport, cache, orchestrator):
    ids = [f"EP{index}" for index in range(10)]
    records = [program_record(program_id) for program_id in ids]
    del records[3]["md5"]
    transport.add_programs(*records)

    result = orchestrator.fetch_programs(ids)

    assert len(result.entities) == 9
    assert list(result.failures) == ["EP3"]
    failure = result.failures["EP3"]
    assert isinstance(failure, PartialDecodeFailure)
    assert isinstance(failure.cause, MissingField)
    assert failure.raw is records[3]
    assert len(result.entities) + len(result.failures) == len(ids)
    assert program_key("EP3") not in cache
    assert len(cache) == 9


def test_record_without_id_counts_once(transport, cache):
    reporter = CollectingDecodeReporter()
    orchestrator = FetchOrchestrator(transport, cache, reporter=reporter)
    ids = [f"EP{index}" for index in range(10)]
    transport.add_programs(*(program_record(program_id) for program_id in ids))
    nameless = transport.programs["EP3"]
    del nameless["programID"]

    result = orchestrator.fetch_programs(ids)

    assert len(result.entities) == 9
    assert list(result.failures) == ["EP3"]
    failure = result.failures["EP3"]
    assert isinstance(failure.cause, MissingField)
    assert failure.cause.entity_id == "EP3"
    assert failure.raw is nameless
    assert [entity_id for entity_id, _, _ in reporter.reports] == ["EP3"]


def test_records_without_ids_match_by_position(transport, orchestrator):
    ids = [f"EP{index}" for index in range(10)]
    transport.add_programs(*(program_record(program_id) for program_id in ids))
    del transport.programs["EP3"]["programID"]
    del transport.programs["EP6"]["programID"]

    result = orchestrator.fetch_programs(ids)

    assert len(result.entities) == 8
    assert set(result.failures) == {"EP3", "EP6"}
    assert all(isinstance(failure.cause, MissingField) for failure in result.failures.values())


def test_schedule_without_station_id_counts_once(transport, orchestrator):
    transport.add_programs(program_record("EP0"))
    transport.add_schedule("1", [airing_record("EP0")])
    transport.add_schedule("2", [airing_record("EP0")])
    del transport.schedules["2"]["stationID"]
    # FakeTransport looks schedules up by key, so the nameless record still comes back
    result = orchestrator.fetch_schedules(stations("1", "2"))

    assert set(result.entities) == {"1"}
    assert list(result.failures) == ["2"]
    assert isinstance(result.failures["2"].cause, MissingField)


def test_failed_ids_are_retried_on_next_call(transport, orchestrator):
    bad = program_record("EP1")
    del bad["md5"]
    transport.add_programs(bad)

    orchestrator.fetch_programs(["EP1"])
    transport.add_programs(program_record("EP1"))
    result = orchestrator.fetch_programs(["EP1"])

    assert transport.calls == 2
    assert "EP1" in result.entities


def test_ids_missing_from_response_are_failures(transport, orchestrator):
    transport.add_programs(program_record("EP1"))

    result = orchestrator.fetch_programs(["EP1", "EP404"])

    assert set(result.entities) == {"EP1"}
    assert isinstance(result.failures["EP404"].cause, UpstreamRecordError)


def test_upstream_error_records_are_failures(transport, orchestrator):
    transport.add_programs(program_record("EP1"), {"programID": "EP2", "code": 6000, "response": "INVALID_PROGID"})

    result = orchestrator.fetch_programs(["EP1", "EP2"])

    assert set(result.entities) == {"EP1"}
    assert result.failures["EP2"].cause.code == 6000


def test_transport_failure_propagates(transport, orchestrator):
    transport.fail_with = ConnectivityError("down")

    with pytest.raises(ConnectivityError):
        orchestrator.fetch_programs(["EP1"])


def test_empty_request_makes_no_call(transport, orchestrator):
    result = orchestrator.fetch_programs([])

    assert transport.calls == 0
    assert len(result) == 0


def test_reporter_receives_failures(transport, cache):
    reporter = CollectingDecodeReporter()
    orchestrator = FetchOrchestrator(transport, cache, reporter=reporter)
    bad = program_record("EP1")
    del bad["md5"]
    transport.add_programs(bad)

    orchestrator.fetch_programs(["EP1"])

    assert [(entity_id, raw) for entity_id, raw, _ in reporter.reports] == [("EP1", bad)]


def test_disabled_cache_always_fetches(transport, cache):
    orchestrator = FetchOrchestrator(transport, cache, use_cache=False)
    transport.add_programs(program_record("EP1"))

    orchestrator.fetch_programs(["EP1"])
    orchestrator.fetch_programs(["EP1"])

    assert transport.calls == 2
    assert len(cache) == 0


def test_resolve_series_batches_parent_ids(transport, orchestrator):
    transport.add_programs(
        program_record("EP000000060003"),
        program_record("EP000000060004"),
        program_record("EP000000070001"),
        program_record("SH000000060000"),
        program_record("SH000000070000"),
    )
    episodes = orchestrator.fetch_programs(["EP000000060003", "EP000000060004", "EP000000070001"])

    series = orchestrator.resolve_series(episodes.entities.values())

    assert transport.calls == 2
    assert sorted(transport.requests[1].body) == ["SH000000060000", "SH000000070000"]
    assert set(series.entities) == {"SH000000060000", "SH000000070000"}


def stations(*station_ids):
    return [decode_station(station_record(station_id)) for station_id in station_ids]


def test_schedule_cascade_uses_two_batches(transport, orchestrator):
    transport.add_programs(*(program_record(f"EP{index}") for index in range(6)))
    transport.add_schedule("1", [airing_record(f"EP{index}", start=f"2014-06-28T0{index}:00:00Z") for index in range(3)])
    transport.add_schedule("2", [airing_record(f"EP{index}") for index in range(3, 6)])
    transport.add_schedule("3", [airing_record("EP0", start="2014-06-28T09:00:00Z")])

    result = orchestrator.fetch_schedules(stations("1", "2", "3"))

    assert transport.calls_to("schedules") == 1
    assert transport.calls_to("programs") == 1
    assert transport.calls == 2
    assert result.transport_calls == 2
    assert result.ok
    assert [airing.id for airing in result.entities["1"]] == ["EP0", "EP1", "EP2"]
    assert all(airing.id == airing.program.id for schedule in result.entities.values() for airing in schedule)
    assert result.entities["3"][0].station.id == "3"


def test_schedule_cascade_uses_cached_programs(transport, orchestrator):
    transport.add_programs(program_record("EP0"), program_record("EP1"))
    orchestrator.fetch_programs(["EP0", "EP1"])
    transport.add_schedule("1", [airing_record("EP0"), airing_record("EP1")])

    orchestrator.fetch_schedules(stations("1"))

    assert transport.calls_to("programs") == 1
    assert transport.calls_to("schedules") == 1


def test_complete_schedules_are_cached(transport, cache, orchestrator):
    transport.add_programs(program_record("EP0"))
    transport.add_schedule("1", [airing_record("EP0")])

    orchestrator.fetch_schedules(stations("1"))
    again = orchestrator.fetch_schedules(stations("1"))

    assert transport.calls == 2
    assert schedule_key("1") in cache
    assert again.cache_hits == 1


def test_partial_schedule_records_airing_failures_and_is_not_cached(transport, cache, orchestrator):
    bad_program = program_record("EP9")
    del bad_program["md5"]
    transport.add_programs(program_record("EP0"), bad_program)
    bad_airing = airing_record("EP0")
    del bad_airing["airDateTime"]
    transport.add_schedule("1", [airing_record("EP0"), airing_record("EP9"), bad_airing])

    result = orchestrator.fetch_schedules(stations("1"))

    assert len(result.entities["1"]) == 1
    assert set(result.failures) == {"1/EP9", "1/EP0"}
    assert isinstance(result.failures["1/EP9"].cause, MissingField)
    assert schedule_key("1") not in cache


def test_station_error_objects_are_failures(transport, orchestrator):
    transport.add_programs(program_record("EP0"))
    transport.add_schedule("1", [airing_record("EP0")])
    transport.schedules["2"] = {"stationID": "2", "code": 7100, "response": "SCHEDULE_QUEUED"}

    result = orchestrator.fetch_schedules(stations("1", "2", "3"))

    assert set(result.entities) == {"1"}
    assert result.failures["2"].cause.code == 7100
    assert isinstance(result.failures["3"].cause, UpstreamRecordError)


LINEUP_DOCUMENT = {
    "map": [
        {"stationID": "1", "uhfVhf": 15},
        {"stationID": "2", "uhfVhf": 31, "atscMajor": 4, "atscMinor": 2},
        {"stationID": "3", "uhfVhf": 40, "atscMajor": 40, "atscMinor": 1},
    ],
    "stations": [
        station_record("1"),
        station_record("2"),
        {"stationID": "3", "name": "No callsign"},
    ],
    "metadata": {"lineup": "USA-OTA-90210", "modified": "2014-06-25T16:30:34Z"},
}


def test_load_lineup_details(transport, cache, orchestrator):
    transport.documents["/20141201/lineups/USA-OTA-90210"] = LINEUP_DOCUMENT

    details = orchestrator.load_lineup_details("USA-OTA-90210", "/20141201/lineups/USA-OTA-90210")

    assert transport.calls == 1
    assert set(details.stations) == {"1", "2"}
    assert isinstance(details.failures["3"].cause, MissingField)
    assert details.channel_map.has_physical_mapping
    assert details.channel_map.physical_station_map["2"] == ["31-4-2"]
    assert details.last_modified.year == 2014
    assert details.airings is None
    assert station_key("1") in cache
    assert station_key("3") not in cache


def test_load_lineup_details_with_airings(transport, orchestrator):
    transport.documents["lineups/L1"] = LINEUP_DOCUMENT
    transport.add_programs(program_record("EP0"))
    transport.add_schedule("1", [airing_record("EP0")])
    transport.add_schedule("2", [])

    details = orchestrator.load_lineup_details("L1", "lineups/L1", fetch_airings=True)

    assert transport.calls == 3
    assert len(details.airings["1"]) == 1
    assert details.airings["2"] == ()
