from __future__ import annotations

import os

# Keep GuideSettings from picking up a developer's credentials or .env
os.environ.setdefault("TVGUIDE_USERNAME", "tester")
os.environ.setdefault("TVGUIDE_PASSWORD", "secret")

import pytest

from tvguide.exceptions import ConnectivityError, HttpStatusError
from tvguide.services.cache import EntityCache
from tvguide.services.fetch_orchestrator import FetchOrchestrator
from tvguide.services.fetch_types import BatchRequest


def program_record(program_id: str, **overrides):
    record = {
        "programID": program_id,
        "titles": [{"title120": f"Title {program_id}"}],
        "md5": f"md5-{program_id}",
        "descriptions": {
            "description1000": [
                {"descriptionLanguage": "es", "description": "Descripcion larga"},
                {"descriptionLanguage": "en", "description": "A long description"},
            ],
            "description100": [{"descriptionLanguage": "en", "description": "Short one"}],
        },
        "genres": ["Comedy"],
        "showType": "Series",
    }
    record.update(overrides)
    return record


def airing_record(program_id: str, start: str = "2014-06-28T02:00:00Z", duration: int = 1800, **overrides):
    record = {
        "programID": program_id,
        "airDateTime": start,
        "duration": duration,
        "md5": f"airing-{program_id}",
    }
    record.update(overrides)
    return record


def station_record(station_id: str, **overrides):
    record = {
        "stationID": station_id,
        "callsign": f"CALL{station_id}",
        "name": f"Station {station_id}",
        "affiliate": "ABC",
        "broadcaster": {"city": "Beverly Hills", "state": "CA", "postalcode": "90210", "country": "USA"},
    }
    record.update(overrides)
    return record


class FakeTransport:
    """
    Call-counting Transport double.

    Programs and schedules are served from in-memory stores, echoing only
    the requested ids the store knows; every other path is looked up in
    documents.
    """

    def __init__(self):
        self.programs: dict[str, dict] = {}
        self.schedules: dict[str, dict] = {}
        self.documents: dict[str, object] = {}
        self.files: dict[str, bytes] = {}
        self.requests: list[BatchRequest] = []
        self.fail_with: Exception | None = None

    @property
    def calls(self) -> int:
        return len(self.requests)

    def calls_to(self, path: str) -> int:
        return sum(1 for request in self.requests if request.path == path)

    def add_programs(self, *records: dict) -> None:
        for record in records:
            self.programs[record["programID"]] = record

    def add_schedule(self, station_id: str, airings: list[dict]) -> None:
        self.schedules[station_id] = {"stationID": station_id, "programs": airings}

    def submit(self, request: BatchRequest) -> list:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        if request.path == "programs":
            return [self.programs[program_id] for program_id in request.body if program_id in self.programs]
        if request.path == "schedules":
            return [
                self.schedules[item["stationID"]]
                for item in request.body
                if item["stationID"] in self.schedules
            ]
        document = self.documents.get(request.path)
        if document is None:
            raise ConnectivityError(f"No fake document for {request.path}")
        return document if isinstance(document, list) else [document]

    def download(self, url: str) -> bytes:
        if url not in self.files:
            raise HttpStatusError(f"HTTP 404 for GET {url}", 404)
        return self.files[url]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def cache() -> EntityCache:
    return EntityCache()


@pytest.fixture
def orchestrator(transport, cache) -> FetchOrchestrator:
    return FetchOrchestrator(transport, cache)
