"""
Lineups

A Lineup starts out as the identifying summary returned by a listing call.
Stations and channel numbering are expensive to build, so they are loaded
on demand by load_details(); until then every accessor that needs them
raises NotYetLoaded.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime

from tvguide.exceptions import NotYetLoaded, PartialDecodeFailure
from tvguide.models import Airing, LineupSummary, Station
from tvguide.services.fetch_orchestrator import FetchOrchestrator
from tvguide.services.fetch_types import LineupDetails


logger = logging.getLogger(__name__)


class Lineup:
    """
    A named collection of stations plus its channel numbering.

    Details are published as one LineupDetails snapshot, so a reader sees
    either nothing or everything. Concurrent load_details() calls are
    serialized and the document is fetched once.
    """

    def __init__(self, summary: LineupSummary, orchestrator: FetchOrchestrator):
        self.summary = summary
        self._orchestrator = orchestrator
        self._details: LineupDetails | None = None
        self._lock = threading.Lock()

    @property
    def id(self) -> str:
        return self.summary.id

    @property
    def name(self) -> str:
        return self.summary.name

    @property
    def location(self) -> str:
        return self.summary.location

    @property
    def uri(self) -> str:
        return self.summary.uri

    @property
    def type(self) -> str:
        return self.summary.type

    @property
    def is_loaded(self) -> bool:
        return self._details is not None

    def load_details(self, fetch_airings: bool = False) -> "Lineup":
        """
        Fetch stations and channel numbering; optionally every station's airings.

        Loading is done once; a later call with fetch_airings=True only adds
        the airings.

        Raises:
            TransportFailure: If an upstream exchange fails
            DecodeError: If the lineup document itself is unusable
        """
        with self._lock:
            if self._details is None:
                self._details = self._orchestrator.load_lineup_details(
                    self.id, self.uri, fetch_airings=fetch_airings
                )
            elif fetch_airings and self._details.airings is None:
                schedules = self._orchestrator.fetch_schedules(self._details.stations.values())
                self._details = LineupDetails(
                    stations=self._details.stations,
                    channel_map=self._details.channel_map,
                    last_modified=self._details.last_modified,
                    failures={**self._details.failures, **schedules.failures},
                    airings=schedules.entities,
                )
        return self

    def _require(self, accessor: str) -> LineupDetails:
        details = self._details
        if details is None:
            raise NotYetLoaded(self.id, accessor)
        return details

    @property
    def stations(self) -> dict[str, Station]:
        return dict(self._require("stations").stations)

    @property
    def station_map(self) -> dict[str, list[str]]:
        """Logical (guide) channel numbers per station id"""
        return self._require("station_map").channel_map.station_map

    @property
    def physical_station_map(self) -> dict[str, list[str]]:
        """Tunable channel numbers per station id; the logical map when no physical mapping differs"""
        return self._require("physical_station_map").channel_map.tunable_station_map()

    @property
    def has_physical_mapping(self) -> bool:
        return self._require("has_physical_mapping").channel_map.has_physical_mapping

    @property
    def last_modified(self) -> datetime | None:
        return self._require("last_modified").last_modified

    @property
    def failures(self) -> dict[str, PartialDecodeFailure]:
        return dict(self._require("failures").failures)

    def get_station(self, station_id: str) -> Station | None:
        return self._require("get_station").stations.get(station_id)

    def get_station_by_channel(self, channel: str) -> Station | None:
        """Find the station carried on a logical or physical channel number."""
        details = self._require("get_station_by_channel")
        maps = (details.channel_map.station_map, details.channel_map.physical_station_map)
        for station_map in maps:
            for station_id, numbers in station_map.items():
                if channel in numbers:
                    return details.stations.get(station_id)
        return None

    def airings(self, station_id: str) -> tuple[Airing, ...]:
        details = self._require("airings")
        if details.airings is None:
            raise NotYetLoaded(self.id, "airings (call load_details(fetch_airings=True))")
        return details.airings.get(station_id, ())

    def __repr__(self) -> str:
        return f"Lineup(id={self.id!r}, name={self.name!r}, loaded={self.is_loaded})"
