"""
Guide Client

Facade wiring settings, transport, cache and orchestrator together, plus
the account-level operations (lineup listing and search, status, messages)
that do not go through batch resolution.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from tvguide.exceptions import ApiResponseError, MissingField
from tvguide.models import Airing, GuideModel, LineupSummary, Program, Station, SystemStatus, UserStatus
from tvguide.services.cache import CacheKey, EntityCache, EntityKind, program_key, station_key
from tvguide.services.decoder import decode_lineup_summary, decode_system_status, decode_user_status
from tvguide.services.diagnostics import DecodeFailureReporter, LoggingDecodeReporter
from tvguide.services.fetch_orchestrator import FetchOrchestrator
from tvguide.services.fetch_types import BatchRequest, BatchResult
from tvguide.services.lineup import Lineup
from tvguide.services.transport import HttpTransport, ResponseCode, Transport
from tvguide.utils.raw_record import as_object, optional_list, optional_str


logger = logging.getLogger(__name__)


class GuideClient:
    """
    Entry point for applications.

    All operations are blocking; a single instance may be shared between
    threads.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        cache: EntityCache | None = None,
        api_version: str = "20141201",
        cache_enabled: bool = True,
        reporter: DecodeFailureReporter | None = None,
    ):
        self.transport = transport
        self.cache = cache if cache is not None else EntityCache()
        self.api_version = api_version
        self.orchestrator = FetchOrchestrator(
            transport,
            self.cache,
            reporter=reporter,
            use_cache=cache_enabled,
        )
        self._lineups: dict[str, Lineup] = {}
        self._lineups_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any, *, cache: EntityCache | None = None) -> "GuideClient":
        """Build a client with an HttpTransport configured from GuideSettings."""
        transport = HttpTransport(
            settings.username,
            settings.password.get_secret_value(),
            base_url=settings.base_url,
            api_version=settings.api_version,
            user_agent=settings.user_agent,
            timeout=settings.http_timeout_sec,
            max_retries=settings.http_max_retries,
            backoff_factor=settings.http_backoff_factor,
        )
        return cls(
            transport,
            cache=cache,
            api_version=settings.api_version,
            cache_enabled=settings.cache_enabled,
            reporter=LoggingDecodeReporter(),
        )

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def _lineup_for(self, summary: LineupSummary) -> Lineup:
        with self._lineups_lock:
            lineup = self._lineups.get(summary.id)
            if lineup is None:
                lineup = Lineup(summary, self.orchestrator)
                self._lineups[summary.id] = lineup
            return lineup

    def _submit_one(self, request: BatchRequest) -> dict[str, Any]:
        records = self.transport.submit(request)
        return dict(as_object(records[0], request.path)) if records else {}

    # Lineups

    def get_lineups(self) -> list[Lineup]:
        """
        Lineups registered to the account.

        Returns:
            Lineup objects with details not yet loaded; empty when the
            account has none
        """
        try:
            document = self._submit_one(BatchRequest("GET", "lineups"))
        except ApiResponseError as exc:
            if exc.code == ResponseCode.NO_LINEUPS:
                logger.info("No lineups registered to this account")
                return []
            raise
        return [
            self._lineup_for(decode_lineup_summary(item))
            for item in optional_list(document, "lineups")
        ]

    def get_lineup(self, lineup_id: str) -> Lineup:
        """
        Lineup by id; a lineup not registered to the account is addressed
        through its conventional uri.
        """
        with self._lineups_lock:
            lineup = self._lineups.get(lineup_id)
        if lineup is not None:
            return lineup
        for lineup in self.get_lineups():
            if lineup.id == lineup_id:
                return lineup
        summary = LineupSummary(id=lineup_id, uri=f"/{self.api_version}/lineups/{lineup_id}")
        return self._lineup_for(summary)

    def search_lineups(self, country: str, postal_code: str) -> list[LineupSummary]:
        """
        Lineups available at a location, flattened across headends.

        Args:
            country: ISO 3166-1 alpha-3 country code, e.g. "USA"
            postal_code: Postal code within that country
        """
        records = self.transport.submit(
            BatchRequest("GET", "headends", params={"country": country, "postalcode": postal_code})
        )
        # Older documents key headends by id; newer ones are a plain array
        if len(records) == 1 and isinstance(records[0], dict) and "lineups" not in records[0]:
            headends = list(records[0].values())
        else:
            headends = records
        summaries = []
        for index, item in enumerate(headends):
            headend = as_object(item, f"headends[{index}]")
            location = optional_str(headend, "location", "") or ""
            lineup_type = optional_str(headend, "transport") or optional_str(headend, "type", "") or ""
            for lineup in optional_list(headend, "lineups", path=f"headends[{index}].lineups"):
                summaries.append(decode_lineup_summary(lineup, location=location, lineup_type=lineup_type))
        logger.info(f"Found {len(summaries)} lineups for {country}/{postal_code}")
        return summaries

    # Account

    def get_user_status(self) -> UserStatus:
        username = getattr(self.transport, "username", None)
        return decode_user_status(self._submit_one(BatchRequest("GET", "status")), username)

    def get_system_status(self) -> SystemStatus:
        document = self._submit_one(BatchRequest("GET", "status"))
        return decode_system_status(optional_list(document, "systemStatus"))

    def delete_message(self, message_id: str) -> None:
        """Acknowledge a message so the upstream stops reporting it."""
        self.transport.submit(BatchRequest("DELETE", f"messages/{message_id}"))
        logger.info(f"Deleted message {message_id}")

    # Entities

    def fetch_programs(self, program_ids: Iterable[str]) -> BatchResult[Program]:
        return self.orchestrator.fetch_programs(program_ids)

    def fetch_schedules(self, stations: Iterable[Station]) -> BatchResult[tuple[Airing, ...]]:
        return self.orchestrator.fetch_schedules(stations)

    def resolve_series(self, programs: Iterable[Program]) -> BatchResult[Program]:
        return self.orchestrator.resolve_series(programs)

    # Cache lifecycle

    def purge_cache(self) -> int:
        """Drop every cached entity and forget loaded lineup details."""
        with self._lineups_lock:
            self._lineups.clear()
        return self.cache.invalidate_all()

    def _purge_program(self, program_id: str) -> bool:
        removed = self.cache.invalidate(program_key(program_id))
        # Cached schedules embed their Programs and would keep serving the old one
        dropped = self.cache.invalidate_where(
            EntityKind.SCHEDULE,
            lambda airings: any(airing.program.id == program_id for airing in airings),
        )
        if dropped:
            logger.info(f"Dropped {dropped} cached schedules referencing program {program_id}")
        return removed

    def purge_cache_entry(self, kind: EntityKind | str, entity_id: str) -> bool:
        """
        Drop one cache entry by kind and id.

        Purging a program also drops every cached schedule with an airing of
        it, so the next schedule fetch decodes against a fresh Program.

        Returns:
            True if the entry itself was cached
        """
        kind = EntityKind.from_text(kind)
        if kind is EntityKind.PROGRAM:
            return self._purge_program(entity_id)
        return self.cache.invalidate(CacheKey(kind, entity_id))

    def purge_entity(self, entity: GuideModel) -> bool:
        """Drop the cache entry of a decoded Program or Station."""
        if isinstance(entity, Program):
            return self._purge_program(entity.id)
        if isinstance(entity, Station):
            return self.cache.invalidate(station_key(entity.id))
        raise TypeError(f"Entities of type {type(entity).__name__} are not cached")

    # Logos

    def fetch_logo(self, station: Station) -> bytes:
        """
        Download the logo image of a station.

        Raises:
            MissingField: If the station has no logo
            TransportFailure: If the download fails
        """
        if station.logo is None:
            raise MissingField("logo", entity_id=station.id)
        return self.transport.download(station.logo.url)

    def write_logo(self, station: Station, path: str | Path) -> Path:
        """Download a station's logo and write it to path; returns the path written."""
        data = self.fetch_logo(station)
        target = Path(path)
        target.write_bytes(data)
        logger.info(f"Wrote logo of station {station.id} ({len(data)} bytes) to {target}")
        return target


__all__ = ["GuideClient"]
