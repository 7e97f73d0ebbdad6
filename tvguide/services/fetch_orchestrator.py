"""
Fetch Orchestration

Resolves sets of ids to decoded entities with a bounded number of upstream
round trips: cache hits are served locally and all misses of one request go
out in a single batch. Schedules prefetch every referenced program with one
nested batch instead of one call per airing.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from tvguide.exceptions import DecodeError, MissingField, PartialDecodeFailure, UpstreamRecordError
from tvguide.models import Airing, Program, Station
from tvguide.services.cache import CacheKey, EntityCache, program_key, schedule_key, station_key
from tvguide.services.channel_map import ChannelMapBuilder
from tvguide.services.decoder import (
    check_upstream_error,
    decode_airing,
    decode_program,
    decode_safely,
    decode_station,
)
from tvguide.services.diagnostics import DecodeFailureReporter
from tvguide.services.fetch_types import BatchRequest, BatchResult, LineupDetails
from tvguide.services.transport import Transport
from tvguide.utils.logging_helpers import log_batch_plan, log_batch_summary, log_lineup_summary
from tvguide.utils.raw_record import (
    as_object,
    optional_list,
    optional_object,
    optional_str,
    require_list,
    require_str,
)
from tvguide.utils.timezone import DateFormatError, parse_upstream_datetime


logger = logging.getLogger(__name__)

T = TypeVar("T")

UNKNOWN_ID = "?"


def _dedupe(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def _record_id(raw: Any, id_key: str) -> str | None:
    if isinstance(raw, Mapping) and raw.get(id_key) is not None:
        return str(raw[id_key])
    return None


class FetchOrchestrator:
    """
    Batched, cache-aware entity resolution.

    Transport failures propagate and abort the whole call. A record that
    fails to decode is recorded in the result's failure manifest and the
    rest of the batch carries on. Ids that fail are never cached, so the
    next call requests them again.
    """

    def __init__(
        self,
        transport: Transport,
        cache: EntityCache,
        *,
        reporter: DecodeFailureReporter | None = None,
        use_cache: bool = True,
        channel_map_builder: ChannelMapBuilder | None = None,
    ):
        self.transport = transport
        self.cache = cache
        self.reporter = reporter
        self.use_cache = use_cache
        self.channel_map_builder = channel_map_builder or ChannelMapBuilder()

    def _fail(
        self,
        result: BatchResult[Any],
        key: str,
        error: DecodeError,
        raw: Any = None,
    ) -> None:
        result.failures[key] = PartialDecodeFailure(key, error, raw)
        if self.reporter is not None:
            self.reporter.report(key, raw, error)

    def _settle_misses(
        self,
        result: BatchResult[Any],
        misses: list[str],
        orphans: dict[int, tuple[DecodeError, Any]],
        message: str,
    ) -> None:
        """
        Record a failure for every requested id that got neither an entity nor a failure.

        A record that arrived without its id explains one of them: the only
        unaccounted id when there is exactly one, otherwise the id requested
        at the record's position. Orphans that match nothing are only reported.
        """
        unaccounted = [
            entity_id for entity_id in misses
            if entity_id not in result.entities and entity_id not in result.failures
        ]
        matched: dict[str, int] = {}
        if len(orphans) == 1 and len(unaccounted) == 1:
            matched[unaccounted[0]] = next(iter(orphans))
        else:
            for index in orphans:
                if index < len(misses) and misses[index] in unaccounted:
                    matched[misses[index]] = index

        for entity_id in unaccounted:
            index = matched.get(entity_id)
            if index is None:
                self._fail(result, entity_id, UpstreamRecordError(entity_id, message))
                continue
            error, raw = orphans[index]
            error.entity_id = entity_id
            self._fail(result, entity_id, error, raw)

        for index in sorted(orphans.keys() - set(matched.values())):
            error, raw = orphans[index]
            logger.warning(f"Record {index} carries no id and matches no requested id: {error}")
            if self.reporter is not None:
                self.reporter.report(f"{UNKNOWN_ID}{index}", raw, error)

    def _cached(self, keys: list[CacheKey]) -> dict[CacheKey, Any]:
        if not self.use_cache:
            return {}
        return self.cache.get_many(keys)

    def _store(self, key: CacheKey, entity: Any) -> None:
        if self.use_cache:
            self.cache.put(key, entity)

    def _resolve_batch(
        self,
        kind: str,
        ids: Iterable[str],
        key_of: Callable[[str], CacheKey],
        request_for: Callable[[list[str]], BatchRequest],
        id_key: str,
        decode: Callable[[Any], T],
    ) -> BatchResult[T]:
        """
        Resolve ids: cache hits first, then one transport call for all misses.

        Args:
            kind: Entity kind name for logging
            ids: Requested ids; duplicates are collapsed
            key_of: Cache key for an id
            request_for: Builds the single batch request for the misses
            id_key: Field carrying the id in each raw record
            decode: Decoder for one raw record

        Returns:
            BatchResult with hits and decoded misses plus per-id failures
        """
        requested = _dedupe(ids)
        result: BatchResult[T] = BatchResult()
        hits = self._cached([key_of(entity_id) for entity_id in requested])
        for key, entity in hits.items():
            result.entities[key.entity_id] = entity
        result.cache_hits = len(hits)

        misses = [entity_id for entity_id in requested if entity_id not in result.entities]
        log_batch_plan(logger, kind, len(requested), len(hits))
        if not misses:
            return result

        records = self.transport.submit(request_for(misses))
        result.transport_calls = 1

        orphans: dict[int, tuple[DecodeError, Any]] = {}
        for index, raw in enumerate(records):
            entity_id = _record_id(raw, id_key)
            if entity_id is None:
                # Matched to the requested id it stood for once all records are in
                orphans[index] = (MissingField(id_key), raw)
                continue
            outcome = decode_safely(entity_id, decode, raw)
            if outcome.ok:
                result.entities[entity_id] = outcome.entity
                self._store(key_of(entity_id), outcome.entity)
            else:
                self._fail(result, entity_id, outcome.error, raw)

        self._settle_misses(result, misses, orphans, "No record returned by upstream")

        log_batch_summary(logger, kind, len(result.entities), len(result.failures))
        return result

    def fetch_programs(self, program_ids: Iterable[str]) -> BatchResult[Program]:
        """
        Resolve program ids to Programs with at most one transport call.

        Raises:
            TransportFailure: If the batch exchange fails
        """
        return self._resolve_batch(
            "Program",
            program_ids,
            program_key,
            lambda misses: BatchRequest("POST", "programs", body=misses),
            "programID",
            decode_program,
        )

    def resolve_series(self, programs: Iterable[Program]) -> BatchResult[Program]:
        """Resolve the parent series of every episode in one batch."""
        series_ids = [program.series_ref for program in programs if program.series_ref]
        return self.fetch_programs(series_ids)

    def fetch_schedules(self, stations: Iterable[Station]) -> BatchResult[tuple[Airing, ...]]:
        """
        Resolve the airings of each station.

        Uncached schedules are requested in one batch; every program they
        reference is then resolved with one nested program batch. Results are
        keyed by station id; failures by station id, or "station/program" for
        a single airing. A station's schedule is cached only when every one
        of its airings decoded.

        Raises:
            TransportFailure: If either batch exchange fails
        """
        by_id = {station.id: station for station in stations}
        result: BatchResult[tuple[Airing, ...]] = BatchResult()
        hits = self._cached([schedule_key(station_id) for station_id in by_id])
        for key, airings in hits.items():
            result.entities[key.entity_id] = airings
        result.cache_hits = len(hits)

        misses = [station_id for station_id in by_id if station_id not in result.entities]
        log_batch_plan(logger, "Schedule", len(by_id), len(hits))
        if not misses:
            return result

        records = self.transport.submit(
            BatchRequest("POST", "schedules", body=[{"stationID": station_id} for station_id in misses])
        )
        result.transport_calls = 1

        schedules: dict[str, list[Any]] = {}
        orphans: dict[int, tuple[DecodeError, Any]] = {}
        for index, raw in enumerate(records):
            station_id = _record_id(raw, "stationID")
            if station_id is None:
                orphans[index] = (MissingField("stationID"), raw)
                continue
            try:
                check_upstream_error(raw, "stationID")
                if station_id not in by_id:
                    logger.warning(f"Ignoring schedule for unrequested station {station_id}")
                    continue
                schedules[station_id] = optional_list(raw, "programs")
            except DecodeError as exc:
                self._fail(result, station_id, exc.with_entity(station_id), raw)

        program_ids = [
            program_id
            for airings in schedules.values()
            for raw in airings
            if (program_id := _record_id(raw, "programID"))
        ]
        programs = self.fetch_programs(program_ids)
        result.transport_calls += programs.transport_calls

        for station_id, airing_records in schedules.items():
            station = by_id[station_id]
            airings = []
            complete = True
            for index, raw in enumerate(airing_records):
                program_id = _record_id(raw, "programID")
                failure_key = f"{station_id}/{program_id or f'{UNKNOWN_ID}{index}'}"
                program = programs.entities.get(program_id) if program_id else None
                if program is None:
                    complete = False
                    cause = programs.failures.get(program_id) if program_id else None
                    error = cause.cause if cause is not None else DecodeError(
                        "Airing references no resolvable program", field="programID", entity_id=program_id
                    )
                    self._fail(result, failure_key, error, raw)
                    continue
                outcome = decode_safely(failure_key, decode_airing, raw, program, station)
                if outcome.ok:
                    airings.append(outcome.entity)
                else:
                    complete = False
                    self._fail(result, failure_key, outcome.error, raw)
            schedule = tuple(sorted(airings, key=lambda airing: airing.start))
            result.entities[station_id] = schedule
            if complete:
                self._store(schedule_key(station_id), schedule)

        self._settle_misses(result, misses, orphans, "No schedule returned by upstream")

        log_batch_summary(logger, "Schedule", len(result.entities), len(result.failures))
        return result

    def load_lineup_details(self, lineup_id: str, uri: str, *, fetch_airings: bool = False) -> LineupDetails:
        """
        Fetch a lineup document and derive its stations and channel map.

        Args:
            lineup_id: Id of the lineup, for logging and error context
            uri: Path of the lineup document relative to the API root
            fetch_airings: Also resolve every station's schedule

        Returns:
            LineupDetails snapshot

        Raises:
            TransportFailure: If a batch exchange fails
            DecodeError: If the lineup document itself is unusable
        """
        records = self.transport.submit(BatchRequest("GET", uri))
        if not records:
            raise UpstreamRecordError(lineup_id, "Empty lineup document")
        document = as_object(records[0], "lineup")
        check_upstream_error(document, "lineup")

        map_entries = require_list(document, "map")
        tuning_entries: dict[str, Any] = {}
        for index, item in enumerate(map_entries):
            entry = as_object(item, f"map[{index}]")
            tuning_entries.setdefault(require_str(entry, "stationID", path=f"map[{index}].stationID"), entry)

        stations: dict[str, Station] = {}
        failures: BatchResult[Station] = BatchResult()
        for index, raw in enumerate(optional_list(document, "stations")):
            station_id = _record_id(raw, "stationID") or f"{UNKNOWN_ID}{index}"
            outcome = decode_safely(station_id, decode_station, raw, tuning_entries.get(station_id))
            if outcome.ok:
                stations[station_id] = outcome.entity
                self._store(station_key(station_id), outcome.entity)
            else:
                self._fail(failures, station_id, outcome.error, raw)

        channel_map = self.channel_map_builder.build(map_entries, stations)

        last_modified = None
        metadata = optional_object(document, "metadata")
        modified = optional_str(metadata, "modified", path="metadata.modified") if metadata else None
        if modified:
            try:
                last_modified = parse_upstream_datetime(modified)
            except DateFormatError:
                logger.warning(f"Lineup {lineup_id}: ignoring unparseable modified date {modified!r}")

        airings = None
        if fetch_airings:
            schedules = self.fetch_schedules(stations.values())
            airings = schedules.entities
            failures.failures.update(schedules.failures)

        log_lineup_summary(
            logger, lineup_id, len(stations), len(failures.failures), channel_map.has_physical_mapping
        )
        return LineupDetails(
            stations=stations,
            channel_map=channel_map,
            last_modified=last_modified,
            failures=failures.failures,
            airings=airings,
        )
