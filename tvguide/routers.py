from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException

from tvguide.dependencies import get_guide_client
from tvguide.exceptions import ApiResponseError, HttpStatusError
from tvguide.schemas import (
    CachePurgeResponse,
    ErrorResponse,
    FailureInfo,
    LineupDetailsResponse,
    LineupListResponse,
    ProgramsRequest,
    ProgramsResponse,
)
from tvguide.services.cache import EntityKind
from tvguide.services.guide_client import GuideClient
from tvguide.services.transport import LINEUP_NOT_FOUND_CODES
from tvguide.utils.timezone import format_upstream_datetime


logger = logging.getLogger(__name__)

main_router = APIRouter(
    responses={
        409: {"model": ErrorResponse, "description": "Lineup used before its details loaded"},
        502: {"model": ErrorResponse, "description": "Upstream exchange failed or sent an unusable document"},
    }
)

Client = Annotated[GuideClient, Depends(get_guide_client)]


@main_router.get("/health")
def health_check(client: Client) -> dict:
    """Health check endpoint"""
    return {
        "status": "ok",
        "cached_entities": len(client.cache),
    }


@main_router.get("/lineups", response_model=LineupListResponse)
def list_lineups(client: Client) -> LineupListResponse:
    """Lineups registered to the configured account"""
    return LineupListResponse(lineups=[lineup.summary for lineup in client.get_lineups()])


@main_router.get("/lineups/{lineup_id}", response_model=LineupDetailsResponse)
def get_lineup(lineup_id: str, client: Client) -> LineupDetailsResponse:
    """
    Load a lineup's stations and channel numbering

    Args:
        lineup_id: Upstream lineup id, e.g. USA-OTA-90210

    Returns:
        Stations, logical and tunable channel maps, and per-station failures
    """
    lineup = client.get_lineup(lineup_id)
    try:
        lineup.load_details()
    except HttpStatusError as e:
        if e.status == 404:
            raise HTTPException(status_code=404, detail=f"Unknown lineup: {lineup_id}")
        raise
    except ApiResponseError as e:
        if e.code in LINEUP_NOT_FOUND_CODES:
            raise HTTPException(status_code=404, detail=f"Unknown lineup: {lineup_id}")
        raise

    last_modified = lineup.last_modified
    return LineupDetailsResponse(
        lineup=lineup.summary,
        stations=sorted(lineup.stations.values(), key=lambda station: station.id),
        station_map=lineup.station_map,
        physical_station_map=lineup.physical_station_map,
        has_physical_mapping=lineup.has_physical_mapping,
        last_modified=format_upstream_datetime(last_modified) if last_modified else None,
        failures=[FailureInfo.from_failure(failure) for failure in lineup.failures.values()],
    )


@main_router.post("/programs", response_model=ProgramsResponse)
def get_programs(request: ProgramsRequest, client: Client) -> ProgramsResponse:
    """
    Resolve program ids in one batch

    Ids that fail to resolve are listed in failures; the call itself only
    fails when the upstream exchange does.
    """
    result = client.fetch_programs(request.program_ids)
    failures = [FailureInfo.from_failure(failure) for failure in result.failures.values()]
    transport_calls = result.transport_calls

    series = {}
    if request.resolve_series:
        series_result = client.resolve_series(result.entities.values())
        series = series_result.entities
        failures.extend(FailureInfo.from_failure(failure) for failure in series_result.failures.values())
        transport_calls += series_result.transport_calls

    return ProgramsResponse(
        programs=result.entities,
        series=series,
        failures=failures,
        cache_hits=result.cache_hits,
        transport_calls=transport_calls,
    )


@main_router.delete("/cache", response_model=CachePurgeResponse)
def purge_cache(client: Client) -> CachePurgeResponse:
    """Drop every cached entity"""
    logger.info("Cache purge requested via API")
    return CachePurgeResponse(removed=client.purge_cache())


@main_router.delete("/cache/{kind}/{entity_id}", response_model=CachePurgeResponse)
def purge_cache_entry(kind: str, entity_id: str, client: Client) -> CachePurgeResponse:
    """Drop one cached entity; kind is PROG, STAT or SCHED (or the kind name)"""
    try:
        entity_kind = EntityKind.from_text(kind)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown entity kind: {kind}")
    removed = client.purge_cache_entry(entity_kind, entity_id)
    return CachePurgeResponse(removed=int(removed))
