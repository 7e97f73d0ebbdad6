from pydantic import BaseModel, Field, field_validator

from tvguide.exceptions import PartialDecodeFailure
from tvguide.models import LineupSummary, Program, Station


class ProgramsRequest(BaseModel):
    """Batched program lookup"""
    program_ids: list[str] = Field(..., min_length=1, max_length=5000, description="Upstream program ids")
    resolve_series: bool = Field(default=False, description="Also resolve the parent series of episodes")

    @field_validator("program_ids")
    @classmethod
    def validate_program_ids(cls, v: list[str]) -> list[str]:
        """Reject blank ids"""
        cleaned = [program_id.strip() for program_id in v]
        if any(not program_id for program_id in cleaned):
            raise ValueError("program_ids must not contain blank ids")
        return cleaned


class FailureInfo(BaseModel):
    """One id that did not resolve"""
    entity_id: str
    error: str = Field(..., description="Error class name")
    message: str
    field: str | None = None

    @classmethod
    def from_failure(cls, failure: PartialDecodeFailure) -> "FailureInfo":
        return cls(
            entity_id=failure.entity_id,
            error=type(failure.cause).__name__,
            message=str(failure.cause),
            field=failure.cause.field,
        )


class ProgramsResponse(BaseModel):
    """Resolved programs plus the failure manifest"""
    programs: dict[str, Program]
    series: dict[str, Program] = Field(default_factory=dict)
    failures: list[FailureInfo] = Field(default_factory=list)
    cache_hits: int = 0
    transport_calls: int = 0


class LineupListResponse(BaseModel):
    lineups: list[LineupSummary]


class LineupDetailsResponse(BaseModel):
    """A lineup after its details were loaded"""
    lineup: LineupSummary
    stations: list[Station]
    station_map: dict[str, list[str]]
    physical_station_map: dict[str, list[str]]
    has_physical_mapping: bool
    last_modified: str | None = Field(None, description="ISO8601 UTC last modification time")
    failures: list[FailureInfo] = Field(default_factory=list)


class CachePurgeResponse(BaseModel):
    removed: int


class ErrorResponse(BaseModel):
    """Standard error body"""
    error: str
    detail: str
