"""
Shared dataclasses used across the fetch pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from tvguide.exceptions import PartialDecodeFailure
from tvguide.models import Airing, Station
from tvguide.services.channel_map import ChannelMap

T = TypeVar("T")


@dataclass(slots=True)
class BatchRequest:
    """One upstream exchange; path is relative to the versioned API root."""
    method: str
    path: str
    body: Any = None
    params: dict[str, str] | None = None
    authenticated: bool = True


@dataclass(slots=True)
class BatchResult(Generic[T]):
    """
    Outcome of resolving a set of ids.

    Callers must not assume one entity per requested id: every id that did
    not resolve is listed in failures instead.
    """
    entities: dict[str, T] = field(default_factory=dict)
    failures: dict[str, PartialDecodeFailure] = field(default_factory=dict)
    cache_hits: int = 0
    transport_calls: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures

    def __len__(self) -> int:
        return len(self.entities)


@dataclass(slots=True)
class LineupDetails:
    """Everything load_details() derives for a lineup, published as one unit."""
    stations: dict[str, Station]
    channel_map: ChannelMap
    last_modified: datetime | None = None
    failures: dict[str, PartialDecodeFailure] = field(default_factory=dict)
    airings: dict[str, tuple[Airing, ...]] | None = None


__all__ = ["BatchRequest", "BatchResult", "LineupDetails"]
