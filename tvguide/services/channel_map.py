"""
Channel Map Builder

Derives a lineup's channel numbering from its raw channel-map entries and
decoded stations. Over-the-air lineups (any entry carrying a UHF/VHF number)
are numbered from tuning data; every other lineup uses the provider's
channel strings.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tvguide.models import Station, TuningInfo
from tvguide.utils.raw_record import as_object, has_field, optional_str, require_str


logger = logging.getLogger(__name__)


class ChannelMode(str, Enum):
    LOGICAL = "logical"
    PHYSICAL = "physical"


def logical_number(tuning: TuningInfo | None) -> str | None:
    """
    Guide number from ATSC major/minor, e.g. "4-2".

    Returns whichever part is present when only one is non-zero, or None.
    """
    if tuning is None:
        return None
    parts = [str(number) for number in (tuning.atsc_major, tuning.atsc_minor) if number > 0]
    return "-".join(parts) or None


def physical_number(tuning: TuningInfo | None) -> str | None:
    """Tuned number, e.g. "31-4-2": the UHF/VHF number suffixed with the logical number."""
    if tuning is None or tuning.uhf_vhf <= 0:
        return None
    logical = logical_number(tuning)
    return f"{tuning.uhf_vhf}-{logical}" if logical else str(tuning.uhf_vhf)


def normalize_channel(channel: str) -> str:
    return channel.replace(".", "-")


@dataclass(slots=True)
class ChannelMap:
    """Channel numbers per station id, in both numbering schemes"""
    mode: ChannelMode
    station_map: dict[str, list[str]] = field(default_factory=dict)
    physical_station_map: dict[str, list[str]] = field(default_factory=dict)
    has_physical_mapping: bool = False

    def tunable_station_map(self) -> dict[str, list[str]]:
        """The physical map when it differs from the logical one, else the logical map."""
        return self.physical_station_map if self.has_physical_mapping else self.station_map


def detect_mode(map_entries: Iterable[Any]) -> ChannelMode:
    if any(has_field(entry, "uhfVhf") for entry in map_entries):
        return ChannelMode.PHYSICAL
    return ChannelMode.LOGICAL


class ChannelMapBuilder:
    """Builds a ChannelMap for one lineup; stateless and reusable"""

    def build(self, map_entries: list[Any], stations: Mapping[str, Station]) -> ChannelMap:
        """
        Build the channel map.

        Args:
            map_entries: Raw channel-map entries of the lineup document
            stations: Decoded stations by id, tuning info already attached

        Returns:
            ChannelMap in the detected mode
        """
        mode = detect_mode(map_entries)
        if mode is ChannelMode.PHYSICAL:
            channel_map = self._build_physical(stations)
        else:
            channel_map = self._build_logical(map_entries, stations)
        logger.debug(
            f"Built {mode.value} channel map for {len(channel_map.station_map)} stations "
            f"(physical mapping: {channel_map.has_physical_mapping})"
        )
        return channel_map

    def _build_logical(self, map_entries: list[Any], stations: Mapping[str, Station]) -> ChannelMap:
        channel_map = ChannelMap(mode=ChannelMode.LOGICAL)
        for index, item in enumerate(map_entries):
            entry = as_object(item, f"map[{index}]")
            station_id = require_str(entry, "stationID", path=f"map[{index}].stationID")
            if station_id not in stations:
                continue
            channel = optional_str(entry, "channel", path=f"map[{index}].channel")
            number = normalize_channel(channel) if channel else logical_number(stations[station_id].tuning)
            if number is None:
                logger.warning(f"Channel map entry for station {station_id} has no channel number")
                continue
            channel_map.station_map.setdefault(station_id, []).append(number)
        return channel_map

    def _build_physical(self, stations: Mapping[str, Station]) -> ChannelMap:
        channel_map = ChannelMap(mode=ChannelMode.PHYSICAL)
        differs = False
        for station_id, station in stations.items():
            physical = physical_number(station.tuning)
            logical = logical_number(station.tuning) or physical
            if logical is not None:
                channel_map.station_map.setdefault(station_id, []).append(logical)
            if physical is not None:
                channel_map.physical_station_map.setdefault(station_id, []).append(physical)
            if physical is not None and logical is not None and physical != logical:
                differs = True
        channel_map.has_physical_mapping = differs
        return channel_map
