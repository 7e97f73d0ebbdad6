"""
Broadcast flag decoding

The feed has published the same airing properties in two shapes over time:
discrete boolean fields ("cc", "stereo", "dolby", ...) and tag lists
("audioProperties", "videoProperties"). Each shape is a strategy; the first
strategy whose probe matches the record decodes it.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from tvguide.models import BroadcastFlags, DolbyStatus, FinaleStatus, LiveStatus, PremiereStatus
from tvguide.utils.enum_decoding import decode_enum, normalize_token
from tvguide.utils.raw_record import optional_bool, optional_str, optional_str_list

logger = logging.getLogger(__name__)

DOLBY_TAG_PREFIXES = ("DD", "DOLBY")

DOLBY_ALIASES = {
    "DD 5.1": "DD51",
    "Dolby Digital": "DD",
    "Dolby Digital 5.1": "DD51",
    "Dolby Surround": "DSS",
    "Dolby Surround Sound": "DSS",
}

# Normalized tag -> BroadcastFlags attribute
FLAG_TAGS = {
    "CC": "closed_captioned",
    "STEREO": "stereo",
    "DVS": "descriptive_video",
    "SUBTITLED": "subtitled",
    "SAP": "sap",
    "HDTV": "hdtv",
    "LETTERBOX": "letterboxed",
    "3D": "is_3d",
    "ENHANCED": "enhanced",
}

# Tags that are known but carry no flag of interest
IGNORED_TAGS = {"SDTV", "UHDTV", "HDR", "ATMOS", "MONO", "SURROUND"}


class FlagStrategy(Protocol):
    name: str

    def applies(self, raw: Mapping[str, Any]) -> bool: ...

    def decode(self, raw: Mapping[str, Any], unknown: dict[str, str]) -> dict[str, Any]: ...


def decode_dolby(raw: str | None, unknown: dict[str, str]) -> DolbyStatus:
    result = decode_enum(DolbyStatus, raw, aliases=DOLBY_ALIASES)
    if result.raw is not None:
        unknown["dolby_status"] = result.raw
    return result.value


class TagListStrategy:
    """Current shape: audio/video property tag lists"""

    name = "tag-list"

    def applies(self, raw: Mapping[str, Any]) -> bool:
        return raw.get("audioProperties") is not None or raw.get("videoProperties") is not None

    def decode(self, raw: Mapping[str, Any], unknown: dict[str, str]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        tags = (*optional_str_list(raw, "audioProperties"), *optional_str_list(raw, "videoProperties"))
        for tag in tags:
            token = normalize_token(tag)
            attribute = FLAG_TAGS.get(token)
            if attribute is not None:
                values[attribute] = True
            elif token.startswith(DOLBY_TAG_PREFIXES):
                values["dolby_status"] = decode_dolby(tag, unknown)
            elif token not in IGNORED_TAGS:
                logger.info("Ignoring unrecognized broadcast property tag %r", tag)
        return values


class FlatFieldStrategy:
    """Legacy shape: one boolean field per property"""

    name = "flat-fields"

    FIELDS = {
        "cc": "closed_captioned",
        "stereo": "stereo",
        "dvs": "descriptive_video",
        "subtitled": "subtitled",
        "sap": "sap",
        "hdtv": "hdtv",
        "letterbox": "letterboxed",
        "is3d": "is_3d",
        "enhanced": "enhanced",
    }

    def applies(self, raw: Mapping[str, Any]) -> bool:
        return True

    def decode(self, raw: Mapping[str, Any], unknown: dict[str, str]) -> dict[str, Any]:
        values: dict[str, Any] = {
            attribute: optional_bool(raw, key) for key, attribute in self.FIELDS.items()
        }
        values["dolby_status"] = decode_dolby(optional_str(raw, "dolby"), unknown)
        return values


STRATEGIES: tuple[FlagStrategy, ...] = (TagListStrategy(), FlatFieldStrategy())


def decode_premiere_finale(raw: str | None, unknown: dict[str, str]) -> tuple[PremiereStatus, FinaleStatus]:
    """Split the combined premiere-or-finale text into its two statuses"""
    if raw is None or not raw.strip():
        return PremiereStatus.NONE, FinaleStatus.NONE
    if "PREMIERE" in normalize_token(raw):
        result = decode_enum(PremiereStatus, raw)
        if result.raw is not None:
            unknown["premiere_status"] = result.raw
        return result.value, FinaleStatus.NONE
    result = decode_enum(FinaleStatus, raw)
    if result.raw is not None:
        unknown["finale_status"] = result.raw
    return PremiereStatus.NONE, result.value


def decode_broadcast_flags(raw: Mapping[str, Any], unknown: dict[str, str]) -> BroadcastFlags:
    """
    Decode the broadcast flags of one raw airing.

    Args:
        raw: Raw airing record
        unknown: Receives field -> raw text for unrecognized enumerated values

    Returns:
        BroadcastFlags with absent properties defaulted to False / NONE
    """
    strategy = next(strategy for strategy in STRATEGIES if strategy.applies(raw))
    values = strategy.decode(raw, unknown)

    live = decode_enum(LiveStatus, optional_str(raw, "liveTapeDelay"))
    if live.raw is not None:
        unknown["live_status"] = live.raw
    values["live_status"] = live.value

    premiere, finale = decode_premiere_finale(optional_str(raw, "isPremiereOrFinale"), unknown)
    if optional_bool(raw, "premiere") and premiere is PremiereStatus.NONE:
        premiere = PremiereStatus.PREMIERE
    values["premiere_status"] = premiere
    values["finale_status"] = finale

    return BroadcastFlags(**values)
