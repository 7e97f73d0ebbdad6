"""
Enumerated value decoding with normalization and UNKNOWN fallback.

Every small closed vocabulary in the feed (dolby, live, premiere, finale,
ratings, content types, ...) is decoded by decode_enum(). Unrecognized text
never fails a decode: it resolves to the vocabulary's UNKNOWN member and the
raw text is handed back so the entity can keep it for diagnostics.
"""
from __future__ import annotations

import logging
import re
import threading
from collections.abc import Mapping
from enum import Enum
from typing import NamedTuple, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

_NON_ALNUM = re.compile(r"[^A-Z0-9]")

_warned: set[tuple[str, str]] = set()
_warned_lock = threading.Lock()


class EnumDecodeResult(NamedTuple):
    value: Enum
    raw: str | None

    @property
    def recognized(self) -> bool:
        return self.raw is None


def normalize_token(text: str) -> str:
    """Upper-case text and drop everything that is not a letter or digit."""
    return _NON_ALNUM.sub("", text.upper())


def _lookup_table(enum_cls: type[Enum], aliases: Mapping[str, str] | None) -> dict[str, Enum]:
    table = {normalize_token(member.name): member for member in enum_cls}
    for alias, member_name in (aliases or {}).items():
        table[normalize_token(alias)] = enum_cls[member_name]
    return table


_tables: dict[tuple[type[Enum], tuple[tuple[str, str], ...]], dict[str, Enum]] = {}


def decode_enum(
    enum_cls: type[E],
    raw: str | None,
    *,
    aliases: Mapping[str, str] | None = None,
) -> EnumDecodeResult:
    """
    Decode raw text into a member of enum_cls.

    Args:
        enum_cls: Vocabulary; must define UNKNOWN and may define NONE
        raw: Text as received (None or blank means "not provided")
        aliases: Extra spellings mapped to member names

    Returns:
        EnumDecodeResult whose raw attribute holds the original text only when
        the value was not recognized
    """
    if raw is None or not str(raw).strip():
        default = enum_cls.__members__.get("NONE", enum_cls["UNKNOWN"])
        return EnumDecodeResult(default, None if default.name == "NONE" else raw)

    cache_key = (enum_cls, tuple(sorted((aliases or {}).items())))
    table = _tables.get(cache_key)
    if table is None:
        table = _lookup_table(enum_cls, aliases)
        _tables[cache_key] = table

    member = table.get(normalize_token(str(raw)))
    if member is not None and member.name != "UNKNOWN":
        return EnumDecodeResult(member, None)

    _warn_once(enum_cls.__name__, str(raw))
    return EnumDecodeResult(enum_cls["UNKNOWN"], str(raw))


def _warn_once(vocabulary: str, raw: str) -> None:
    key = (vocabulary, raw)
    with _warned_lock:
        if key in _warned:
            return
        _warned.add(key)
    logger.warning("Unknown %s encountered: %r", vocabulary, raw)
