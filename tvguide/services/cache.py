"""
Entity Cache

Thread-safe store of decoded entities keyed by (entity kind, upstream id).
Instances are injected into the orchestrator; the module-level default is a
convenience for applications that want one process-wide cache.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any, NamedTuple


logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    """Entity kinds with their disjoint cache-key prefixes"""
    PROGRAM = "PROG"
    STATION = "STAT"
    SCHEDULE = "SCHED"

    @classmethod
    def from_text(cls, text: "EntityKind | str") -> "EntityKind":
        """Accept a kind, its key prefix or its name in any case."""
        if isinstance(text, cls):
            return text
        normalized = str(text).strip().upper()
        for kind in cls:
            if normalized in (kind.value, kind.name):
                return kind
        raise ValueError(f"Unknown entity kind: {text!r}")


class CacheKey(NamedTuple):
    kind: EntityKind
    entity_id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.entity_id}"

    @classmethod
    def parse(cls, text: str) -> "CacheKey":
        """Parse the "KIND:id" string form back into a key."""
        prefix, sep, entity_id = text.partition(":")
        if not sep or not entity_id:
            raise ValueError(f"Invalid cache key: {text!r}")
        return cls(EntityKind(prefix), entity_id)


def program_key(program_id: str) -> CacheKey:
    return CacheKey(EntityKind.PROGRAM, program_id)


def station_key(station_id: str) -> CacheKey:
    return CacheKey(EntityKind.STATION, station_id)


def schedule_key(station_id: str) -> CacheKey:
    return CacheKey(EntityKind.SCHEDULE, station_id)


class EntityCache:
    """
    Concurrency-safe key -> entity map.

    Only successfully decoded entities are ever stored. There is no
    single-flight guarantee: two callers missing the same key concurrently
    both fetch, and the last put wins. Decoding the same upstream snapshot
    is deterministic, so either value is equivalent.
    """

    def __init__(self):
        """Initialize an empty cache."""
        self._entries: dict[CacheKey, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Any | None:
        """
        Look up an entity.

        Args:
            key: Cache key of the entity

        Returns:
            The cached entity or None on a miss
        """
        with self._lock:
            return self._entries.get(key)

    def get_many(self, keys: list[CacheKey]) -> dict[CacheKey, Any]:
        """Return the cached subset of keys in one lock acquisition."""
        with self._lock:
            return {key: self._entries[key] for key in keys if key in self._entries}

    def put(self, key: CacheKey, entity: Any) -> None:
        if entity is None:
            raise ValueError(f"Refusing to cache None for {key}")
        with self._lock:
            self._entries[key] = entity

    def invalidate(self, key: CacheKey) -> bool:
        """
        Drop one entry.

        Returns:
            True if the key was present
        """
        with self._lock:
            removed = self._entries.pop(key, None) is not None
        if removed:
            logger.debug(f"Invalidated cache entry {key}")
        return removed

    def invalidate_where(self, kind: EntityKind, predicate: Callable[[Any], bool]) -> int:
        """Drop every entry of a kind whose entity satisfies predicate; returns the count."""
        with self._lock:
            doomed = [
                key for key, entity in self._entries.items()
                if key.kind is kind and predicate(entity)
            ]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} {kind.value} entries")
        return len(doomed)

    def invalidate_all(self) -> int:
        """Drop every entry and return how many were removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cache purged: {count} entries removed")
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


# Global default instance
_default_cache: EntityCache | None = None


def get_default_cache() -> EntityCache:
    """
    Get or create the process-wide default cache.

    Returns:
        The shared EntityCache instance
    """
    global _default_cache
    if _default_cache is None:
        _default_cache = EntityCache()
    return _default_cache


def reset_default_cache() -> None:
    """
    Drop the process-wide default cache (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _default_cache
    _default_cache = None
