from __future__ import annotations

import threading

import pytest

from conftest import program_record, station_record
from tvguide.services.cache import (
    CacheKey,
    EntityCache,
    EntityKind,
    get_default_cache,
    program_key,
    reset_default_cache,
    schedule_key,
    station_key,
)
from tvguide.services.decoder import decode_program, decode_station


def test_keys_of_different_kinds_never_collide():
    cache = EntityCache()
    program = decode_program(program_record("42"))
    station = decode_station(station_record("42"))

    cache.put(program_key("42"), program)
    cache.put(station_key("42"), station)

    assert cache.get(program_key("42")) == program
    assert cache.get(station_key("42")) == station
    assert cache.get(program_key("42")) != cache.get(station_key("42"))
    assert schedule_key("42") not in cache
    assert len(cache) == 2


def test_key_string_form():
    assert str(program_key("EP1")) == "PROG:EP1"
    assert str(station_key("10001")) == "STAT:10001"
    assert str(schedule_key("10001")) == "SCHED:10001"
    assert CacheKey.parse("STAT:10001") == station_key("10001")
    with pytest.raises(ValueError):
        CacheKey.parse("10001")


def test_entity_kind_from_text():
    assert EntityKind.from_text("prog") is EntityKind.PROGRAM
    assert EntityKind.from_text("station") is EntityKind.STATION
    assert EntityKind.from_text(EntityKind.SCHEDULE) is EntityKind.SCHEDULE
    with pytest.raises(ValueError):
        EntityKind.from_text("airing")


def test_invalidate_and_invalidate_all():
    cache = EntityCache()
    cache.put(program_key("EP1"), "one")
    cache.put(program_key("EP2"), "two")

    assert cache.invalidate(program_key("EP1"))
    assert not cache.invalidate(program_key("EP1"))
    assert cache.get(program_key("EP1")) is None
    assert cache.invalidate_all() == 1
    assert len(cache) == 0


def test_none_is_never_cached():
    with pytest.raises(ValueError):
        EntityCache().put(program_key("EP1"), None)


def test_get_many_returns_only_hits():
    cache = EntityCache()
    cache.put(program_key("EP1"), "one")

    hits = cache.get_many([program_key("EP1"), program_key("EP2")])

    assert hits == {program_key("EP1"): "one"}


def test_concurrent_puts_are_safe():
    cache = EntityCache()

    def writer(offset):
        for index in range(200):
            cache.put(program_key(f"EP{offset}-{index}"), index)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == 8 * 200


def test_default_cache_singleton_and_reset():
    reset_default_cache()
    first = get_default_cache()

    assert get_default_cache() is first
    reset_default_cache()
    assert get_default_cache() is not first
    reset_default_cache()
