from __future__ import annotations

import logging
from datetime import date, datetime, timezone

import pytest

from tvguide.exceptions import MalformedField, MissingField
from tvguide.models import ColorCode, ContentType, DolbyStatus, Role, SourceType, TvRating
from tvguide.utils.enum_decoding import decode_enum, normalize_token
from tvguide.utils.raw_record import optional_bool, optional_int, require_int, require_list, require_str
from tvguide.utils.star_rating import StarRatingFormatError, parse_star_rating
from tvguide.utils.timezone import (
    DateFormatError,
    format_upstream_datetime,
    parse_upstream_date,
    parse_upstream_datetime,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("***", 3.0),
        ("+", 0.5),
        ("***+", 3.5),
        ("*", 1.0),
        ("****", 4.0),
    ],
)
def test_star_rating_parses(text, expected):
    assert parse_star_rating(text) == expected


@pytest.mark.parametrize("text", ["%", "**+*", "****+", "++", "", "** "])
def test_star_rating_rejects(text):
    with pytest.raises(StarRatingFormatError):
        parse_star_rating(text)


def test_star_rating_error_is_value_error():
    assert issubclass(StarRatingFormatError, ValueError)


def test_normalize_token_strips_punctuation_and_case():
    assert normalize_token("tv-14") == "TV14"
    assert normalize_token("Dolby Digital 5.1") == "DOLBYDIGITAL51"


@pytest.mark.parametrize(
    "enum_cls, raw, expected",
    [
        (TvRating, "TV-14", TvRating.TV14),
        (TvRating, "tvpg", TvRating.TVPG),
        (ContentType, "First Run Syndication", ContentType.FIRST_RUN_SYNDICATION),
        (ColorCode, "Color and B & W", ColorCode.COLOR_AND_BW),
        (ColorCode, "Sepia", ColorCode.UNKNOWN),
        (ColorCode, "B&W", ColorCode.BW),
        (SourceType, "Network", SourceType.NETWORK),
        (Role, "Guest Star", Role.GUEST_STAR),
    ],
)
def test_decode_enum_lookup(enum_cls, raw, expected):
    assert decode_enum(enum_cls, raw).value is expected


def test_decode_enum_blank_is_none():
    result = decode_enum(DolbyStatus, "  ")

    assert result.value is DolbyStatus.NONE
    assert result.recognized


def test_decode_enum_without_none_member_falls_back_to_unknown():
    assert decode_enum(Role, None).value is Role.UNKNOWN


def test_decode_enum_aliases():
    aliases = {"Dolby Surround": "DSS"}

    assert decode_enum(DolbyStatus, "dolby surround", aliases=aliases).value is DolbyStatus.DSS


def test_decode_enum_miss_keeps_raw_and_warns_once(caplog):
    caplog.set_level(logging.WARNING, logger="tvguide.utils.enum_decoding")

    first = decode_enum(TvRating, "Rated Arr")
    second = decode_enum(TvRating, "Rated Arr")

    assert first.value is TvRating.UNKNOWN
    assert first.raw == "Rated Arr"
    assert not first.recognized
    assert second.value is TvRating.UNKNOWN
    warnings = [record for record in caplog.records if "Rated Arr" in record.getMessage()]
    assert len(warnings) == 1


def test_decode_enum_literal_unknown_text_still_reports_raw():
    result = decode_enum(TvRating, "unknown")

    assert result.value is TvRating.UNKNOWN
    assert result.raw == "unknown"


def test_typed_accessors():
    record = {"a": "12", "b": 7, "c": None, "d": "true", "e": [1], "f": {"x": 1}}

    assert require_int(record, "a") == 12
    assert require_int(record, "b") == 7
    assert optional_int(record, "c") == 0
    assert optional_bool(record, "d") is True
    assert require_list(record, "e") == [1]
    with pytest.raises(MissingField):
        require_str(record, "c")
    with pytest.raises(MalformedField):
        require_str(record, "f")
    with pytest.raises(MalformedField):
        require_int({"a": "twelve"}, "a")
    with pytest.raises(MalformedField):
        require_int({"a": True}, "a")
    with pytest.raises(MalformedField):
        require_str("not a record", "a")


def test_accessor_path_names_the_field():
    with pytest.raises(MissingField) as excinfo:
        require_str({}, "title120", path="titles[0].title120")

    assert excinfo.value.field == "titles[0].title120"


def test_upstream_datetime_round_trip_is_utc():
    parsed = parse_upstream_datetime("2014-06-28T02:00:00Z")

    assert parsed == datetime(2014, 6, 28, 2, 0, tzinfo=timezone.utc)
    assert format_upstream_datetime(parsed) == "2014-06-28T02:00:00Z"


def test_upstream_datetime_rejects_other_formats():
    with pytest.raises(DateFormatError):
        parse_upstream_datetime("2014-06-28 02:00:00")


def test_upstream_date_placeholders():
    assert parse_upstream_date("2014-06-28") == date(2014, 6, 28)
    assert parse_upstream_date("") is None
    assert parse_upstream_date("0000-00-00") is None
    with pytest.raises(DateFormatError):
        parse_upstream_date("June 28")
