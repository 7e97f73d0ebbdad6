"""
Record decoding

Converts raw upstream records into typed entities. Decoding is pure: no
function here touches the network or the cache. Cross-entity references
(such as an episode's parent series) are emitted as unresolved ids and
resolved later by the fetch orchestrator.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

from tvguide.exceptions import (
    DecodeError,
    MalformedField,
    MissingField,
    ReferentialMismatch,
    UpstreamRecordError,
)
from tvguide.models import (
    Airing,
    BroadcasterLocation,
    ColorCode,
    ContentRating,
    ContentType,
    Credit,
    EPISODE_PREFIX,
    LineupSummary,
    Logo,
    Message,
    Program,
    QualityRating,
    Role,
    SourceType,
    Station,
    SystemStatus,
    Team,
    TuningInfo,
    TvRating,
    UserStatus,
    convert_to_series_id,
)
from tvguide.services.broadcast_flags import decode_broadcast_flags
from tvguide.utils.enum_decoding import decode_enum
from tvguide.utils.raw_record import (
    RawRecord,
    as_object,
    has_field,
    optional_bool,
    optional_int,
    optional_list,
    optional_object,
    optional_str,
    optional_str_list,
    require_int,
    require_object,
    require_str,
)
from tvguide.utils.star_rating import StarRatingFormatError, parse_star_rating
from tvguide.utils.timezone import DateFormatError, parse_upstream_date, parse_upstream_datetime

logger = logging.getLogger(__name__)

T = TypeVar("T")

MOVIE_REGEX = re.compile(r"Feature Film|.*Movie")

SHORT_TITLE_KEYS = ("title70", "title40", "title20", "title10")
SHORT_DESCRIPTION_KEYS = ("description255", "description100", "description60", "description40")

# Ordered: the first matching rule wins
ROLE_RULES: tuple[tuple[Callable[[str], bool], str], ...] = (
    (lambda role: role.startswith("Writer") or "Screenwriter" in role, "Writer"),
    (lambda role: "Assistant Director" in role, "Assistant Director"),
    (lambda role: "Producer" in role, "Producer"),
    (lambda role: "Art Director" in role, "Art Direction"),
    (lambda role: "Production Design" in role, "Production Designer"),
    (lambda role: "Visual Effects" in role, "Visual Effects"),
)

TUNING_KEYS = ("uhfVhf", "atscMajor", "atscMinor")


@dataclass(slots=True)
class DecodeOutcome(Generic[T]):
    """Result of a non-raising decode: exactly one of entity/error is set"""
    entity_id: str
    entity: T | None = None
    error: DecodeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def decode_safely(
    entity_id: str,
    decode: Callable[..., T],
    raw: RawRecord,
    *args: Any,
) -> DecodeOutcome[T]:
    """Run decode(raw, *args) and capture a DecodeError instead of raising it."""
    try:
        return DecodeOutcome(entity_id=entity_id, entity=decode(raw, *args))
    except DecodeError as exc:
        return DecodeOutcome(entity_id=entity_id, error=exc.with_entity(entity_id))


def check_upstream_error(raw: RawRecord, id_key: str) -> None:
    """Raise UpstreamRecordError when the upstream sent an error object for an id."""
    if not isinstance(raw, Mapping):
        return
    code = raw.get("code")
    if code in (None, 0, "0"):
        return
    entity_id = raw.get(id_key)
    message = raw.get("message") or raw.get("response") or f"Upstream error code {code}"
    try:
        numeric_code = int(code)
    except (TypeError, ValueError):
        numeric_code = None
    raise UpstreamRecordError(str(entity_id) if entity_id is not None else "?", str(message), numeric_code)


def _parse_datetime(value: str, field: str) -> datetime:
    try:
        return parse_upstream_datetime(value)
    except DateFormatError as exc:
        raise MalformedField(field, str(exc)) from exc


def select_description_variant(variants: Iterable[Any], field: str) -> Mapping[str, Any] | None:
    """
    Pick one entry out of a list of per-language description variants.

    The English variant wins; otherwise the first one is used.
    """
    chosen = None
    for index, variant in enumerate(variants):
        entry = as_object(variant, f"{field}[{index}]")
        if chosen is None:
            chosen = entry
        if optional_str(entry, "descriptionLanguage") == "en":
            chosen = entry
            break
    return chosen


def select_description(variants: Iterable[Any], field: str) -> str:
    chosen = select_description_variant(variants, field)
    if chosen is None:
        return ""
    return optional_str(chosen, "description", "", path=f"{field}.description") or ""


def rank_descriptions(descriptions: Iterable[str]) -> tuple[str, ...]:
    """Order short descriptions longest first so callers can truncate gracefully."""
    return tuple(sorted(descriptions, key=len, reverse=True))


def normalize_role_text(role_text: str) -> str:
    for matches, canonical in ROLE_RULES:
        if matches(role_text):
            return canonical
    return role_text


def decode_credit(raw: RawRecord, unknown: dict[str, str] | None = None) -> Credit:
    role_text = require_str(raw, "role")
    name = require_str(raw, "name")
    result = decode_enum(Role, normalize_role_text(role_text))
    if result.raw is not None and unknown is not None:
        unknown.setdefault(f"credit_role:{role_text}", role_text)
    return Credit(
        role=result.value,
        role_text=role_text,
        name=name,
        billing_order=optional_int(raw, "billingOrder"),
        person_id=optional_str(raw, "personId"),
        name_id=optional_str(raw, "nameId"),
        character_name=optional_str(raw, "characterName"),
    )


def _decode_titles(raw: RawRecord) -> tuple[str, tuple[str, ...]]:
    titles_raw = raw.get("titles") if isinstance(raw, Mapping) else None
    if titles_raw is None:
        raise MissingField("titles")
    # Older documents carry a single object; current ones a list of objects
    if isinstance(titles_raw, list):
        if not titles_raw:
            raise MissingField("titles[0].title120")
        titles = as_object(titles_raw[0], "titles[0]")
        path = "titles[0]"
    else:
        titles = as_object(titles_raw, "titles")
        path = "titles"
    title = require_str(titles, "title120", path=f"{path}.title120")
    short_titles = tuple(
        text for key in SHORT_TITLE_KEYS
        if (text := optional_str(titles, key, path=f"{path}.{key}"))
    )
    return title, short_titles


def _decode_genres(raw: RawRecord) -> tuple[str, ...]:
    genres: dict[str, None] = {}
    show_type = optional_str(raw, "showType")
    if show_type and show_type != "Series":
        genres["Movie" if MOVIE_REGEX.fullmatch(show_type) else show_type] = None
    for genre in optional_str_list(raw, "genres"):
        genres[genre] = None
    return tuple(genres)


def _decode_quality_ratings(movie: Mapping[str, Any]) -> tuple[QualityRating, ...]:
    ratings = []
    for index, item in enumerate(optional_list(movie, "qualityRating", path="movie.qualityRating")):
        path = f"movie.qualityRating[{index}]"
        entry = as_object(item, path)
        body = optional_str(entry, "ratingsBody", path=f"{path}.ratingsBody")
        ratings.append(QualityRating(
            ratings_body=body,
            rating=require_str(entry, "rating", path=f"{path}.rating"),
            min_rating=optional_str(entry, "minRating", path=f"{path}.minRating"),
            max_rating=optional_str(entry, "maxRating", path=f"{path}.maxRating"),
            increment=optional_str(entry, "increment", path=f"{path}.increment"),
            units="stars" if body == "TMS" else "rating",
        ))
    return tuple(ratings)


def _decode_content_rating(item: Any, path: str) -> ContentRating:
    entry = as_object(item, path)
    return ContentRating(
        body=require_str(entry, "body", path=f"{path}.body"),
        code=require_str(entry, "code", path=f"{path}.code"),
    )


def _decode_team(item: Any, path: str) -> Team:
    entry = as_object(item, path)
    return Team(
        name=require_str(entry, "name", path=f"{path}.name"),
        is_home=optional_bool(entry, "isHome", path=f"{path}.isHome"),
    )


def _decode_metadata(raw: RawRecord) -> tuple[dict[str, Any], ...]:
    return tuple(
        dict(as_object(item, f"metadata[{index}]"))
        for index, item in enumerate(optional_list(raw, "metadata"))
    )


def decode_program(raw: RawRecord) -> Program:
    """
    Decode one program record.

    Required: programID, a primary title (title120) and the md5 checksum.
    Episode ids also yield series_ref, the id of the parent series, which is
    left unresolved here.

    Raises:
        DecodeError: If the record cannot be decoded
    """
    as_object(raw, "program")
    check_upstream_error(raw, "programID")
    program_id = require_str(raw, "programID")
    try:
        return _decode_program(raw, program_id)
    except DecodeError as exc:
        raise exc.with_entity(program_id)


def _decode_program(raw: RawRecord, program_id: str) -> Program:
    unknown: dict[str, str] = {}
    title, short_titles = _decode_titles(raw)
    md5 = require_str(raw, "md5")

    description = ""
    description_language = None
    short_descriptions: tuple[str, ...] = ()
    alternate_description = ""
    alternate_description_short = ""
    descriptions = optional_object(raw, "descriptions")
    if descriptions is not None:
        full = select_description_variant(
            optional_list(descriptions, "description1000", path="descriptions.description1000"),
            "descriptions.description1000",
        )
        if full is not None:
            description = optional_str(full, "description", "", path="descriptions.description1000.description") or ""
            description_language = optional_str(full, "descriptionLanguage")
        short_descriptions = rank_descriptions(
            text for key in SHORT_DESCRIPTION_KEYS
            if (text := select_description(
                optional_list(descriptions, key, path=f"descriptions.{key}"), f"descriptions.{key}"
            ))
        )
        if not description and short_descriptions:
            description = short_descriptions[0]
        alternate_description = select_description(
            optional_list(descriptions, "alternateDescription255"), "descriptions.alternateDescription255"
        )
        alternate_description_short = select_description(
            optional_list(descriptions, "alternateDescription100"), "descriptions.alternateDescription100"
        )

    credits = tuple(
        decode_credit(as_object(item, f"{group}[{index}]"), unknown)
        for group in ("cast", "crew")
        for index, item in enumerate(optional_list(raw, group))
    )

    content_ratings = tuple(
        _decode_content_rating(item, f"contentRating[{index}]")
        for index, item in enumerate(optional_list(raw, "contentRating"))
    )

    genres = _decode_genres(raw)

    movie = optional_object(raw, "movie")
    year = run_time = 0
    studio = country = None
    quality_ratings: tuple[QualityRating, ...] = ()
    star_rating = None
    if movie is not None:
        year = optional_int(movie, "year", path="movie.year")
        run_time = optional_int(movie, "runTime", path="movie.runTime") or optional_int(
            movie, "duration", path="movie.duration"
        )
        studio = optional_str(movie, "origStudio", path="movie.origStudio")
        country = optional_str(movie, "origCountry", path="movie.origCountry")
        quality_ratings = _decode_quality_ratings(movie)
        stars = optional_str(movie, "starRating", path="movie.starRating")
        if stars:
            try:
                star_rating = parse_star_rating(stars)
            except StarRatingFormatError as exc:
                raise MalformedField("movie.starRating", str(exc)) from exc

    original_air_date = None
    original_air_text = optional_str(raw, "originalAirDate")
    if original_air_text:
        try:
            original_air_date = parse_upstream_date(original_air_text)
        except DateFormatError as exc:
            raise MalformedField("originalAirDate", str(exc)) from exc

    game_start = None
    game_text = optional_str(raw, "gameDatetime")
    if game_text:
        game_start = _parse_datetime(game_text, "gameDatetime")

    source = decode_enum(SourceType, optional_str(raw, "sourceType"))
    if source.raw is not None:
        unknown["source_type"] = source.raw
    color = decode_enum(ColorCode, optional_str(raw, "colorCode"))
    if color.raw is not None:
        unknown["color_code"] = color.raw

    venue = None
    teams: tuple[Team, ...] = ()
    event = optional_object(raw, "eventDetails")
    if event is not None:
        venue = optional_str(event, "venue100", path="eventDetails.venue100") or optional_str(
            event, "venue", path="eventDetails.venue"
        )
        teams = tuple(
            _decode_team(item, f"eventDetails.teams[{index}]")
            for index, item in enumerate(optional_list(event, "teams", path="eventDetails.teams"))
        )

    return Program(
        id=program_id,
        title=title,
        md5=md5,
        short_titles=short_titles,
        episode_title=optional_str(raw, "episodeTitle150", "") or "",
        description=description,
        description_language=description_language,
        short_descriptions=short_descriptions,
        alternate_description=alternate_description,
        alternate_description_short=alternate_description_short,
        credits=credits,
        advisories=optional_str_list(raw, "contentAdvisory"),
        content_ratings=content_ratings,
        quality_ratings=quality_ratings,
        star_rating=star_rating,
        genres=genres,
        series_ref=convert_to_series_id(program_id) if program_id.startswith(EPISODE_PREFIX) else None,
        metadata=_decode_metadata(raw),
        original_air_date=original_air_date,
        source_type=source.value,
        color_code=color.value,
        syndicated_episode_number=optional_str(raw, "syndicatedEpisodeNumber", "") or "",
        alternate_episode_number=optional_str(raw, "alternateSyndicatedEpisodeNumber"),
        year=year,
        run_time=run_time,
        studio=studio,
        country_of_origin=country,
        holiday=optional_str(raw, "holiday"),
        game_start=game_start,
        venue=venue,
        teams=teams,
        made_for_tv=optional_bool(raw, "madeForTv"),
        unknown_values=unknown,
    )


def decode_tuning(entry: RawRecord) -> TuningInfo | None:
    """Tuning sub-fields of a channel-map entry, or None when it has none."""
    if not any(has_field(entry, key) for key in TUNING_KEYS):
        return None
    return TuningInfo(
        uhf_vhf=optional_int(entry, "uhfVhf"),
        atsc_major=optional_int(entry, "atscMajor"),
        atsc_minor=optional_int(entry, "atscMinor"),
    )


def _decode_logo(raw: Mapping[str, Any], path: str) -> Logo:
    width = optional_int(raw, "width", path=f"{path}.width")
    height = optional_int(raw, "height", path=f"{path}.height")
    dimension = optional_str(raw, "dimension", path=f"{path}.dimension")
    if dimension:
        try:
            width, height = (int(part) for part in dimension.lower().split("x"))
        except ValueError as exc:
            raise MalformedField(f"{path}.dimension", f"expected WIDTHxHEIGHT, got {dimension!r}") from exc
    modified = optional_str(raw, "modified", path=f"{path}.modified")
    return Logo(
        url=require_str(raw, "URL", path=f"{path}.URL"),
        width=width,
        height=height,
        md5=optional_str(raw, "md5", path=f"{path}.md5"),
        last_modified=_parse_datetime(modified, f"{path}.modified") if modified else None,
    )


def decode_station(raw: RawRecord, tuning_entry: RawRecord = None) -> Station:
    """
    Decode one station record, optionally merged with its channel-map entry.

    Required: stationID, callsign and name.
    """
    as_object(raw, "station")
    station_id = require_str(raw, "stationID")
    try:
        broadcaster = optional_object(raw, "broadcaster")
        location = BroadcasterLocation()
        logo_raw = optional_object(raw, "logo")
        logo_path = "logo"
        if broadcaster is not None:
            location = BroadcasterLocation(
                city=optional_str(broadcaster, "city", "", path="broadcaster.city") or "",
                state=optional_str(broadcaster, "state", "", path="broadcaster.state") or "",
                postal_code=(
                    optional_str(broadcaster, "postalcode", path="broadcaster.postalcode")
                    or optional_str(broadcaster, "zipcode", "", path="broadcaster.zipcode")
                    or ""
                ),
                country=optional_str(broadcaster, "country", "", path="broadcaster.country") or "",
            )
            if logo_raw is None:
                logo_raw = optional_object(broadcaster, "logo", path="broadcaster.logo")
                logo_path = "broadcaster.logo"

        return Station(
            id=station_id,
            callsign=require_str(raw, "callsign"),
            name=require_str(raw, "name"),
            affiliate=optional_str(raw, "affiliate", "") or "",
            broadcaster=location,
            tuning=decode_tuning(tuning_entry) if tuning_entry is not None else None,
            logo=_decode_logo(logo_raw, logo_path) if logo_raw is not None else None,
        )
    except DecodeError as exc:
        raise exc.with_entity(station_id)


def decode_airing(raw: RawRecord, program: Program, station: Station) -> Airing:
    """
    Decode one airing of program on station.

    Raises:
        ReferentialMismatch: If the record names a different program
        DecodeError: If the record cannot be decoded otherwise
    """
    as_object(raw, "airing")
    program_id = require_str(raw, "programID")
    if program_id != program.id:
        raise ReferentialMismatch(expected=program.id, actual=program_id)
    try:
        unknown: dict[str, str] = {}
        flags = decode_broadcast_flags(raw, unknown)

        rating = decode_enum(TvRating, optional_str(raw, "tvRating"))
        if rating.raw is not None:
            unknown["tv_rating"] = rating.raw
        content = decode_enum(ContentType, optional_str(raw, "netSyndicationType"))
        if content.raw is not None:
            unknown["content_type"] = content.raw

        multipart = optional_object(raw, "multipart")
        if multipart is not None:
            part_number = optional_int(multipart, "partNumber", path="multipart.partNumber")
            total_parts = optional_int(multipart, "totalParts", path="multipart.totalParts")
        else:
            part_number = optional_int(raw, "partNumber")
            total_parts = optional_int(raw, "numberOfParts")

        return Airing(
            id=program_id,
            start=_parse_datetime(require_str(raw, "airDateTime"), "airDateTime"),
            duration=require_int(raw, "duration"),
            station=station,
            program=program,
            flags=flags,
            is_new=optional_bool(raw, "new"),
            tv_rating=rating.value,
            content_type=content.value,
            part_number=part_number,
            total_parts=total_parts,
            sap_language=optional_str(raw, "sapLanguage") if flags.sap else None,
            subtitle_language=optional_str(raw, "subtitledLanguage") if flags.subtitled else None,
            broadcast_language=optional_str(raw, "programLanguage"),
            time_approximate=optional_bool(raw, "timeApproximate"),
            educational=optional_bool(raw, "educational"),
            subject_to_blackout=optional_bool(raw, "subjectToBlackout"),
            unknown_values=unknown,
        )
    except DecodeError as exc:
        raise exc.with_entity(program_id)


def decode_message(raw: RawRecord) -> Message:
    as_object(raw, "message")
    message_id = require_str(raw, "msgID")
    try:
        return Message(
            id=message_id,
            date=_parse_datetime(require_str(raw, "date"), "date"),
            content=optional_str(raw, "message", "") or "",
        )
    except DecodeError as exc:
        raise exc.with_entity(message_id)


def decode_system_status(entries: Iterable[Any]) -> SystemStatus:
    """Keep only the most recent of the published status entries"""
    latest = SystemStatus()
    for index, item in enumerate(entries):
        entry = as_object(item, f"systemStatus[{index}]")
        status_date = _parse_datetime(require_str(entry, "date", path=f"systemStatus[{index}].date"), "date")
        if latest.status_date is None or latest.status_date < status_date:
            latest = SystemStatus(
                status_date=status_date,
                status=optional_str(entry, "status", "") or "",
                details=optional_str(entry, "details") or optional_str(entry, "message", "") or "",
            )
    return latest


def decode_user_status(raw: RawRecord, user_id: str | None = None) -> UserStatus:
    as_object(raw, "status")
    account = require_object(raw, "account")
    lineup_modified = {}
    for index, item in enumerate(optional_list(raw, "lineups")):
        entry = as_object(item, f"lineups[{index}]")
        lineup_id = optional_str(entry, "lineup") or require_str(entry, "ID", path=f"lineups[{index}].ID")
        lineup_modified[lineup_id] = _parse_datetime(
            require_str(entry, "modified", path=f"lineups[{index}].modified"), f"lineups[{index}].modified"
        )
    next_connect = optional_str(account, "nextSuggestedConnectTime", path="account.nextSuggestedConnectTime")
    return UserStatus(
        user_id=user_id or require_str(raw, "userId"),
        expires=_parse_datetime(require_str(account, "expires", path="account.expires"), "account.expires"),
        last_data_update=_parse_datetime(require_str(raw, "lastDataUpdate"), "lastDataUpdate"),
        next_suggested_connect_time=(
            _parse_datetime(next_connect, "account.nextSuggestedConnectTime") if next_connect else None
        ),
        max_lineups=optional_int(account, "maxLineups", path="account.maxLineups"),
        user_messages=tuple(
            decode_message(item) for item in optional_list(account, "messages", path="account.messages")
        ),
        system_messages=tuple(decode_message(item) for item in optional_list(raw, "notifications")),
        lineup_modified=lineup_modified,
        system_status=decode_system_status(optional_list(raw, "systemStatus")),
    )


def lineup_id_from_uri(uri: str) -> str:
    return uri.rstrip("/").rsplit("/", 1)[-1]


def decode_lineup_summary(
    raw: RawRecord,
    *,
    location: str | None = None,
    lineup_type: str | None = None,
) -> LineupSummary:
    """Decode a lineup listing entry; the id comes from 'lineup' or the uri tail."""
    as_object(raw, "lineup")
    uri = optional_str(raw, "uri", "") or ""
    lineup_id = optional_str(raw, "lineup") or optional_str(raw, "ID")
    if not lineup_id:
        if not uri:
            raise MissingField("lineup")
        lineup_id = lineup_id_from_uri(uri)
    return LineupSummary(
        id=lineup_id,
        name=optional_str(raw, "name", "") or "",
        location=location or optional_str(raw, "location", "") or "",
        uri=uri,
        type=lineup_type or optional_str(raw, "transport") or optional_str(raw, "type", "") or "",
    )
