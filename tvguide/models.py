"""
Domain models for TV guide data

Entities are immutable pydantic models. Changing one produces a fresh
snapshot through model_copy(); nothing is ever partially initialized.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tvguide.exceptions import ReferentialMismatch
from tvguide.utils.frozen import FrozenDict
from tvguide.utils.timezone import end_time


EPISODE_PREFIX = "EP"
SERIES_PREFIX = "SH"
MOVIE_PREFIX = "MV"


def convert_to_series_id(program_id: str) -> str:
    """Derive the parent series id of an episode id (EP0012345678 -> SH0012340000)."""
    if not program_id or not program_id.startswith(EPISODE_PREFIX):
        raise ValueError(f"Not an episode id: {program_id!r}")
    return f"{SERIES_PREFIX}{program_id[2:-4]}0000"


class DolbyStatus(str, Enum):
    NONE = "NONE"
    DD51 = "DD51"
    DD = "DD"
    DSS = "DSS"
    DOLBY = "DOLBY"
    UNKNOWN = "UNKNOWN"


class LiveStatus(str, Enum):
    NONE = "NONE"
    LIVE = "LIVE"
    DELAY = "DELAY"
    TAPE = "TAPE"
    UNKNOWN = "UNKNOWN"


class PremiereStatus(str, Enum):
    NONE = "NONE"
    PREMIERE = "PREMIERE"
    SEASON_PREMIERE = "SEASON_PREMIERE"
    SERIES_PREMIERE = "SERIES_PREMIERE"
    UNKNOWN = "UNKNOWN"


class FinaleStatus(str, Enum):
    NONE = "NONE"
    SEASON_FINALE = "SEASON_FINALE"
    SERIES_FINALE = "SERIES_FINALE"
    UNKNOWN = "UNKNOWN"


class TvRating(str, Enum):
    NONE = "NONE"
    TVMA = "TVMA"
    TVG = "TVG"
    TVPG = "TVPG"
    TV14 = "TV14"
    TVY = "TVY"
    TVY7 = "TVY7"
    UNKNOWN = "UNKNOWN"


class ContentType(str, Enum):
    NONE = "NONE"
    OFF_NETWORK = "OFF_NETWORK"
    BROADCAST_NETWORK = "BROADCAST_NETWORK"
    FIRST_RUN_SYNDICATION = "FIRST_RUN_SYNDICATION"
    UNKNOWN = "UNKNOWN"


class ColorCode(str, Enum):
    NONE = "NONE"
    COLOR = "COLOR"
    BW = "BW"
    COLOR_AND_BW = "COLOR_AND_BW"
    COLORIZED = "COLORIZED"
    UNKNOWN = "UNKNOWN"


class SourceType(str, Enum):
    NONE = "NONE"
    LOCAL = "LOCAL"
    SYNDICATED = "SYNDICATED"
    NETWORK = "NETWORK"
    BLOCK = "BLOCK"
    UNKNOWN = "UNKNOWN"


class Role(str, Enum):
    UNKNOWN = "UNKNOWN"
    ACTOR = "ACTOR"
    ANCHOR = "ANCHOR"
    CONTESTANT = "CONTESTANT"
    CORRESPONDENT = "CORRESPONDENT"
    DIRECTOR = "DIRECTOR"
    ASSISTANT_DIRECTOR = "ASSISTANT_DIRECTOR"
    EXECUTIVE_PRODUCER = "EXECUTIVE_PRODUCER"
    GUEST_STAR = "GUEST_STAR"
    GUEST = "GUEST"
    HOST = "HOST"
    JUDGE = "JUDGE"
    MUSICAL_GUEST = "MUSICAL_GUEST"
    NARRATOR = "NARRATOR"
    PRODUCER = "PRODUCER"
    WRITER = "WRITER"
    COSTUME_DESIGNER = "COSTUME_DESIGNER"
    SET_DECORATION = "SET_DECORATION"
    ART_DIRECTION = "ART_DIRECTION"
    PRODUCTION_DESIGNER = "PRODUCTION_DESIGNER"
    CASTING = "CASTING"
    FILM_EDITOR = "FILM_EDITOR"
    CINEMATOGRAPHER = "CINEMATOGRAPHER"
    ORIGINAL_MUSIC = "ORIGINAL_MUSIC"
    ASSOCIATE_PRODUCER = "ASSOCIATE_PRODUCER"
    CASTING_DIRECTOR = "CASTING_DIRECTOR"
    COMPOSER = "COMPOSER"
    VOICE = "VOICE"
    PRODUCTION_MANAGER = "PRODUCTION_MANAGER"
    DIRECTOR_OF_PHOTOGRAPHY = "DIRECTOR_OF_PHOTOGRAPHY"
    VISUAL_EFFECTS = "VISUAL_EFFECTS"


class GuideModel(BaseModel):
    """Base class for all decoded entities"""
    model_config = ConfigDict(frozen=True)


class ContentRating(GuideModel):
    body: str
    code: str


class QualityRating(GuideModel):
    """A movie quality rating as published by one ratings body"""
    ratings_body: str | None = None
    rating: str
    min_rating: str | None = None
    max_rating: str | None = None
    increment: str | None = None
    units: str = "rating"

    def __str__(self) -> str:
        if self.max_rating:
            return f"{self.rating}/{self.max_rating} {self.units}"
        return f"{self.rating} {self.units}"


class Credit(GuideModel):
    """One cast or crew member; role_text keeps the provider's wording"""
    role: Role
    role_text: str
    name: str
    billing_order: int = 0
    person_id: str | None = None
    name_id: str | None = None
    character_name: str | None = None


class Team(GuideModel):
    name: str
    is_home: bool = False


class Program(GuideModel):
    """A show, episode, movie or sporting event, independent of any airing"""
    id: str
    title: str
    md5: str
    short_titles: tuple[str, ...] = ()
    episode_title: str = ""
    description: str = ""
    description_language: str | None = None
    short_descriptions: tuple[str, ...] = ()
    alternate_description: str = ""
    alternate_description_short: str = ""
    credits: tuple[Credit, ...] = ()
    advisories: tuple[str, ...] = ()
    content_ratings: tuple[ContentRating, ...] = ()
    quality_ratings: tuple[QualityRating, ...] = ()
    star_rating: float | None = None
    genres: tuple[str, ...] = ()
    series_ref: str | None = None
    metadata: tuple[FrozenDict[str, Any], ...] = ()
    original_air_date: date | None = None
    source_type: SourceType = SourceType.NONE
    color_code: ColorCode = ColorCode.NONE
    syndicated_episode_number: str = ""
    alternate_episode_number: str | None = None
    year: int = 0
    run_time: int = 0
    studio: str | None = None
    country_of_origin: str | None = None
    holiday: str | None = None
    game_start: datetime | None = None
    venue: str | None = None
    teams: tuple[Team, ...] = ()
    made_for_tv: bool = False
    unknown_values: FrozenDict[str, str] = Field(default_factory=FrozenDict)

    @property
    def is_episode(self) -> bool:
        return self.id.startswith(EPISODE_PREFIX)

    @property
    def is_movie(self) -> bool:
        return self.id.startswith(MOVIE_PREFIX) or "Movie" in self.genres

    def best_description(self, max_length: int | None = None) -> str:
        """Longest available description that fits in max_length characters."""
        candidates = (self.description, *self.short_descriptions)
        for text in candidates:
            if text and (max_length is None or len(text) <= max_length):
                return text
        return ""


class BroadcasterLocation(GuideModel):
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


class Logo(GuideModel):
    url: str
    width: int = 0
    height: int = 0
    md5: str | None = None
    last_modified: datetime | None = None


class TuningInfo(GuideModel):
    """Over-the-air tuning data from a lineup channel map; 0 means absent"""
    uhf_vhf: int = 0
    atsc_major: int = 0
    atsc_minor: int = 0


class Station(GuideModel):
    id: str
    callsign: str
    name: str
    affiliate: str = ""
    broadcaster: BroadcasterLocation = Field(default_factory=BroadcasterLocation)
    tuning: TuningInfo | None = None
    logo: Logo | None = None


class BroadcastFlags(GuideModel):
    """Audio/video and scheduling properties of one airing"""
    closed_captioned: bool = False
    stereo: bool = False
    descriptive_video: bool = False
    subtitled: bool = False
    sap: bool = False
    hdtv: bool = False
    letterboxed: bool = False
    is_3d: bool = False
    enhanced: bool = False
    dolby_status: DolbyStatus = DolbyStatus.NONE
    live_status: LiveStatus = LiveStatus.NONE
    premiere_status: PremiereStatus = PremiereStatus.NONE
    finale_status: FinaleStatus = FinaleStatus.NONE


class Airing(GuideModel):
    """One scheduled broadcast of a Program on a Station"""
    id: str
    start: datetime
    duration: int
    station: Station
    program: Program
    flags: BroadcastFlags = Field(default_factory=BroadcastFlags)
    is_new: bool = False
    tv_rating: TvRating = TvRating.NONE
    content_type: ContentType = ContentType.NONE
    part_number: int = 0
    total_parts: int = 0
    sap_language: str | None = None
    subtitle_language: str | None = None
    broadcast_language: str | None = None
    time_approximate: bool = False
    educational: bool = False
    subject_to_blackout: bool = False
    unknown_values: FrozenDict[str, str] = Field(default_factory=FrozenDict)

    @model_validator(mode="after")
    def check_program_identity(self) -> "Airing":
        """An airing's id is, by definition, the id of its program"""
        if self.id != self.program.id:
            raise ReferentialMismatch(expected=self.program.id, actual=self.id)
        return self

    @property
    def end(self) -> datetime:
        return end_time(self.start, self.duration)

    def with_program(self, program: Program) -> "Airing":
        """Return a copy associated with program; the id follows the program."""
        return self.model_copy(update={"program": program, "id": program.id})

    def with_station(self, station: Station) -> "Airing":
        return self.model_copy(update={"station": station})


class Message(GuideModel):
    id: str
    date: datetime
    content: str = ""


class SystemStatus(GuideModel):
    status_date: datetime | None = None
    status: str = ""
    details: str = ""


class UserStatus(GuideModel):
    user_id: str
    expires: datetime
    last_data_update: datetime
    next_suggested_connect_time: datetime | None = None
    max_lineups: int = 0
    user_messages: tuple[Message, ...] = ()
    system_messages: tuple[Message, ...] = ()
    lineup_modified: FrozenDict[str, datetime] = Field(default_factory=FrozenDict)
    system_status: SystemStatus | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires < (now or datetime.now(timezone.utc))

    def is_new_data_available(self, last_download: datetime | None) -> bool:
        return last_download is not None and last_download < self.last_data_update


class LineupSummary(GuideModel):
    """Lineup as listed by the account or a headend search, before details"""
    id: str
    name: str = ""
    location: str = ""
    uri: str = ""
    type: str = ""
