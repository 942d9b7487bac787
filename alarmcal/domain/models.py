"""Domain models for the calendar and its reminder patterns."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_DURATION = timedelta(minutes=30)
MAX_OFFSET_MINUTES = 4320  # 3 days
MAX_OFFSETS = 5


class ColorId(StrEnum):
    PINK = "pink"
    ORANGE = "orange"
    CREAM = "cream"
    BLUE = "blue"
    GREEN = "green"
    YELLOW = "yellow"


DEFAULT_COLOR_ID = ColorId.BLUE

_LEGACY_COLOR_IDS = {
    "roseGray": ColorId.PINK,
    "blush": ColorId.ORANGE,
    "wisteria": ColorId.CREAM,
    "purple": ColorId.CREAM,
    "blueGray": ColorId.BLUE,
    "sage": ColorId.GREEN,
    "almond": ColorId.YELLOW,
}


class PatternKey(StrEnum):
    DEFAULT = "default"
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"


class SoundId(StrEnum):
    DEFAULT = "default"
    BEEP = "beep"
    BRIGHT_UPBEAT = "brightUpbeat"
    CLASSIC = "classic"
    MAGICAL = "magical"
    REFRESHING_WAKEUP = "refreshingWakeup"


# File names must match the sounds bundled with the notification platform.
SOUND_FILES = {
    SoundId.BEEP: "beep.wav",
    SoundId.BRIGHT_UPBEAT: "bright_upbeat.wav",
    SoundId.CLASSIC: "classic.wav",
    SoundId.MAGICAL: "magical.wav",
    SoundId.REFRESHING_WAKEUP: "refreshing_wakeup.wav",
}


def resolve_color_id(value: str | None) -> ColorId:
    """Map any stored color tag (current, legacy or unknown) to a ColorId."""
    if value in ColorId.__members__.values():
        return ColorId(value)
    if value in _LEGACY_COLOR_IDS:
        return _LEGACY_COLOR_IDS[value]
    return DEFAULT_COLOR_ID


def resolve_pattern_key(value: str | None) -> PatternKey:
    if value in PatternKey.__members__.values():
        return PatternKey(value)
    return PatternKey.DEFAULT


def resolve_sound_id(value: str | None) -> SoundId:
    if value in SoundId.__members__.values():
        return SoundId(value)
    return SoundId.DEFAULT


def sound_tag(sound_id: SoundId | None) -> str:
    """Return the value handed to the platform as the notification sound."""
    if not sound_id or sound_id == SoundId.DEFAULT:
        return "default"
    return SOUND_FILES[sound_id]


def _new_id() -> str:
    return str(uuid.uuid4())


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class Event(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    start_at: datetime
    end_at: datetime | None = None
    color_id: ColorId = DEFAULT_COLOR_ID
    memo: str | None = None

    @field_validator("start_at", "end_at")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return None if value is None else _as_utc(value)

    @field_validator("color_id", mode="before")
    @classmethod
    def _known_color(cls, value: object) -> ColorId:
        return resolve_color_id(value if isinstance(value, str) else None)

    @model_validator(mode="after")
    def _end_after_start(self) -> Event:
        # Invalid intervals are corrected, not rejected.
        if self.end_at is None or self.end_at <= self.start_at:
            self.end_at = self.start_at + DEFAULT_DURATION
        return self


class EventInput(BaseModel):
    title: str
    start_at: datetime
    end_at: datetime | None = None
    color_id: str | None = None
    memo: str | None = None


class EventPatch(BaseModel):
    title: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    color_id: str | None = None
    memo: str | None = None

    @field_validator("title", "start_at")
    @classmethod
    def _not_null(cls, value: object) -> object:
        # Omit a required field to keep it; null would erase it.
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


# ---------------------------------------------------------------------------
# Reminder patterns
# ---------------------------------------------------------------------------


class AlarmPattern(BaseModel):
    key: PatternKey
    name: str
    offsets_min: list[int] = Field(default_factory=list)
    registered: bool = False
    sound_id: SoundId = SoundId.DEFAULT

    @field_validator("sound_id", mode="before")
    @classmethod
    def _known_sound(cls, value: object) -> SoundId:
        return resolve_sound_id(value if isinstance(value, str) else None)


class PatternInput(BaseModel):
    name: str = ""
    offsets_min: list[int] = Field(default_factory=list)
    sound_id: SoundId = SoundId.DEFAULT


class ResolvedPattern(BaseModel):
    """The offsets and sound actually used to schedule an event."""

    key: PatternKey
    offsets_min: list[int]
    sound_id: SoundId


class NotificationRequest(BaseModel):
    fire_at: datetime
    title: str
    body: str
    sound_tag: str = "default"


# ---------------------------------------------------------------------------
# Calendar views
# ---------------------------------------------------------------------------


class Holiday(BaseModel):
    day: date
    name: str


class DayView(BaseModel):
    """One local day of a week or month view."""

    holidays: list[Holiday] = Field(default_factory=list)
    events: list[Event] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class CreateEventRequest(EventInput):
    pattern_key: PatternKey | None = None


class UpdateEventRequest(EventPatch):
    pattern_key: PatternKey | None = None


class EventReminders(BaseModel):
    event_id: str
    pattern_key: PatternKey | None = None
    handles: list[str] = Field(default_factory=list)
