"""Data models for feed expansion and override filtering."""

import base64
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from typing import Annotated, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .interval import UTC, EntryInterval, Instant, instant_key, is_date_instant

InstantField = Union[datetime, date]


class AuthType(str, Enum):
    """Supported authentication types for feed sources."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


class FeedAuth(BaseModel):
    """Authentication configuration for a feed source."""

    type: AuthType = AuthType.NONE
    username: Optional[str] = None
    password: Optional[str] = None
    bearer_token: Optional[str] = None

    def get_headers(self) -> dict[str, str]:
        """Get HTTP headers for authentication."""
        headers = {}

        if self.type == AuthType.BASIC and self.username and self.password:
            credentials = f"{self.username}:{self.password}"
            encoded = base64.b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded}"

        elif self.type == AuthType.BEARER and self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"

        return headers


class FeedSource(BaseModel):
    """Configuration for a remote iCalendar feed."""

    name: str = Field(..., description="Human-readable name for this feed")
    url: str = Field(..., description="Feed URL")
    auth: FeedAuth = Field(default_factory=FeedAuth, description="Authentication configuration")

    # Cache TTL override in seconds; None uses the global cache TTL
    refresh_interval: Optional[int] = Field(default=None, ge=1)
    timeout: int = Field(default=30, ge=1, description="HTTP timeout in seconds")
    custom_headers: dict[str, str] = Field(default_factory=dict, description="Custom HTTP headers")
    validate_ssl: bool = Field(default=True, description="Validate SSL certificates")

    model_config = ConfigDict(frozen=True)

    @property
    def cache_key(self) -> str:
        return f"{self.name}|{self.url}"


class CalendarEntry(BaseModel):
    """A single parsed calendar component. Immutable once built."""

    uid: str = Field(..., min_length=1)
    title: str = ""
    description: Optional[str] = None
    location: Optional[str] = None
    start: InstantField
    end: Optional[InstantField] = None
    all_day: bool = False

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_instants(self) -> "CalendarEntry":
        if self.all_day != is_date_instant(self.start):
            raise ValueError("all_day must be set exactly when start is a date")
        if self.end is None:
            return self
        if is_date_instant(self.end) != is_date_instant(self.start):
            raise ValueError("start and end must have the same granularity")
        if not is_date_instant(self.start) and (
            (self.start.tzinfo is None) != (self.end.tzinfo is None)
        ):
            raise ValueError("start and end must both be floating or both be zoned")
        if self.end < self.start:
            raise ValueError("end is before start")
        return self

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end is None:
            return None
        return self.end - self.start

    def interval(self, local_tz: tzinfo = UTC) -> EntryInterval:
        return EntryInterval(self.start, self.end, self.all_day, local_tz)

    def shifted_to(self, start: Instant) -> "CalendarEntry":
        """Return a copy starting at ``start`` with the same duration."""
        duration = self.duration
        end = start + duration if duration is not None else None
        return self.model_copy(update={"start": start, "end": end})


class RecurrenceRule(BaseModel):
    """RRULE text plus explicit RDATE additions. Opaque beyond evaluation."""

    text: str = ""
    rdates: tuple[InstantField, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.rdates


class RecurrenceException(BaseModel):
    """Replacement content for one recurrence instant of a series."""

    entry: CalendarEntry
    recurrence_id: InstantField

    model_config = ConfigDict(frozen=True)

    @property
    def series_id(self) -> str:
        return self.entry.uid


class Series(BaseModel):
    """A recurring entry: base instance, rule, exclusions and exceptions."""

    base: CalendarEntry
    rule: RecurrenceRule
    exclusions: tuple[InstantField, ...] = ()
    exceptions: tuple[RecurrenceException, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def series_id(self) -> str:
        return self.base.uid

    def exclusion_keys(self) -> frozenset[tuple[str, str]]:
        return frozenset(instant_key(value) for value in self.exclusions)


class OccurrenceIdentity(NamedTuple):
    """Stable identity of an occurrence: (series id, canonical instance id)."""

    series_id: str
    instance_id: str = ""


class _OccurrenceBase(BaseModel):
    entry: CalendarEntry
    series_id: str
    instance_id: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def identity(self) -> OccurrenceIdentity:
        return OccurrenceIdentity(self.series_id, self.instance_id)

    @property
    def title(self) -> str:
        return self.entry.title

    @property
    def start(self) -> Instant:
        return self.entry.start

    @property
    def end(self) -> Optional[Instant]:
        return self.entry.end

    @property
    def all_day(self) -> bool:
        return self.entry.all_day


class SingletonOccurrence(_OccurrenceBase):
    """A non-recurring entry."""

    kind: Literal["singleton"] = "singleton"


class SeriesOccurrence(_OccurrenceBase):
    """An instance synthesized from a series' base entry."""

    kind: Literal["series"] = "series"
    recurrence_id: InstantField


class ExceptionOccurrence(_OccurrenceBase):
    """An instance whose content comes from a recurrence exception.

    ``added`` is True when the exception replaced no candidate of the rule.
    """

    kind: Literal["exception"] = "exception"
    recurrence_id: InstantField
    added: bool = False


Occurrence = Annotated[
    Union[SingletonOccurrence, SeriesOccurrence, ExceptionOccurrence],
    Field(discriminator="kind"),
]


class FeedComponents(BaseModel):
    """Parse result: a feed split into series, singletons and orphans."""

    series: list[Series] = Field(default_factory=list)
    singletons: list[CalendarEntry] = Field(default_factory=list)
    orphan_exceptions: list[RecurrenceException] = Field(
        default_factory=list, description="RECURRENCE-ID components without a master"
    )
    skipped: int = Field(default=0, description="Components dropped as invalid")
    calendar_name: Optional[str] = None
