"""Data models for the Zettelkasten cache."""

import datetime
import re
from dataclasses import dataclass
from datetime import timezone
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from groundwave_zk.exceptions import InvalidNoteIDError

# RFC 4122 textual form: 8-4-4-4-12 hex digits
UUID_PATTERN = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
_UUID_RE = re.compile(rf"^{UUID_PATTERN}$")

DATE_FORMAT = "%Y-%m-%d"

# Daily notes take part in the link graph under "daily:YYYY-MM-DD"
DAILY_SOURCE_PREFIX = "daily:"

DEFAULT_TITLE = "Untitled Note"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def is_valid_note_id(value: object) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def validate_note_id(value: object) -> str:
    """Validate a note ID and return its canonical lower-case form.

    Note IDs double as path components in rendered links, so anything
    outside the UUID alphabet is rejected before it reaches the network.

    Raises:
        InvalidNoteIDError: If the value is not a textual UUID.
    """
    if not is_valid_note_id(value):
        raise InvalidNoteIDError(value)
    return value.lower()  # type: ignore[union-attr]


def parse_date_string(value: object) -> Optional[datetime.date]:
    """Parse ``YYYY-MM-DD``; returns None for anything else."""
    if not isinstance(value, str) or len(value) != 10:
        return None
    try:
        return datetime.datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


_DAILY_FILENAME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\.org$")


def parse_daily_filename(filename: str) -> Optional[datetime.date]:
    """Return the day of a ``YYYY-MM-DD.org`` daily file, else None."""
    match = _DAILY_FILENAME_RE.match(filename)
    if not match:
        return None
    return parse_date_string(match.group(1))


@dataclass(frozen=True)
class NoteSourceID:
    """A link source that is a regular note, identified by its UUID."""

    note_id: str

    def __str__(self) -> str:
        return self.note_id


@dataclass(frozen=True)
class DailySourceID:
    """A link source that is a daily journal file."""

    date: datetime.date

    @property
    def date_string(self) -> str:
        return self.date.strftime(DATE_FORMAT)

    def __str__(self) -> str:
        return f"{DAILY_SOURCE_PREFIX}{self.date_string}"


LinkSourceID = Union[NoteSourceID, DailySourceID]


def parse_link_source_id(value: str) -> LinkSourceID:
    """Convert a canonical link source string back into its tagged form.

    Raises:
        InvalidNoteIDError: If the value is neither a UUID nor a valid
            ``daily:YYYY-MM-DD`` identifier.
    """
    if value.startswith(DAILY_SOURCE_PREFIX):
        parsed = parse_date_string(value[len(DAILY_SOURCE_PREFIX):])
        if parsed is None:
            raise InvalidNoteIDError(value)
        return DailySourceID(parsed)
    return NoteSourceID(validate_note_id(value))


class DirectoryEntry(BaseModel):
    """One member of a WebDAV collection listing."""

    path: str = Field(..., description="Decoded href path of the resource")
    name: str = Field(..., description="Last path segment")
    is_dir: bool = Field(default=False)
    size: Optional[int] = Field(default=None, description="getcontentlength")
    modified: Optional[datetime.datetime] = Field(
        default=None, description="getlastmodified"
    )

    model_config = {"frozen": True}


class Note(BaseModel):
    """A rendered Zettelkasten note."""

    id: str = Field(default="", description="UUID from the :ID: property")
    title: str = Field(default=DEFAULT_TITLE)
    filename: str = Field(...)
    is_public: bool = Field(default=False, description="Has #+access: public")
    is_home: bool = Field(default=False, description="Has #+access: home")
    html_body: str = Field(default="")

    model_config = {"frozen": True}


class NoteSummary(BaseModel):
    """Lightweight note listing entry."""

    id: str
    title: str
    is_public: bool = False

    model_config = {"frozen": True}


class ChatNote(BaseModel):
    """A note with its raw Org body, for use as chat context."""

    id: str
    title: str
    raw_body: str

    model_config = {"frozen": True}


class JournalEntry(BaseModel):
    """A daily journal note as cached for the journal timeline."""

    date: datetime.date
    date_string: str
    filename: str
    title: str
    html_body: str = ""
    preview_html: str = ""
    has_more: bool = False
    updated_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    @field_validator("date_string")
    @classmethod
    def validate_date_string(cls, v: str) -> str:
        if parse_date_string(v) is None:
            raise ValueError("date_string must be YYYY-MM-DD")
        return v


class TimelineNote(BaseModel):
    """A timestamped Zettelkasten note placed on the timeline."""

    id: str
    title: str
    filename: str
    timestamp: datetime.datetime
    date_string: str

    model_config = {"frozen": True}
