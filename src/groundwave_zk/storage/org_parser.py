"""Parsing helpers for Org-mode note bodies.

Every function here is pure and lenient: ill-formed Org never raises,
callers get a default (None, False, the default title, an empty list)
instead. HTML rendering lives in :mod:`groundwave_zk.storage.org_renderer`.
"""
import datetime
import re
from typing import List, Optional, Tuple, Union

from groundwave_zk.models.schema import (
    DATE_FORMAT,
    DEFAULT_TITLE,
    UUID_PATTERN,
    is_valid_note_id,
)

Body = Union[str, bytes]

_ID_LINE_RE = re.compile(r"^\s*:ID:\s+(\S+)\s*$", re.IGNORECASE)
_TITLE_RE = re.compile(r"^\s*#\+TITLE:\s+(.+)$", re.IGNORECASE)
_HEADLINE_RE = re.compile(r"^\*+\s+(.+)$", re.MULTILINE)
_PUBLIC_RE = re.compile(r"^\s*#\+access:\s*public\s*$", re.IGNORECASE | re.MULTILINE)
_HOME_RE = re.compile(r"^\s*#\+access:\s*home\s*$", re.IGNORECASE | re.MULTILINE)
_DATE_RE = re.compile(r"^\s*#\+DATE:\s*<?(\d{4}-\d{2}-\d{2})", re.IGNORECASE | re.MULTILINE)
_ID_LINK_RE = re.compile(rf"\[\[id:({UUID_PATTERN})\](?:\[[^\]]*\])?\]")
_PREVIEW_HEADLINE_RE = re.compile(r"^\*+\s")

PREVIEW_MAX_PARAGRAPHS = 2
PREVIEW_MAX_CHARS = 480


def as_text(body: Body) -> str:
    """Decode a body to text, replacing undecodable bytes."""
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


def extract_id(body: Body) -> Optional[str]:
    """Extract the ``:ID:`` property from the note's property drawer.

    Org-roam files carry a drawer such as::

        :PROPERTIES:
        :ID:       075915aa-f7b9-499c-9858-8167d6b1e11b
        :END:

    Returns:
        The first UUID-valued ``:ID:`` inside a ``:PROPERTIES:`` drawer,
        lower-cased, or None if there is none.
    """
    in_drawer = False
    for line in as_text(body).splitlines():
        stripped = line.strip()
        if stripped.upper() == ":PROPERTIES:":
            in_drawer = True
            continue
        if not in_drawer:
            continue
        if stripped.upper() == ":END:":
            in_drawer = False
            continue
        match = _ID_LINE_RE.match(line)
        if match and is_valid_note_id(match.group(1)):
            return match.group(1).lower()
    return None


def extract_title(body: Body) -> str:
    """Extract the note title.

    Tries the first ``#+TITLE:`` directive, then the first headline,
    and falls back to ``"Untitled Note"``.
    """
    text = as_text(body)
    for line in text.splitlines():
        match = _TITLE_RE.match(line)
        if match and match.group(1).strip():
            return match.group(1).strip()

    match = _HEADLINE_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    return DEFAULT_TITLE


def is_public(body: Body) -> bool:
    """True iff a line reads ``#+access: public`` (case-insensitive)."""
    return bool(_PUBLIC_RE.search(as_text(body)))


def is_home(body: Body) -> bool:
    """True iff a line reads ``#+access: home`` (case-insensitive)."""
    return bool(_HOME_RE.search(as_text(body)))


def extract_date_override(body: Body) -> Optional[datetime.date]:
    """Return the day given by a ``#+DATE:`` directive, if parseable.

    Both ``#+DATE: 2024-03-02`` and ``#+DATE: <2024-03-02 Sat>`` are
    accepted.
    """
    match = _DATE_RE.search(as_text(body))
    if not match:
        return None
    try:
        return datetime.datetime.strptime(match.group(1), DATE_FORMAT).date()
    except ValueError:
        return None


def extract_links(body: Body) -> List[str]:
    """Extract all ``[[id:UUID]]`` and ``[[id:UUID][label]]`` targets.

    Targets are lower-cased and returned in order of appearance;
    duplicates are preserved.
    """
    return [match.group(1).lower() for match in _ID_LINK_RE.finditer(as_text(body))]


def build_preview(
    body: Body,
    max_paragraphs: int = PREVIEW_MAX_PARAGRAPHS,
    max_chars: int = PREVIEW_MAX_CHARS,
) -> Tuple[str, bool]:
    """Build a short Org preview of a journal body.

    The property drawer, ``#+TITLE:`` lines and headlines are skipped.
    Paragraphs are runs of consecutive non-blank lines.

    Returns:
        ``(preview, has_more)`` where ``has_more`` is set when paragraphs
        were dropped or the text was cut at ``max_chars``.
    """
    paragraphs: List[str] = []
    current: List[str] = []
    in_properties = False

    for line in as_text(body).splitlines():
        trimmed = line.strip()
        if trimmed.upper() == ":PROPERTIES:":
            in_properties = True
            continue
        if in_properties:
            if trimmed.upper() == ":END:":
                in_properties = False
            continue
        if trimmed.upper().startswith("#+TITLE:"):
            continue
        if _PREVIEW_HEADLINE_RE.match(line):
            continue

        if not trimmed:
            if current:
                paragraphs.append("\n".join(current))
                current = []
            continue

        current.append(line)

    if current:
        paragraphs.append("\n".join(current))

    has_more = False
    if len(paragraphs) > max_paragraphs:
        paragraphs = paragraphs[:max_paragraphs]
        has_more = True

    preview = "\n\n".join(paragraphs).strip()
    if not preview:
        return "", False

    if len(preview) > max_chars:
        preview = preview[:max_chars].strip()
        has_more = True

    return preview, has_more
