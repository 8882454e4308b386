"""Timeline index: timestamped notes bucketed by day."""
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from groundwave_zk.config import ZKLocation
from groundwave_zk.exceptions import RemoteFetchError
from groundwave_zk.models.schema import DATE_FORMAT, DEFAULT_TITLE, TimelineNote, utc_now
from groundwave_zk.observability import timed_operation
from groundwave_zk.storage.org_parser import extract_date_override, extract_id, extract_title
from groundwave_zk.storage.webdav_client import BodyMemo, WebDAVClient
from groundwave_zk.utils import CancelToken

logger = logging.getLogger(__name__)

# 20240301090000-some-slug.org
TIMELINE_FILENAME_RE = re.compile(r"^(\d{14})-.*\.org$")
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def parse_timeline_filename(filename: str) -> Optional[datetime]:
    """Return the UTC timestamp encoded in a timeline filename, else None."""
    match = TIMELINE_FILENAME_RE.match(filename)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


@dataclass(frozen=True)
class TimelineSnapshot:
    """Timeline notes keyed by ``YYYY-MM-DD``, each bucket newest first."""

    by_date: Dict[str, List[TimelineNote]] = field(default_factory=dict)
    built_at: Optional[datetime] = None
    files_processed: int = 0
    files_skipped: int = 0


class TimelineIndexBuilder:
    """Builds :class:`TimelineSnapshot` objects from the main directory."""

    def __init__(self, client: WebDAVClient, location: ZKLocation):
        self._client = client
        self._location = location

    def build(
        self,
        main_files: Optional[Sequence[str]] = None,
        cancel: Optional[CancelToken] = None,
        memo: Optional[BodyMemo] = None,
    ) -> TimelineSnapshot:
        """Bucket every ``YYYYMMDDHHMMSS-*.org`` note by day.

        A ``#+DATE:`` directive naming a different day moves the note to
        that day, with the time of day reset to midnight.

        Raises:
            RemoteFetchError: If the main directory listing fails.
        """
        fetcher = memo if memo is not None else self._client
        start = time.perf_counter()

        with timed_operation("build_timeline_index") as op:
            if main_files is None:
                main_files = self._client.list_org_files(
                    self._location.base_url, cancel=cancel
                )

            by_date: Dict[str, List[TimelineNote]] = {}
            processed = 0
            skipped = 0

            for position, filename in enumerate(main_files):
                if cancel is not None and cancel.cancelled:
                    skipped += len(main_files) - position
                    logger.warning("Timeline index build cancelled")
                    break

                if filename == self._location.index_file:
                    continue
                if not TIMELINE_FILENAME_RE.match(filename):
                    continue

                timestamp = parse_timeline_filename(filename)
                if timestamp is None:
                    skipped += 1
                    continue

                try:
                    body = fetcher.fetch(self._location.file_url(filename), cancel=cancel)
                except RemoteFetchError as e:
                    logger.warning(f"Skipping unreadable note file {filename}: {e}")
                    skipped += 1
                    continue

                note_id = extract_id(body)
                if note_id is None:
                    skipped += 1
                    continue

                title = extract_title(body)
                if title == DEFAULT_TITLE:
                    title = filename[: -len(".org")]

                date_string = timestamp.strftime(DATE_FORMAT)
                override = extract_date_override(body)
                if override is not None and override != timestamp.date():
                    timestamp = datetime(
                        override.year, override.month, override.day, tzinfo=timestamp.tzinfo
                    )
                    date_string = override.strftime(DATE_FORMAT)

                by_date.setdefault(date_string, []).append(
                    TimelineNote(
                        id=note_id,
                        title=title,
                        filename=filename,
                        timestamp=timestamp,
                        date_string=date_string,
                    )
                )
                processed += 1

            for notes in by_date.values():
                notes.sort(key=lambda n: n.timestamp, reverse=True)

            op["processed"] = processed
            op["dates"] = len(by_date)

        logger.info(
            f"Timeline index built: {processed} files processed, {skipped} skipped, "
            f"{len(by_date)} dates, took {time.perf_counter() - start:.2f}s"
        )
        return TimelineSnapshot(
            by_date=by_date,
            built_at=utc_now(),
            files_processed=processed,
            files_skipped=skipped,
        )
