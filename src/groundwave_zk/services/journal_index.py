"""Daily journal index: rendered daily notes with short previews."""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from groundwave_zk.config import ZKLocation
from groundwave_zk.exceptions import RemoteFetchError, RenderError
from groundwave_zk.models.schema import (
    DATE_FORMAT,
    DEFAULT_TITLE,
    JournalEntry,
    parse_daily_filename,
    utc_now,
)
from groundwave_zk.observability import timed_operation
from groundwave_zk.storage.org_parser import build_preview, extract_title
from groundwave_zk.storage.org_renderer import OrgRenderer
from groundwave_zk.storage.webdav_client import BodyMemo, WebDAVClient
from groundwave_zk.utils import CancelToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JournalSnapshot:
    """Journal entries keyed by ``YYYY-MM-DD``."""

    entries: Dict[str, JournalEntry] = field(default_factory=dict)
    built_at: Optional[datetime] = None
    files_processed: int = 0
    files_skipped: int = 0

    def sorted_entries(self) -> List[JournalEntry]:
        """Entries sorted newest first."""
        return sorted(self.entries.values(), key=lambda e: e.date, reverse=True)


class JournalIndexBuilder:
    """Builds :class:`JournalSnapshot` objects from the ``daily/`` directory."""

    def __init__(
        self,
        client: WebDAVClient,
        location: ZKLocation,
        base_path: str = "/zk",
        site_base_url: Optional[str] = None,
    ):
        self._client = client
        self._location = location
        self._renderer = OrgRenderer(base_path=base_path, site_base_url=site_base_url)

    def build(
        self,
        daily_files: Optional[Sequence[str]] = None,
        cancel: Optional[CancelToken] = None,
        memo: Optional[BodyMemo] = None,
    ) -> JournalSnapshot:
        """Fetch and render every ``YYYY-MM-DD.org`` daily note.

        Files that cannot be fetched or rendered are skipped. A preview that
        fails to render leaves the entry in place with an empty preview.

        Raises:
            RemoteFetchError: If the daily directory listing fails.
        """
        fetcher = memo if memo is not None else self._client
        start = time.perf_counter()

        with timed_operation("build_journal_index") as op:
            if daily_files is None:
                daily_files = self._client.list_org_files(
                    self._location.daily_url, cancel=cancel
                )

            entries: Dict[str, JournalEntry] = {}
            processed = 0
            skipped = 0

            for position, filename in enumerate(daily_files):
                if cancel is not None and cancel.cancelled:
                    skipped += len(daily_files) - position
                    logger.warning("Journal index build cancelled")
                    break

                day = parse_daily_filename(filename)
                if day is None:
                    continue

                try:
                    body = fetcher.fetch(self._location.daily_file_url(filename), cancel=cancel)
                except RemoteFetchError as e:
                    logger.warning(f"Skipping unreadable journal file {filename}: {e}")
                    skipped += 1
                    continue

                try:
                    html_body = self._renderer.render(body, filename=filename)
                except RenderError as e:
                    logger.warning(f"Skipping journal file {filename}: {e}")
                    skipped += 1
                    continue

                preview_html = ""
                preview, has_more = build_preview(body)
                if preview:
                    try:
                        preview_html = self._renderer.render(preview, filename=filename)
                    except RenderError as e:
                        logger.warning(f"Preview render failed for {filename}: {e}")

                date_string = day.strftime(DATE_FORMAT)
                title = extract_title(body)
                if title == DEFAULT_TITLE:
                    title = date_string

                entries[date_string] = JournalEntry(
                    date=day,
                    date_string=date_string,
                    filename=filename,
                    title=title,
                    html_body=html_body,
                    preview_html=preview_html,
                    has_more=has_more,
                    updated_at=utc_now(),
                )
                processed += 1

            op["processed"] = processed
            op["skipped"] = skipped

        logger.info(
            f"Journal index built: {processed} files processed, {skipped} skipped, "
            f"{len(entries)} entries, took {time.perf_counter() - start:.2f}s"
        )
        return JournalSnapshot(
            entries=entries,
            built_at=utc_now(),
            files_processed=processed,
            files_skipped=skipped,
        )
