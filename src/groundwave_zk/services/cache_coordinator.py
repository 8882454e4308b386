"""Cache coordinator: owns the published indexes and the refresh loop.

Each index (links, journal, timeline) is an immutable snapshot guarded by
its own read/write lock. Queries copy data out under a read lock; builds
run without any lock held and only take the writer lock to swap in the
new snapshot, so readers see either the old or the new snapshot in full.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from groundwave_zk.config import ZKConfig, config
from groundwave_zk.exceptions import BuildError, InvalidDateError, RemoteFetchError
from groundwave_zk.models.schema import JournalEntry, TimelineNote, parse_date_string
from groundwave_zk.observability import timed_operation
from groundwave_zk.services.journal_index import JournalIndexBuilder, JournalSnapshot
from groundwave_zk.services.link_index import LinkIndexBuilder, LinkSnapshot
from groundwave_zk.services.timeline_index import TimelineIndexBuilder, TimelineSnapshot
from groundwave_zk.storage.webdav_client import BodyMemo, WebDAVClient
from groundwave_zk.utils import CancelToken, ReadWriteLock

logger = logging.getLogger(__name__)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ZKCacheCoordinator:
    """Builds, publishes and serves the Zettelkasten indexes.

    The coordinator is a plain object so tests can create isolated
    instances; nothing here is a process-wide singleton.
    """

    def __init__(
        self,
        zk_config: Optional[ZKConfig] = None,
        client: Optional[WebDAVClient] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the coordinator.

        Args:
            zk_config: Configuration; defaults to the global config.
            client: WebDAV client; built from the configuration if omitted.
            transport: httpx transport for the default client (tests).

        Raises:
            ConfigurationError: If ``zk_path`` is missing or invalid.
        """
        self.config = zk_config or config
        self.client = client or WebDAVClient.from_config(self.config, transport=transport)
        self.location = self.config.get_zk_location()

        self._link_builder = LinkIndexBuilder(self.client, self.location)
        self._journal_builder = JournalIndexBuilder(
            self.client,
            self.location,
            base_path=self.config.default_base_path,
            site_base_url=self.config.site_base_url,
        )
        self._timeline_builder = TimelineIndexBuilder(self.client, self.location)

        self._links = LinkSnapshot()
        self._links_lock = ReadWriteLock()
        self._journal = JournalSnapshot()
        self._journal_lock = ReadWriteLock()
        self._timeline = TimelineSnapshot()
        self._timeline_lock = ReadWriteLock()

        # One refresh at a time; queries never take this lock
        self._refresh_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_refresh_error: Optional[str] = None

    # =========================================================================
    # Queries
    # =========================================================================

    def get_backlinks(self, target_id: str) -> List[str]:
        """Source IDs linking to ``target_id``, in scan order."""
        with self._links_lock.read_locked():
            return list(self._links.backlinks.get(target_id.lower(), []))

    def get_forward_links(self, source_id: str) -> List[str]:
        """Sorted target IDs linked from ``source_id``."""
        with self._links_lock.read_locked():
            return list(self._links.forward_links.get(source_id.lower(), []))

    def is_public(self, note_id: str) -> bool:
        with self._links_lock.read_locked():
            return self._links.public_map.get(note_id.lower(), False)

    def get_journal_entries(self) -> List[JournalEntry]:
        """All journal entries, newest first."""
        with self._journal_lock.read_locked():
            snapshot = self._journal
        return snapshot.sorted_entries()

    def get_journal_entry(self, date_string: str) -> Optional[JournalEntry]:
        """Journal entry for a ``YYYY-MM-DD`` day.

        Returns None for a day without an entry.

        Raises:
            InvalidDateError: If ``date_string`` is not a real calendar day.
        """
        if parse_date_string(date_string) is None:
            raise InvalidDateError(date_string)
        with self._journal_lock.read_locked():
            return self._journal.entries.get(date_string)

    def get_timeline_by_date(self) -> Dict[str, List[TimelineNote]]:
        with self._timeline_lock.read_locked():
            return {day: list(notes) for day, notes in self._timeline.by_date.items()}

    def last_link_build_at(self) -> Optional[datetime]:
        """Time of the last published link build; None if never built."""
        with self._links_lock.read_locked():
            return self._links.built_at

    def last_journal_build_at(self) -> Optional[datetime]:
        with self._journal_lock.read_locked():
            return self._journal.built_at

    def last_timeline_build_at(self) -> Optional[datetime]:
        with self._timeline_lock.read_locked():
            return self._timeline.built_at

    @property
    def links_built(self) -> bool:
        return self.last_link_build_at() is not None

    # =========================================================================
    # Builds
    # =========================================================================

    def _publish(self, name: str, snapshot: Any, cancel: Optional[CancelToken]) -> bool:
        """Swap in a new snapshot unless its build was cancelled."""
        if cancel is not None and cancel.cancelled:
            logger.warning(f"Discarding {name} index build: cancelled before completion")
            return False

        if name == "links":
            with self._links_lock.write_locked():
                self._links = snapshot
        elif name == "journal":
            with self._journal_lock.write_locked():
                self._journal = snapshot
        else:
            with self._timeline_lock.write_locked():
                self._timeline = snapshot
        return True

    def build_link_index(self, cancel: Optional[CancelToken] = None) -> LinkSnapshot:
        """List both directories, build and publish the link index.

        Raises:
            BuildError: If a directory listing fails.
        """
        try:
            snapshot = self._link_builder.build(cancel=cancel)
        except RemoteFetchError as e:
            raise BuildError("Link index build failed", index="links", original_error=e) from e
        self._publish("links", snapshot, cancel)
        return snapshot

    def build_journal_index(self, cancel: Optional[CancelToken] = None) -> JournalSnapshot:
        """List ``daily/``, build and publish the journal index.

        Raises:
            BuildError: If the daily directory listing fails.
        """
        try:
            snapshot = self._journal_builder.build(cancel=cancel)
        except RemoteFetchError as e:
            raise BuildError("Journal index build failed", index="journal", original_error=e) from e
        self._publish("journal", snapshot, cancel)
        return snapshot

    def build_timeline_index(self, cancel: Optional[CancelToken] = None) -> TimelineSnapshot:
        """List the main directory, build and publish the timeline index.

        Raises:
            BuildError: If the main directory listing fails.
        """
        try:
            snapshot = self._timeline_builder.build(cancel=cancel)
        except RemoteFetchError as e:
            raise BuildError("Timeline index build failed", index="timeline", original_error=e) from e
        self._publish("timeline", snapshot, cancel)
        return snapshot

    def refresh_all(self, cancel: Optional[CancelToken] = None) -> None:
        """Rebuild all three indexes from one listing of each directory.

        Bodies are fetched at most once per cycle and shared between the
        builders. A failed listing fails only the indexes that need it; the
        others are still rebuilt and published.

        Args:
            cancel: Token for the cycle; defaults to the refresh deadline
                combined with the coordinator's stop signal.

        Raises:
            BuildError: After the other builds ran, if any listing failed.
        """
        if cancel is None:
            cancel = CancelToken.with_timeout(self.config.refresh_deadline, event=self._stop_event)

        with self._refresh_lock, timed_operation("refresh_all") as op:
            memo = BodyMemo(self.client)
            main_files: Optional[List[str]] = None
            daily_files: Optional[List[str]] = None
            listing_errors: Dict[str, RemoteFetchError] = {}

            try:
                main_files = self.client.list_org_files(self.location.base_url, cancel=cancel)
            except RemoteFetchError as e:
                logger.error(f"Failed to list notes directory: {e}")
                listing_errors["main"] = e
            try:
                daily_files = self.client.list_org_files(self.location.daily_url, cancel=cancel)
            except RemoteFetchError as e:
                logger.error(f"Failed to list daily directory: {e}")
                listing_errors["daily"] = e

            failed: List[str] = []
            if main_files is not None and daily_files is not None:
                snapshot = self._link_builder.build(main_files, daily_files, cancel=cancel, memo=memo)
                self._publish("links", snapshot, cancel)
            else:
                failed.append("links")

            if daily_files is not None:
                self._publish(
                    "journal",
                    self._journal_builder.build(daily_files, cancel=cancel, memo=memo),
                    cancel,
                )
            else:
                failed.append("journal")

            if main_files is not None:
                self._publish(
                    "timeline",
                    self._timeline_builder.build(main_files, cancel=cancel, memo=memo),
                    cancel,
                )
            else:
                failed.append("timeline")

            op["bodies_fetched"] = len(memo)
            op["memo_hits"] = memo.hits

            if failed:
                first_error = listing_errors.get("main") or listing_errors.get("daily")
                self._last_refresh_error = str(first_error)
                raise BuildError(
                    f"Refresh failed for: {', '.join(failed)}",
                    index=",".join(failed),
                    original_error=first_error,
                )
            self._last_refresh_error = None

    # =========================================================================
    # Background refresh
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background refresher thread (no-op if already running)."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._refresh_loop, name="zk-cache-refresh", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Signal the refresher to stop and wait for it.

        In-flight requests observe the stop through their cancel token.

        Returns:
            True if the thread has exited (or was never started).
        """
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        stopped = not thread.is_alive()
        if stopped:
            self._thread = None
        return stopped

    def _refresh_loop(self) -> None:
        logger.info(f"Cache refresher starting in {self.config.startup_delay:g}s")
        if self._stop_event.wait(self.config.startup_delay):
            logger.info("Cache refresher stopped before first refresh")
            return

        while True:
            try:
                self.refresh_all()
            except BuildError as e:
                logger.error(f"Cache refresh failed: {e}")
            except Exception as e:
                # Keep the refresher alive; the next cycle may succeed
                self._last_refresh_error = str(e)
                logger.exception(f"Unexpected error during cache refresh: {e}")

            if self._stop_event.wait(self.config.refresh_interval):
                break

        logger.info("Cache refresher shutting down")

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        """Build times and sizes of the published indexes."""
        with self._links_lock.read_locked():
            links = self._links
        with self._journal_lock.read_locked():
            journal = self._journal
        with self._timeline_lock.read_locked():
            timeline = self._timeline

        return {
            "running": self.is_running,
            "links": {
                "built_at": _isoformat(links.built_at),
                "sources": len(links.forward_links),
                "targets": len(links.backlinks),
                "public_notes": sum(1 for v in links.public_map.values() if v),
                "files_skipped": links.files_skipped,
            },
            "journal": {
                "built_at": _isoformat(journal.built_at),
                "entries": len(journal.entries),
                "files_skipped": journal.files_skipped,
            },
            "timeline": {
                "built_at": _isoformat(timeline.built_at),
                "dates": len(timeline.by_date),
                "notes": sum(len(notes) for notes in timeline.by_date.values()),
                "files_skipped": timeline.files_skipped,
            },
            "last_refresh_error": self._last_refresh_error,
        }
