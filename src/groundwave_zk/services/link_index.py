"""Backlink, forward-link and public-access index over all notes."""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from groundwave_zk.config import ZKLocation
from groundwave_zk.exceptions import RemoteFetchError
from groundwave_zk.models.schema import DailySourceID, parse_daily_filename, utc_now
from groundwave_zk.observability import timed_operation
from groundwave_zk.storage.org_parser import extract_id, extract_links, is_public
from groundwave_zk.storage.webdav_client import BodyMemo, WebDAVClient
from groundwave_zk.utils import CancelToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkSnapshot:
    """One complete build of the link graph.

    Snapshots are never mutated after construction; a rebuild produces a
    new one. ``built_at`` is None only for the empty initial snapshot.

    Attributes:
        backlinks: target ID -> source IDs, in scan order.
        forward_links: source ID -> sorted, duplicate-free target IDs.
        public_map: note ID -> ``#+access: public``; daily sources are absent.
    """

    backlinks: Dict[str, List[str]] = field(default_factory=dict)
    forward_links: Dict[str, List[str]] = field(default_factory=dict)
    public_map: Dict[str, bool] = field(default_factory=dict)
    built_at: Optional[datetime] = None
    files_processed: int = 0
    files_skipped: int = 0


class LinkIndexBuilder:
    """Builds :class:`LinkSnapshot` objects from the main and daily directories."""

    def __init__(self, client: WebDAVClient, location: ZKLocation):
        self._client = client
        self._location = location

    def build(
        self,
        main_files: Optional[Sequence[str]] = None,
        daily_files: Optional[Sequence[str]] = None,
        cancel: Optional[CancelToken] = None,
        memo: Optional[BodyMemo] = None,
    ) -> LinkSnapshot:
        """Scan every note and daily file and build a new snapshot.

        Args:
            main_files: Listing of the main directory; listed here if None.
            daily_files: Listing of ``daily/``; listed here if None.
            cancel: Cancellation token for all network calls.
            memo: Optional per-cycle body memo shared with other builders.

        Raises:
            RemoteFetchError: If a directory listing fails. Per-file fetch
                errors only skip the file.
        """
        fetcher = memo if memo is not None else self._client
        start = time.perf_counter()

        with timed_operation("build_link_index") as op:
            if main_files is None:
                main_files = self._client.list_org_files(
                    self._location.base_url, cancel=cancel
                )
            if daily_files is None:
                daily_files = self._client.list_org_files(
                    self._location.daily_url, cancel=cancel
                )

            work: List[Tuple[str, bool]] = [(name, False) for name in main_files]
            work.extend((name, True) for name in daily_files)

            backlinks: Dict[str, List[str]] = {}
            forward_links: Dict[str, List[str]] = {}
            public_map: Dict[str, bool] = {}
            processed = 0
            skipped = 0

            for position, (filename, is_daily) in enumerate(work):
                if cancel is not None and cancel.cancelled:
                    skipped += len(work) - position
                    logger.warning(
                        f"Link index build cancelled, {len(work) - position} files not scanned"
                    )
                    break

                day = None
                if is_daily:
                    day = parse_daily_filename(filename)
                    if day is None:
                        skipped += 1
                        continue
                    url = self._location.daily_file_url(filename)
                else:
                    url = self._location.file_url(filename)

                try:
                    body = fetcher.fetch(url, cancel=cancel)
                except RemoteFetchError as e:
                    logger.warning(f"Skipping unreadable file {filename}: {e}")
                    skipped += 1
                    continue

                if day is not None:
                    source_id = str(DailySourceID(day))
                else:
                    source_id = extract_id(body)
                    if source_id is None:
                        skipped += 1
                        continue

                if source_id in forward_links:
                    logger.warning(f"Duplicate note ID {source_id} in {filename}, ignoring file")
                    skipped += 1
                    continue

                if day is None:
                    public_map[source_id] = is_public(body)

                # Dedupe within the file, keeping first-seen order
                targets = list(dict.fromkeys(extract_links(body)))
                for target in targets:
                    backlinks.setdefault(target, []).append(source_id)
                forward_links[source_id] = sorted(targets)
                processed += 1

            op["processed"] = processed
            op["skipped"] = skipped

        snapshot = LinkSnapshot(
            backlinks=backlinks,
            forward_links=forward_links,
            public_map=public_map,
            built_at=utc_now(),
            files_processed=processed,
            files_skipped=skipped,
        )
        logger.info(
            f"Link index built: {processed} files processed, {skipped} skipped, "
            f"{len(backlinks)} backlink entries, took {time.perf_counter() - start:.2f}s"
        )
        return snapshot
