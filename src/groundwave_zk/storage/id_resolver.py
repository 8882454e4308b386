"""Note ID to filename resolution for the WebDAV notes directory."""
import logging
from typing import Dict, List, Optional

from groundwave_zk.config import ZKLocation
from groundwave_zk.exceptions import ErrorCode, NoteNotFoundError, RemoteFetchError
from groundwave_zk.models.schema import validate_note_id
from groundwave_zk.observability import traced
from groundwave_zk.storage.org_parser import extract_id
from groundwave_zk.storage.webdav_client import WebDAVClient
from groundwave_zk.utils import CancelToken, ReadWriteLock

logger = logging.getLogger(__name__)


class IDResolver:
    """Maps note UUIDs to filenames in the main notes directory.

    Lookups hit an in-memory map first. On a miss the directory is listed
    and bodies are fetched one by one; every ``(id, filename)`` pair seen on
    the way is remembered, and the scan stops at the requested ID. Misses
    are never cached, so newly added notes are found on the next call.
    Entries are never evicted; a stale mapping is overwritten by the next
    scan that reads the file.
    """

    def __init__(self, client: WebDAVClient, location: ZKLocation):
        self._client = client
        self._location = location
        self._map: Dict[str, str] = {}
        self._lock = ReadWriteLock()

    @property
    def size(self) -> int:
        with self._lock.read_locked():
            return len(self._map)

    def known_ids(self) -> List[str]:
        with self._lock.read_locked():
            return sorted(self._map)

    def lookup(self, note_id: str) -> Optional[str]:
        """Return the cached filename for a canonical ID without scanning."""
        with self._lock.read_locked():
            return self._map.get(note_id)

    def remember(self, note_id: str, filename: str) -> None:
        with self._lock.write_locked():
            previous = self._map.get(note_id)
            self._map[note_id] = filename
        if previous is not None and previous != filename:
            logger.info(f"Note {note_id} moved from {previous} to {filename}")

    @traced("resolve_note_id")
    def resolve(
        self,
        note_id: str,
        cancel: Optional[CancelToken] = None,
        rescan: bool = False,
    ) -> str:
        """Resolve a note ID to its filename.

        Args:
            note_id: UUID of the note (any letter case).
            cancel: Optional cancellation token for the network calls.
            rescan: Scan the directory even when the ID is cached.

        Returns:
            The filename inside the main notes directory.

        Raises:
            InvalidNoteIDError: If ``note_id`` is not a UUID. No request is made.
            RemoteFetchError: If the directory cannot be listed or the scan
                was cancelled.
            NoteNotFoundError: If no file in the listing carries the ID.
        """
        note_id = validate_note_id(note_id)

        if not rescan:
            cached = self.lookup(note_id)
            if cached is not None:
                return cached

        filenames = self._client.list_org_files(self._location.base_url, cancel=cancel)
        logger.debug(f"Scanning {len(filenames)} files for note {note_id}")

        for filename in filenames:
            try:
                body = self._client.fetch(self._location.file_url(filename), cancel=cancel)
            except RemoteFetchError as e:
                if e.code == ErrorCode.REMOTE_CANCELLED:
                    raise
                logger.warning(f"Skipping unreadable file {filename}: {e}")
                continue

            found_id = extract_id(body)
            if found_id is None:
                continue
            self.remember(found_id, filename)
            if found_id == note_id:
                return filename

        raise NoteNotFoundError(note_id, scanned=len(filenames))
