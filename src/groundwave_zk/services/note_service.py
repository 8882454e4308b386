"""Service layer for reading and rendering Zettelkasten notes."""
import logging
import re
from typing import List, Optional, Tuple

from groundwave_zk.exceptions import RemoteFetchError
from groundwave_zk.models.schema import (
    ChatNote,
    DailySourceID,
    Note,
    NoteSummary,
    parse_link_source_id,
    validate_note_id,
)
from groundwave_zk.observability import traced
from groundwave_zk.services.cache_coordinator import ZKCacheCoordinator
from groundwave_zk.storage.id_resolver import IDResolver
from groundwave_zk.storage.org_parser import (
    as_text,
    extract_id,
    extract_title,
    is_home,
    is_public,
)
from groundwave_zk.storage.org_renderer import OrgRenderer
from groundwave_zk.utils import CancelToken

logger = logging.getLogger(__name__)

RESTRICTED_LINK_CLASS = "restricted-link"

_NOTE_LINK_RE = re.compile(r'<a([^>]*?)href="(/note/([a-f0-9\-]+))"([^>]*)>', re.IGNORECASE)
_CLASS_ATTR_RE = re.compile(r'\sclass="([^"]*)"')

JOURNAL_BASE_PATH = "/journal"


class NoteService:
    """Renders notes by ID and serves listings built on the cache.

    Uses the coordinator's client, location and link index; ID resolution
    is delegated to an :class:`IDResolver` that lives as long as the service.
    """

    def __init__(
        self,
        coordinator: ZKCacheCoordinator,
        resolver: Optional[IDResolver] = None,
    ):
        self.coordinator = coordinator
        self.config = coordinator.config
        self.client = coordinator.client
        self.location = coordinator.location
        self.resolver = resolver or IDResolver(self.client, self.location)

    def _renderer(self, base_path: str) -> OrgRenderer:
        return OrgRenderer(base_path=base_path, site_base_url=self.config.site_base_url)

    def _fetch_note(
        self, note_id: str, cancel: Optional[CancelToken] = None
    ) -> Tuple[str, str, bytes]:
        """Resolve and fetch a note, rescanning once if the mapping is stale.

        Returns:
            ``(canonical_id, filename, body)``
        """
        canonical_id = validate_note_id(note_id)
        filename = self.resolver.resolve(canonical_id, cancel=cancel)

        try:
            body = self.client.fetch(self.location.file_url(filename), cancel=cancel)
        except RemoteFetchError as e:
            if e.status != 404:
                raise
            body = None

        if body is None or extract_id(body) != canonical_id:
            logger.info(f"Cached filename {filename} no longer holds note {canonical_id}, rescanning")
            filename = self.resolver.resolve(canonical_id, cancel=cancel, rescan=True)
            body = self.client.fetch(self.location.file_url(filename), cancel=cancel)

        return canonical_id, filename, body

    def annotate_restricted_links(self, html: str) -> str:
        """Add the ``restricted-link`` class to ``/note/<id>`` anchors of non-public notes.

        Leaves the HTML untouched until the link index has been built once,
        since every note would otherwise look restricted.
        """
        if not self.coordinator.links_built:
            return html

        def annotate(match: "re.Match[str]") -> str:
            link = match.group(0)
            if self.coordinator.is_public(match.group(3)):
                return link

            if _CLASS_ATTR_RE.search(link):
                def merge(class_match: "re.Match[str]") -> str:
                    classes = class_match.group(1)
                    if RESTRICTED_LINK_CLASS in classes.split():
                        return class_match.group(0)
                    return f' class="{classes} {RESTRICTED_LINK_CLASS}"'

                return _CLASS_ATTR_RE.sub(merge, link, count=1)

            return link.replace("<a", f'<a class="{RESTRICTED_LINK_CLASS}"', 1)

        return _NOTE_LINK_RE.sub(annotate, html)

    @traced("render_note")
    def render_note(
        self,
        note_id: str,
        base_path: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Note:
        """Fetch a note by ID and render it to HTML.

        Args:
            note_id: UUID of the note.
            base_path: Prefix for ``id:`` links. When it is the public path
                (``/note``), links to non-public notes are marked restricted.
            cancel: Optional cancellation token.

        Raises:
            InvalidNoteIDError: If ``note_id`` is not a UUID.
            NoteNotFoundError: If no note carries the ID.
            RemoteFetchError: If listing or fetching fails.
            RenderError: If the body cannot be rendered.
        """
        if base_path is None:
            base_path = self.config.default_base_path
        canonical_id, filename, body = self._fetch_note(note_id, cancel=cancel)

        html_body = self._renderer(base_path).render(body, filename=filename)
        if base_path.strip().rstrip("/") == self.config.public_base_path:
            html_body = self.annotate_restricted_links(html_body)

        return Note(
            id=canonical_id,
            title=extract_title(body),
            filename=filename,
            is_public=is_public(body),
            is_home=is_home(body),
            html_body=html_body,
        )

    def _render_index_file(self, url: str, filename: str, base_path: str) -> Note:
        body = self.client.fetch(url)
        return Note(
            id=extract_id(body) or "",
            title=extract_title(body),
            filename=filename,
            is_public=is_public(body),
            is_home=is_home(body),
            html_body=self._renderer(base_path).render(body, filename=filename),
        )

    @traced("render_index_note")
    def render_index_note(self) -> Note:
        """Render the configured index note, fetched by filename."""
        return self._render_index_file(
            self.location.index_url,
            self.location.index_file,
            self.config.default_base_path,
        )

    @traced("render_home_note")
    def render_home_note(self) -> Note:
        """Render the home index note; falls back to the main index.

        Raises:
            ConfigurationError: If the home path is not in the notes directory.
        """
        home = self.config.get_home_location()
        return self._render_index_file(
            home.index_url, home.index_file, self.config.home_base_path
        )

    @traced("list_notes")
    def list_notes(self, cancel: Optional[CancelToken] = None) -> List[NoteSummary]:
        """List every note with an ID, sorted by title (case-insensitive).

        Files read here also warm the resolver's ID map.
        """
        notes: List[NoteSummary] = []
        for filename in self.client.list_org_files(self.location.base_url, cancel=cancel):
            try:
                body = self.client.fetch(self.location.file_url(filename), cancel=cancel)
            except RemoteFetchError as e:
                logger.warning(f"Skipping unreadable file {filename}: {e}")
                continue

            note_id = extract_id(body)
            if note_id is None:
                continue
            self.resolver.remember(note_id, filename)
            notes.append(
                NoteSummary(id=note_id, title=extract_title(body), is_public=is_public(body))
            )

        notes.sort(key=lambda n: n.title.lower())
        return notes

    @traced("get_note_for_chat")
    def get_note_for_chat(
        self, note_id: str, cancel: Optional[CancelToken] = None
    ) -> ChatNote:
        """Fetch a note's raw Org source for use as chat context."""
        canonical_id, _, body = self._fetch_note(note_id, cancel=cancel)
        return ChatNote(id=canonical_id, title=extract_title(body), raw_body=as_text(body))

    def get_note_links(self, note_id: str) -> List[str]:
        """Cached forward links of a note."""
        return self.coordinator.get_forward_links(validate_note_id(note_id))

    def get_backlinks(self, note_id: str) -> List[str]:
        """Cached backlinks of a note; may include ``daily:`` sources."""
        return self.coordinator.get_backlinks(validate_note_id(note_id))

    def backlink_href(self, source_id: str, base_path: Optional[str] = None) -> str:
        """User-facing URL for a backlink source.

        Daily sources point at the journal page for their day; notes point
        at ``{base_path}/{id}``.

        Raises:
            InvalidNoteIDError: If ``source_id`` is not a valid source.
        """
        source = parse_link_source_id(source_id)
        if isinstance(source, DailySourceID):
            return f"{JOURNAL_BASE_PATH}/{source.date_string}"
        base = (base_path or self.config.default_base_path).rstrip("/")
        return f"{base}/{source.note_id}"
