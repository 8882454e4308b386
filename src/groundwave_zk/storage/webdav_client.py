"""Minimal read-only WebDAV client for the notes directory.

Only the two verbs the cache needs are implemented: PROPFIND with
``Depth: 1`` for directory listings and GET for file bodies. A fresh
``httpx.Client`` is built per call from configuration; responses are
never cached here.
"""
import logging
import threading
import xml.etree.ElementTree as ET
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional
from urllib.parse import unquote, urlsplit

import httpx

from groundwave_zk.config import ZKConfig
from groundwave_zk.exceptions import ErrorCode, RemoteFetchError
from groundwave_zk.models.schema import DirectoryEntry
from groundwave_zk.utils import CancelToken

logger = logging.getLogger(__name__)

DAV_NS = "{DAV:}"

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop>'
    "<d:resourcetype/><d:getcontentlength/><d:getlastmodified/>"
    "</d:prop></d:propfind>"
)


def _normalize_dir_path(path: str) -> str:
    return unquote(path).rstrip("/") + "/"


def parse_multistatus(body: bytes, request_url: str) -> List[DirectoryEntry]:
    """Parse a PROPFIND multistatus document into directory entries.

    The response describing the requested collection itself is dropped.
    Responses without a 2xx propstat are ignored.

    Raises:
        RemoteFetchError: If the body is not well-formed XML.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise RemoteFetchError(
            "Malformed PROPFIND response",
            url=request_url,
            code=ErrorCode.REMOTE_LIST_FAILED,
            original_error=e,
        )

    own_path = _normalize_dir_path(urlsplit(request_url).path)
    entries: List[DirectoryEntry] = []

    for response in root.iter(f"{DAV_NS}response"):
        href = response.findtext(f"{DAV_NS}href", default="").strip()
        if not href:
            continue
        path = unquote(urlsplit(href).path)
        if _normalize_dir_path(path) == own_path:
            continue

        prop = None
        for propstat in response.findall(f"{DAV_NS}propstat"):
            status = propstat.findtext(f"{DAV_NS}status", default="").split()
            if len(status) < 2 or status[1].startswith("2"):
                prop = propstat.find(f"{DAV_NS}prop")
                break
        if prop is None:
            continue

        resourcetype = prop.find(f"{DAV_NS}resourcetype")
        is_dir = (
            resourcetype is not None
            and resourcetype.find(f"{DAV_NS}collection") is not None
        )

        size = None
        length_text = prop.findtext(f"{DAV_NS}getcontentlength")
        if length_text and length_text.strip().isdigit():
            size = int(length_text.strip())

        modified = None
        modified_text = prop.findtext(f"{DAV_NS}getlastmodified")
        if modified_text:
            try:
                modified = parsedate_to_datetime(modified_text.strip())
            except (TypeError, ValueError):
                logger.debug(f"Unparseable getlastmodified for {path}: {modified_text!r}")

        name = path.rstrip("/").rsplit("/", 1)[-1]
        entries.append(
            DirectoryEntry(
                path=path, name=name, is_dir=is_dir, size=size, modified=modified
            )
        )

    return entries


class WebDAVClient:
    """Authenticated PROPFIND/GET access to the WebDAV notes directory."""

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 3.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            username: Basic auth user; used only together with a password.
            password: Basic auth password.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._auth = (username, password) if username and password else None
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(
        cls, zk_config: ZKConfig, transport: Optional[httpx.BaseTransport] = None
    ) -> "WebDAVClient":
        return cls(
            username=zk_config.webdav_username,
            password=zk_config.webdav_password,
            timeout=zk_config.request_timeout,
            transport=transport,
        )

    def _request(
        self,
        method: str,
        url: str,
        cancel: Optional[CancelToken],
        headers: Optional[dict] = None,
        content: Optional[str] = None,
    ) -> httpx.Response:
        if cancel is not None and cancel.cancelled:
            raise RemoteFetchError(
                f"{method} cancelled before request",
                url=url,
                code=ErrorCode.REMOTE_CANCELLED,
                transient=True,
            )

        timeout = self._timeout
        if cancel is not None:
            remaining = cancel.remaining()
            if remaining is not None:
                timeout = max(0.001, min(timeout, remaining))

        try:
            with httpx.Client(
                auth=self._auth, timeout=timeout, transport=self._transport
            ) as client:
                return client.request(method, url, headers=headers, content=content)
        except httpx.TimeoutException as e:
            raise RemoteFetchError(
                f"{method} timed out after {timeout:.1f}s",
                url=url,
                code=ErrorCode.REMOTE_TIMEOUT,
                original_error=e,
                transient=True,
            )
        except httpx.HTTPError as e:
            raise RemoteFetchError(
                f"{method} failed: {e}",
                url=url,
                original_error=e,
                transient=True,
            )

    def list_directory(
        self, url: str, cancel: Optional[CancelToken] = None
    ) -> List[DirectoryEntry]:
        """List the members of a collection.

        A 404 yields an empty list so an absent optional directory (such as
        ``daily/``) degrades gracefully.

        Raises:
            RemoteFetchError: On any other non-2xx status or transport error.
        """
        response = self._request(
            "PROPFIND",
            url,
            cancel,
            headers={"Depth": "1", "Content-Type": "application/xml; charset=utf-8"},
            content=PROPFIND_BODY,
        )
        if response.status_code == 404:
            logger.info(f"WebDAV directory not found, treating as empty: {url}")
            return []
        if response.status_code not in (200, 207):
            raise RemoteFetchError(
                f"PROPFIND failed: HTTP {response.status_code}",
                url=url,
                status=response.status_code,
                code=ErrorCode.REMOTE_LIST_FAILED,
                transient=response.status_code >= 500,
            )

        entries = parse_multistatus(response.content, url)
        logger.debug(f"Found {len(entries)} WebDAV directory items at {url}")
        return entries

    def list_org_files(
        self, url: str, cancel: Optional[CancelToken] = None
    ) -> List[str]:
        """List names of the ``.org`` files (not collections) in a directory."""
        return [
            entry.name
            for entry in self.list_directory(url, cancel=cancel)
            if not entry.is_dir and entry.name.endswith(".org")
        ]

    def fetch(self, url: str, cancel: Optional[CancelToken] = None) -> bytes:
        """GET a file body.

        Raises:
            RemoteFetchError: On any status other than 200 or transport error.
        """
        response = self._request("GET", url, cancel)
        if response.status_code != 200:
            raise RemoteFetchError(
                f"GET failed: HTTP {response.status_code}",
                url=url,
                status=response.status_code,
                transient=response.status_code >= 500,
            )
        return response.content


class BodyMemo:
    """Fetch-once memo of file bodies for a single refresh cycle.

    Wraps a :class:`WebDAVClient` and exposes the same ``fetch`` call, so
    builders can take either. Failed fetches are not remembered; the next
    builder in the cycle retries them.
    """

    def __init__(self, client: WebDAVClient):
        self._client = client
        self._bodies: Dict[str, bytes] = {}
        self._lock = threading.Lock()
        self.hits = 0

    def fetch(self, url: str, cancel: Optional[CancelToken] = None) -> bytes:
        with self._lock:
            body = self._bodies.get(url)
            if body is not None:
                self.hits += 1
                return body

        body = self._client.fetch(url, cancel=cancel)
        with self._lock:
            self._bodies[url] = body
        return body

    def __len__(self) -> int:
        with self._lock:
            return len(self._bodies)
