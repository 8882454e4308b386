"""Fake WebDAV origin for testing.

FakeWebDAVServer serves a notes directory and its ``daily/`` subdirectory
from in-memory dicts through ``httpx.MockTransport``. It answers PROPFIND
with a multistatus document and GET with the stored body, records every
request, and can be told to fail listings or individual files.

Design principles:
- Never touch the network; every request goes through the mock transport
- Deterministic: listings come back in insertion order
- Inspectable: tests can count requests per method and path
"""
from typing import Dict, List, Optional, Union
from urllib.parse import quote

import httpx

BASE_URL = "https://dav.example.com/zk/"
BASE_PATH = "/zk/"
DAILY_PATH = "/zk/daily/"
LAST_MODIFIED = "Mon, 01 Jan 2024 00:00:00 GMT"

Body = Union[str, bytes]

ID_INDEX = "11111111-1111-1111-1111-111111111111"
ID_A = "22222222-2222-2222-2222-222222222222"
ID_B = "33333333-3333-3333-3333-333333333333"
ID_C = "44444444-4444-4444-4444-444444444444"


def org_note(
    note_id: Optional[str],
    title: Optional[str] = None,
    links: List[str] = (),
    public: bool = False,
    extra: str = "",
) -> str:
    """Build an Org-roam style note body."""
    lines = []
    if note_id:
        lines += [":PROPERTIES:", f":ID:       {note_id}", ":END:"]
    if title:
        lines.append(f"#+TITLE: {title}")
    if public:
        lines.append("#+access: public")
    lines.append("")
    for target in links:
        lines.append(f"See [[id:{target}][{target[:8]}]].")
    if extra:
        lines.append(extra)
    return "\n".join(lines) + "\n"


def _propfind_response(href: str, is_dir: bool, size: int = 0) -> str:
    resourcetype = "<d:collection/>" if is_dir else ""
    return (
        "<d:response>"
        f"<d:href>{href}</d:href>"
        "<d:propstat><d:prop>"
        f"<d:resourcetype>{resourcetype}</d:resourcetype>"
        f"<d:getcontentlength>{size}</d:getcontentlength>"
        f"<d:getlastmodified>{LAST_MODIFIED}</d:getlastmodified>"
        "</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat>"
        "</d:response>"
    )


def _as_bytes(body: Body) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else body


class FakeWebDAVServer:
    """In-memory WebDAV origin for one notes directory.

    Attributes:
        files: Main directory, filename -> body.
        daily: ``daily/`` directory, filename -> body.
        daily_missing: Answer 404 for the daily directory.
        list_failures: Directory path -> status to return for PROPFIND.
        fetch_failures: Filename -> status to return for GET.
        requests: Every request received, in order.
    """

    def __init__(self) -> None:
        self.files: Dict[str, Body] = {}
        self.daily: Dict[str, Body] = {}
        self.daily_missing = False
        self.list_failures: Dict[str, int] = {}
        self.fetch_failures: Dict[str, int] = {}
        self.requests: List[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def count(self, method: str, path: Optional[str] = None) -> int:
        return sum(
            1
            for r in self.requests
            if r.method == method and (path is None or r.url.path == path)
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "PROPFIND":
            if path in self.list_failures:
                return httpx.Response(self.list_failures[path])
            if path == BASE_PATH:
                subdirs = [] if self.daily_missing else ["daily"]
                return self._multistatus(BASE_PATH, self.files, subdirs)
            if path == DAILY_PATH:
                if self.daily_missing:
                    return httpx.Response(404)
                return self._multistatus(DAILY_PATH, self.daily, [])
            return httpx.Response(404)

        if request.method == "GET":
            if path.startswith(DAILY_PATH):
                store, name = self.daily, path[len(DAILY_PATH):]
            elif path.startswith(BASE_PATH):
                store, name = self.files, path[len(BASE_PATH):]
            else:
                return httpx.Response(404)
            if name in self.fetch_failures:
                return httpx.Response(self.fetch_failures[name])
            if name not in store:
                return httpx.Response(404)
            return httpx.Response(200, content=_as_bytes(store[name]))

        return httpx.Response(405)

    def _multistatus(
        self, dir_path: str, files: Dict[str, Body], subdirs: List[str]
    ) -> httpx.Response:
        parts = [
            '<?xml version="1.0" encoding="utf-8"?>',
            '<d:multistatus xmlns:d="DAV:">',
            _propfind_response(dir_path, is_dir=True),
        ]
        for sub in subdirs:
            parts.append(_propfind_response(f"{dir_path}{sub}/", is_dir=True))
        for name, body in files.items():
            parts.append(
                _propfind_response(
                    dir_path + quote(name), is_dir=False, size=len(_as_bytes(body))
                )
            )
        parts.append("</d:multistatus>")
        return httpx.Response(
            207,
            content="".join(parts).encode("utf-8"),
            headers={"Content-Type": "application/xml; charset=utf-8"},
        )
