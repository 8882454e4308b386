"""Storage layer: WebDAV access, Org parsing and rendering, ID resolution."""

from groundwave_zk.storage.id_resolver import IDResolver
from groundwave_zk.storage.org_renderer import OrgRenderer, render_html
from groundwave_zk.storage.webdav_client import BodyMemo, WebDAVClient

__all__ = [
    "BodyMemo",
    "IDResolver",
    "OrgRenderer",
    "WebDAVClient",
    "render_html",
]
