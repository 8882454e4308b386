"""
Groundwave ZK - read-only synchronization and link-graph cache for an
Org-mode Zettelkasten stored on a WebDAV server.

The remote directory is the source of truth. This package parses note IDs,
titles, access directives and ``[[id:...]]`` links, and keeps in-memory
indexes (backlinks, forward links, public flags, journal, timeline) that a
background thread refreshes while lookups are served.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("groundwave-zk")
except PackageNotFoundError:
    __version__ = "0.3.0"
