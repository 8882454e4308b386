"""Index builders, the cache coordinator and the note service."""

from groundwave_zk.services.cache_coordinator import ZKCacheCoordinator
from groundwave_zk.services.journal_index import JournalIndexBuilder, JournalSnapshot
from groundwave_zk.services.link_index import LinkIndexBuilder, LinkSnapshot
from groundwave_zk.services.note_service import NoteService
from groundwave_zk.services.timeline_index import TimelineIndexBuilder, TimelineSnapshot

__all__ = [
    "JournalIndexBuilder",
    "JournalSnapshot",
    "LinkIndexBuilder",
    "LinkSnapshot",
    "NoteService",
    "TimelineIndexBuilder",
    "TimelineSnapshot",
    "ZKCacheCoordinator",
]
