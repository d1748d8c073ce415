"""Viewer-side synchronization for live blogs.

Polls an entry source while a blog is live and merges new timeline
entries into local state without duplicates or reordering.
"""

from .http_source import HttpEntrySource
from .scheduler import AsyncioScheduler, ScheduledCall, Scheduler
from .source import EntrySource, StoreEntrySource
from .sync_client import SyncClient, SyncState
from .timeline import MergeResult, SyncCursor, Timeline

__all__ = [
    "AsyncioScheduler",
    "EntrySource",
    "HttpEntrySource",
    "MergeResult",
    "ScheduledCall",
    "Scheduler",
    "StoreEntrySource",
    "SyncClient",
    "SyncCursor",
    "SyncState",
    "Timeline",
]
