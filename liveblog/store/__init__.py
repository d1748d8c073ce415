"""Entry store for live blogs.

Persists blog metadata and append-only timeline entries, and serves the
incremental fetch that polling readers depend on.
"""

from .entry_store import EntryStore
from .models import LiveBlog, PollResult, TimelineEntry
from .slugs import to_slug, unique_slug

__all__ = [
    "EntryStore",
    "LiveBlog",
    "PollResult",
    "TimelineEntry",
    "to_slug",
    "unique_slug",
]
