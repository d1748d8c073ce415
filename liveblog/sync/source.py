"""Entry source abstraction shared by the sync client and the editorial poster."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ..store import EntryStore
from ..store.models import LiveBlog, PollResult, TimelineEntry


class EntrySource(ABC):
    """Async access to the entry store, local or remote."""

    @abstractmethod
    async def load_blog(self, slug: str) -> tuple[LiveBlog, list[TimelineEntry]]:
        """Full load of a blog and its entries, newest first."""
        pass

    @abstractmethod
    async def poll_entries(
        self,
        blog_id: str,
        since: datetime | None = None,
        changed_since: datetime | None = None,
    ) -> PollResult:
        """Incremental fetch of entries newer than ``since``.

        Entries whose pin state changed after ``changed_since`` (the
        ``revision`` of the previous poll) are included again.
        """
        pass

    @abstractmethod
    async def append_entry(
        self,
        blog_id: str,
        content: str,
        image_url: str | None = None,
        image_alt: str | None = None,
        author_name: str | None = None,
    ) -> TimelineEntry:
        """Append an entry. Returns it with its assigned id and timestamp."""
        pass

    @abstractmethod
    async def set_pinned(self, blog_id: str, entry_id: str, is_pinned: bool) -> None:
        pass

    @abstractmethod
    async def delete_entry(self, blog_id: str, entry_id: str) -> None:
        pass

    @abstractmethod
    async def update_blog(self, blog_id: str, **fields: Any) -> None:
        """Update blog metadata, live flag or summary."""
        pass


class StoreEntrySource(EntrySource):
    """In-process source reading straight from an EntryStore."""

    def __init__(self, store: EntryStore):
        self.store = store

    async def load_blog(self, slug: str) -> tuple[LiveBlog, list[TimelineEntry]]:
        return self.store.load_blog(slug)

    async def poll_entries(
        self,
        blog_id: str,
        since: datetime | None = None,
        changed_since: datetime | None = None,
    ) -> PollResult:
        return self.store.poll_entries(blog_id, since, changed_since)

    async def append_entry(
        self,
        blog_id: str,
        content: str,
        image_url: str | None = None,
        image_alt: str | None = None,
        author_name: str | None = None,
    ) -> TimelineEntry:
        return self.store.append_entry(
            blog_id,
            content,
            image_url=image_url,
            image_alt=image_alt,
            author_name=author_name,
        )

    async def set_pinned(self, blog_id: str, entry_id: str, is_pinned: bool) -> None:
        self.store.set_pinned(blog_id, entry_id, is_pinned)

    async def delete_entry(self, blog_id: str, entry_id: str) -> None:
        self.store.delete_entry(blog_id, entry_id)

    async def update_blog(self, blog_id: str, **fields: Any) -> None:
        self.store.update_blog(blog_id, **fields)
