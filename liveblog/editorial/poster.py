"""Editorial actions on a live blog: posting, pinning, deleting, ending coverage."""

import logging
from typing import Any

from ..errors import LiveBlogError, WriteError
from ..store.models import TimelineEntry
from ..sync.source import EntrySource

logger = logging.getLogger(__name__)


class EditorialPoster:
    """Writes to a live blog on behalf of an editor.

    Every method either succeeds or raises WriteError with a message fit
    to show the editor. Nothing is changed locally before the write is
    confirmed, so a failure needs no rollback.
    """

    def __init__(self, source: EntrySource, author_name: str | None = None):
        """Initialize the poster.

        Args:
            source: Entry source to write through.
            author_name: Default byline for new entries.
        """
        self.source = source
        self.author_name = author_name

    async def _write(self, action: str, blog_id: str, coro) -> Any:
        try:
            return await coro
        except LiveBlogError as e:
            logger.error(f"Failed to {action}: {e}", extra={"blog_id": blog_id})
            raise WriteError(action, e) from e

    async def post_entry(
        self,
        blog_id: str,
        content: str,
        image_url: str | None = None,
        image_alt: str | None = None,
        author_name: str | None = None,
    ) -> TimelineEntry:
        """Append an entry and return it as stored, with its id and timestamp."""
        entry = await self._write(
            "post entry",
            blog_id,
            self.source.append_entry(
                blog_id,
                content,
                image_url=image_url,
                image_alt=image_alt,
                author_name=author_name or self.author_name,
            ),
        )
        logger.info(
            f"Posted entry {entry.id} to {blog_id}",
            extra={"blog_id": blog_id, "entry_id": entry.id},
        )
        return entry

    async def pin_entry(self, blog_id: str, entry_id: str) -> None:
        await self._write("pin entry", blog_id, self.source.set_pinned(blog_id, entry_id, True))
        logger.info(
            f"Pinned entry {entry_id}", extra={"blog_id": blog_id, "entry_id": entry_id}
        )

    async def unpin_entry(self, blog_id: str, entry_id: str) -> None:
        await self._write("unpin entry", blog_id, self.source.set_pinned(blog_id, entry_id, False))
        logger.info(
            f"Unpinned entry {entry_id}", extra={"blog_id": blog_id, "entry_id": entry_id}
        )

    async def delete_entry(self, blog_id: str, entry_id: str) -> None:
        """Permanently delete an entry.

        Readers that already hold it keep showing it until they reload.
        """
        await self._write("delete entry", blog_id, self.source.delete_entry(blog_id, entry_id))
        logger.info(
            f"Deleted entry {entry_id}", extra={"blog_id": blog_id, "entry_id": entry_id}
        )

    async def end_coverage(self, blog_id: str, summary: str | None = None) -> None:
        """Mark the blog as ended, storing the recap first when given.

        The summary and the flag go out in one update, so a poll sees
        either the live blog or the ended blog with its recap.
        """
        fields: dict[str, Any] = {"is_live": False}
        if summary is not None:
            fields["summary"] = summary
        await self._write("end coverage", blog_id, self.source.update_blog(blog_id, **fields))
        logger.info(f"Ended coverage of {blog_id}")

    async def reopen_coverage(self, blog_id: str) -> None:
        """Set the blog live again.

        Readers that already saw it end do not resume polling until reload.
        """
        await self._write(
            "reopen coverage", blog_id, self.source.update_blog(blog_id, is_live=True)
        )
        logger.info(f"Reopened coverage of {blog_id}")

    async def update_blog(self, blog_id: str, **fields: Any) -> None:
        """Update title, excerpt, body, cover image or summary."""
        await self._write("update live blog", blog_id, self.source.update_blog(blog_id, **fields))
