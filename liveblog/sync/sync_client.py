"""Viewer-side synchronization for a single live blog.

A SyncClient is owned by one view: created when the blog is opened and
stopped when the viewer leaves or switches to another slug. It loads the
blog once, then polls the entry source while coverage is live, merging
new entries into its local timeline.

State machine::

    IDLE -> LOADING -> LIVE  -> ENDED
                    -> ENDED
                    -> ERROR
    any  -> STOPPED (stop())
"""

import logging
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from ..errors import LiveBlogError
from ..store.models import LiveBlog, PollResult, format_ts
from .scheduler import AsyncioScheduler, ScheduledCall, Scheduler
from .source import EntrySource
from .timeline import MergeResult, SyncCursor, Timeline

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_NEW_ENTRIES_TIMEOUT = 5.0


class SyncState(Enum):
    """Lifecycle state of a SyncClient."""

    IDLE = "idle"  # Not started
    LOADING = "loading"
    LIVE = "live"  # Polling
    ENDED = "ended"  # Coverage over, no polling
    ERROR = "error"  # Initial load failed
    STOPPED = "stopped"  # Disposed


class SyncClient:
    """Keeps a local timeline in step with the entry source.

    At most one poll is in flight at a time: the next tick is only
    scheduled once the previous fetch has settled. Poll failures are
    logged and retried on the next tick without leaving the LIVE state.
    Responses that arrive after ``stop()`` or ``switch_slug()`` are dropped.
    """

    def __init__(
        self,
        source: EntrySource,
        slug: str,
        scheduler: Scheduler | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        new_entries_timeout: float = DEFAULT_NEW_ENTRIES_TIMEOUT,
        on_change: Callable[["SyncClient"], None] | None = None,
    ):
        """Initialize the sync client.

        Args:
            source: Where entries are loaded and polled from.
            slug: Slug of the blog to follow.
            scheduler: Timer implementation. Defaults to the asyncio loop.
            poll_interval: Seconds between polls while live.
            new_entries_timeout: Seconds before the new-entries counter clears itself.
            on_change: Called after every state update visible to the presenter.
        """
        self.source = source
        self.slug = slug
        self.scheduler = scheduler or AsyncioScheduler()
        self.poll_interval = poll_interval
        self.new_entries_timeout = new_entries_timeout
        self.on_change = on_change

        self.state = SyncState.IDLE
        self.blog: LiveBlog | None = None
        self.timeline = Timeline()
        self.cursor = SyncCursor()
        self.new_entries_count = 0
        self.error: LiveBlogError | None = None

        self._generation = 0
        self._poll_call: ScheduledCall | None = None
        self._clear_call: ScheduledCall | None = None
        self._polling = False
        self._last_sync: datetime | None = None
        self._revision: datetime | None = None  # Blog revision seen by the last load or poll
        self._consecutive_failures = 0

    @property
    def is_live(self) -> bool:
        return self.state == SyncState.LIVE

    @property
    def summary(self) -> str:
        """Recap text once coverage has ended, empty otherwise."""
        if self.state == SyncState.ENDED and self.blog:
            return self.blog.summary
        return ""

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last successful load or poll."""
        return self._last_sync

    @property
    def _log_context(self) -> dict[str, Any]:
        return {"slug": self.slug, "blog_id": self.blog.id if self.blog else None}

    def _notify(self) -> None:
        if self.on_change:
            self.on_change(self)

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Load the blog and start polling if it is live.

        A failed load leaves the client in ERROR; there is no retry.
        """
        if self.state != SyncState.IDLE:
            return

        generation = self._generation
        self.state = SyncState.LOADING
        self._notify()

        try:
            blog, entries = await self.source.load_blog(self.slug)
        except LiveBlogError as e:
            if generation != self._generation:
                logger.debug(f"Discarding failed load of {self.slug} after teardown")
                return
            logger.error(f"Failed to load live blog {self.slug}: {e}", extra={"slug": self.slug})
            self.state = SyncState.ERROR
            self.error = e
            self._notify()
            return

        if generation != self._generation:
            logger.debug(f"Discarding load of {self.slug} after teardown")
            return

        self.blog = blog
        self.timeline.replace(entries)
        self.cursor.reset()
        self.cursor.advance(self.timeline.newest_created_at)
        self._revision = blog.updated_at
        self._last_sync = datetime.now()

        if blog.is_live:
            self.state = SyncState.LIVE
            self._schedule_poll()
        else:
            self.state = SyncState.ENDED

        logger.info(
            f"Loaded live blog {self.slug}: {len(self.timeline)} entries, "
            f"state={self.state.value}",
            extra=self._log_context,
        )
        self._notify()

    def stop(self) -> None:
        """Dispose the client: cancel timers and ignore any late responses."""
        self._generation += 1
        self._cancel_poll()
        self._cancel_clear()
        self._polling = False
        if self.state != SyncState.STOPPED:
            logger.debug(f"Sync client for {self.slug} stopped")
        self.state = SyncState.STOPPED

    async def switch_slug(self, slug: str) -> None:
        """Follow a different blog. Equivalent to stop() plus a fresh client."""
        self.stop()
        self.slug = slug
        self.blog = None
        self.timeline = Timeline()
        self.cursor.reset()
        self.new_entries_count = 0
        self._revision = None
        self.error = None
        self._consecutive_failures = 0
        self.state = SyncState.IDLE
        await self.start()

    # ==================== Polling ====================

    def _schedule_poll(self) -> None:
        self._cancel_poll()
        self._poll_call = self.scheduler.schedule(self.poll_interval, self._on_tick)

    def _cancel_poll(self) -> None:
        if self._poll_call:
            self._poll_call.cancel()
            self._poll_call = None

    async def _on_tick(self) -> None:
        generation = self._generation
        self._poll_call = None
        try:
            await self.poll_now()
        except Exception as e:
            logger.error(f"Unexpected error while polling {self.slug}: {e}", exc_info=True)

        if generation == self._generation and self.state == SyncState.LIVE:
            self._schedule_poll()

    async def poll_now(self) -> MergeResult | None:
        """Run one incremental fetch and merge the result.

        Returns:
            The merge result, or None if nothing was applied (not live,
            a poll already in flight, fetch failed, or client torn down).
        """
        if self.state != SyncState.LIVE or self._polling or self.blog is None:
            return None

        generation = self._generation
        since = self.cursor.last_seen_created_at
        self._polling = True
        try:
            result = await self.source.poll_entries(
                self.blog.id, since, changed_since=self._revision
            )
        except LiveBlogError as e:
            if generation == self._generation:
                self._consecutive_failures += 1
                logger.warning(
                    f"Poll of {self.slug} failed ({e}), retrying in {self.poll_interval}s",
                    extra=self._log_context,
                )
            return None
        finally:
            if generation == self._generation:
                self._polling = False

        if generation != self._generation:
            logger.debug(f"Discarding poll response for {self.slug} after teardown")
            return None

        return self._apply(result)

    def _apply(self, result: PollResult) -> MergeResult:
        """Merge a poll response and handle the live/ended transition."""
        merge = self.timeline.merge(result.entries)
        self.cursor.advance(self.timeline.newest_created_at)
        self._consecutive_failures = 0
        if result.revision and (self._revision is None or result.revision > self._revision):
            self._revision = result.revision
        self._last_sync = datetime.now()

        if merge.added:
            self.new_entries_count += len(merge.added)
            self._arm_clear()

        if not result.is_live:
            self.blog = replace(self.blog, is_live=False, summary=result.summary or "")
            self.state = SyncState.ENDED
            self._cancel_poll()
            logger.info(
                f"Live blog {self.slug} has ended, polling stopped", extra=self._log_context
            )

        if merge.changed or not result.is_live:
            self._notify()
        return merge

    # ==================== New-entries counter ====================

    def _arm_clear(self) -> None:
        self._cancel_clear()
        self._clear_call = self.scheduler.schedule(
            self.new_entries_timeout, self._clear_new_entries
        )

    def _cancel_clear(self) -> None:
        if self._clear_call:
            self._clear_call.cancel()
            self._clear_call = None

    async def _clear_new_entries(self) -> None:
        self._clear_call = None
        if self.new_entries_count:
            self.new_entries_count = 0
            self._notify()

    def acknowledge_new_entries(self) -> None:
        """Clear the new-entries counter, e.g. when the reader scrolls to the top."""
        self._cancel_clear()
        if self.new_entries_count:
            self.new_entries_count = 0
            self._notify()

    def get_sync_status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dictionary with sync statistics.
        """
        cursor = self.cursor.last_seen_created_at
        return {
            "slug": self.slug,
            "state": self.state.value,
            "blog_id": self.blog.id if self.blog else None,
            "cursor": format_ts(cursor) if cursor else None,
            "revision": format_ts(self._revision) if self._revision else None,
            "entries": len(self.timeline),
            "pinned": len(self.timeline.pinned),
            "new_entries": self.new_entries_count,
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "consecutive_failures": self._consecutive_failures,
            "error": str(self.error) if self.error else None,
        }
