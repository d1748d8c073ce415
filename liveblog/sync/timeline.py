"""Local timeline state held by a viewer and the merge that updates it."""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime

from ..store.models import TimelineEntry

logger = logging.getLogger(__name__)


@dataclass
class SyncCursor:
    """Creation time of the newest entry incorporated so far.

    Only ever moves forward during a session; ``reset`` is for full reloads.
    """

    last_seen_created_at: datetime | None = None

    def advance(self, created_at: datetime | None) -> bool:
        """Move the cursor to ``created_at`` if it is newer.

        Returns:
            True if the cursor moved.
        """
        if created_at is None:
            return False
        if self.last_seen_created_at is None or created_at > self.last_seen_created_at:
            self.last_seen_created_at = created_at
            return True
        return False

    def reset(self) -> None:
        self.last_seen_created_at = None


@dataclass
class MergeResult:
    """Outcome of merging one fetch into the timeline."""

    added: list[TimelineEntry] = field(default_factory=list)
    updated: list[TimelineEntry] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated)


class Timeline:
    """Ordered, duplicate-free list of entries, newest first."""

    def __init__(self, entries: list[TimelineEntry] | None = None):
        self._entries: list[TimelineEntry] = []
        self._index: dict[str, int] = {}
        if entries:
            self.replace(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._index

    def __iter__(self):
        return iter(self._entries)

    @property
    def entries(self) -> list[TimelineEntry]:
        return list(self._entries)

    def get(self, entry_id: str) -> TimelineEntry | None:
        pos = self._index.get(entry_id)
        return self._entries[pos] if pos is not None else None

    def _reindex(self) -> None:
        self._index = {e.id: i for i, e in enumerate(self._entries)}

    def replace(self, entries: list[TimelineEntry]) -> None:
        """Replace the whole timeline, as on a full load."""
        seen: set[str] = set()
        unique = []
        for entry in entries:
            if entry.id not in seen:
                seen.add(entry.id)
                unique.append(entry)
        self._entries = sorted(unique, key=lambda e: e.sort_key, reverse=True)
        self._reindex()

    def merge(self, fetched: list[TimelineEntry]) -> MergeResult:
        """Merge entries from an incremental fetch.

        Entries whose id is already held update the local copy in place
        (pin state is the only field that changes after creation). The
        rest are prepended in the order the store returned them. Merging
        the same fetch twice is a no-op.
        """
        result = MergeResult()
        fresh: list[TimelineEntry] = []
        fresh_ids: set[str] = set()

        for entry in fetched:
            pos = self._index.get(entry.id)
            if pos is not None:
                current = self._entries[pos]
                if current.is_pinned != entry.is_pinned:
                    updated = replace(current, is_pinned=entry.is_pinned)
                    self._entries[pos] = updated
                    result.updated.append(updated)
                continue
            if entry.id in fresh_ids:
                continue
            fresh_ids.add(entry.id)
            fresh.append(entry)

        if fresh:
            self._entries = fresh + self._entries
            self._reindex()
            result.added = fresh

        if result.changed:
            logger.debug(
                f"Merged {len(result.added)} new, {len(result.updated)} updated entries"
            )
        return result

    @property
    def newest_created_at(self) -> datetime | None:
        if not self._entries:
            return None
        return max(e.created_at for e in self._entries)

    @property
    def pinned(self) -> list[TimelineEntry]:
        """Pinned entries, shown above the regular timeline."""
        return [e for e in self._entries if e.is_pinned]

    @property
    def chronological(self) -> list[TimelineEntry]:
        """Unpinned entries, newest first."""
        return [e for e in self._entries if not e.is_pinned]

    def grouped_by_day(self) -> list[tuple[date, list[TimelineEntry]]]:
        """Unpinned entries grouped by UTC calendar day, newest day first."""
        groups: list[tuple[date, list[TimelineEntry]]] = []
        for entry in self.chronological:
            day = entry.created_at.date()
            if groups and groups[-1][0] == day:
                groups[-1][1].append(entry)
            else:
                groups.append((day, [entry]))
        return groups
