"""SQLite-backed store for live blogs and their timeline entries.

Every mutation of a blog draws a revision stamp from a per-blog clock that
never goes backwards: ``max(now, blog.updated_at + 1µs)``. Entry creation
times and pin-change times both come from that clock, so within one blog
the stamps are unique and strictly increasing in commit order. That is what
lets a reader use an exclusive timestamp cursor without ever skipping an
entry that was committed after its last poll.
"""

import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterator

from ..errors import (
    BlogNotFoundError,
    EntryNotFoundError,
    SlugTakenError,
    ValidationError,
)
from .models import LiveBlog, PollResult, TimelineEntry, format_ts, parse_ts, utcnow
from .slugs import to_slug, unique_slug

logger = logging.getLogger(__name__)

STORE_SCHEMA = """
CREATE TABLE IF NOT EXISTS live_blogs (
    id TEXT PRIMARY KEY,
    slug TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    excerpt TEXT NOT NULL DEFAULT '',
    body TEXT NOT NULL DEFAULT '',
    summary TEXT NOT NULL DEFAULT '',
    cover_image_url TEXT,
    cover_image_alt TEXT,
    is_live INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS timeline_entries (
    id TEXT PRIMARY KEY,
    blog_id TEXT NOT NULL REFERENCES live_blogs(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    modified_at TEXT NOT NULL,
    content TEXT NOT NULL,
    image_url TEXT,
    image_alt TEXT,
    author_name TEXT,
    is_pinned INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_entries_created ON timeline_entries(blog_id, created_at);
CREATE INDEX IF NOT EXISTS idx_entries_modified ON timeline_entries(blog_id, modified_at);
CREATE INDEX IF NOT EXISTS idx_blogs_live ON live_blogs(is_live);
"""

STAMP_STEP = timedelta(microseconds=1)

# Columns an editor may change through update_blog()
UPDATABLE_BLOG_FIELDS = {
    "title",
    "slug",
    "excerpt",
    "body",
    "summary",
    "cover_image_url",
    "cover_image_alt",
    "is_live",
}

NON_NULLABLE_BLOG_FIELDS = ("title", "slug", "is_live")

ENTRY_COLUMNS = (
    "id, blog_id, created_at, content, image_url, image_alt, author_name, is_pinned"
)


def _row_to_blog(row: sqlite3.Row) -> LiveBlog:
    return LiveBlog(
        id=row["id"],
        slug=row["slug"],
        title=row["title"],
        excerpt=row["excerpt"],
        body=row["body"],
        summary=row["summary"],
        cover_image_url=row["cover_image_url"],
        cover_image_alt=row["cover_image_alt"],
        is_live=bool(row["is_live"]),
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row["updated_at"]),
    )


def _row_to_entry(row: sqlite3.Row) -> TimelineEntry:
    return TimelineEntry(
        id=row["id"],
        blog_id=row["blog_id"],
        created_at=parse_ts(row["created_at"]),
        content=row["content"],
        image_url=row["image_url"],
        image_alt=row["image_alt"],
        author_name=row["author_name"],
        is_pinned=bool(row["is_pinned"]),
    )


class EntryStore:
    """Persistent store for live blogs and timeline entries.

    A single connection is shared between threads and guarded by a lock;
    each write runs in its own ``BEGIN IMMEDIATE`` transaction so appends
    and pin toggles are atomic per entry even with several processes
    writing to the same database file.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(
            str(self.db_path), check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(STORE_SCHEMA)

        logger.info(f"EntryStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of writes atomically."""
        with self._lock:
            conn = self._ensure_connected()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _next_stamp(self, conn: sqlite3.Connection, blog_id: str) -> datetime:
        """Advance the blog's revision clock and return the new stamp."""
        row = conn.execute(
            "SELECT updated_at FROM live_blogs WHERE id = ?", (blog_id,)
        ).fetchone()
        if row is None:
            raise BlogNotFoundError(blog_id)

        stamp = max(utcnow(), parse_ts(row["updated_at"]) + STAMP_STEP)
        conn.execute(
            "UPDATE live_blogs SET updated_at = ? WHERE id = ?",
            (format_ts(stamp), blog_id),
        )
        return stamp

    def _slug_taken(self, conn: sqlite3.Connection, slug: str, exclude_id: str | None = None) -> bool:
        row = conn.execute("SELECT id FROM live_blogs WHERE slug = ?", (slug,)).fetchone()
        return row is not None and row["id"] != exclude_id

    # ==================== Blogs ====================

    def create_blog(
        self,
        title: str,
        slug: str | None = None,
        excerpt: str = "",
        body: str = "",
        cover_image_url: str | None = None,
        cover_image_alt: str | None = None,
        is_live: bool = True,
    ) -> LiveBlog:
        """Create a new live blog.

        Args:
            title: Headline, required.
            slug: URL slug. Generated from the title when omitted.
            excerpt: Short standfirst shown in listings.
            body: Introductory rich text shown above the timeline.
            cover_image_url: Optional cover image.
            cover_image_alt: Alt text for the cover image.
            is_live: Whether coverage starts live.

        Returns:
            The created LiveBlog.

        Raises:
            ValidationError: If the title is empty.
            SlugTakenError: If an explicit slug is already used.
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")

        with self._transaction() as conn:
            if slug:
                slug = to_slug(slug)
                if not slug:
                    raise ValidationError("Slug must contain letters or digits")
                if self._slug_taken(conn, slug):
                    raise SlugTakenError(slug)
            else:
                slug = unique_slug(title, lambda s: self._slug_taken(conn, s))

            now = utcnow()
            blog = LiveBlog(
                id=uuid.uuid4().hex,
                slug=slug,
                title=title,
                excerpt=excerpt or "",
                body=body or "",
                cover_image_url=cover_image_url,
                cover_image_alt=cover_image_alt,
                is_live=is_live,
                created_at=now,
                updated_at=now,
            )
            conn.execute(
                """
                INSERT INTO live_blogs (
                    id, slug, title, excerpt, body, summary, cover_image_url,
                    cover_image_alt, is_live, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, '', ?, ?, ?, ?, ?)
                """,
                (
                    blog.id,
                    blog.slug,
                    blog.title,
                    blog.excerpt,
                    blog.body,
                    blog.cover_image_url,
                    blog.cover_image_alt,
                    int(blog.is_live),
                    format_ts(blog.created_at),
                    format_ts(blog.updated_at),
                ),
            )

        logger.info(f"Created live blog {blog.id} ({blog.slug})")
        return blog

    def get_blog(self, blog_id: str) -> LiveBlog:
        """Get a live blog by id."""
        with self._lock:
            conn = self._ensure_connected()
            row = conn.execute(
                "SELECT * FROM live_blogs WHERE id = ?", (blog_id,)
            ).fetchone()
        if row is None:
            raise BlogNotFoundError(blog_id)
        return _row_to_blog(row)

    def get_blog_by_slug(self, slug: str) -> LiveBlog:
        """Get a live blog by its slug."""
        with self._lock:
            conn = self._ensure_connected()
            row = conn.execute(
                "SELECT * FROM live_blogs WHERE slug = ?", (slug,)
            ).fetchone()
        if row is None:
            raise BlogNotFoundError(slug)
        return _row_to_blog(row)

    def list_blogs(self, status: str | None = None, limit: int = 50) -> list[LiveBlog]:
        """List live blogs, most recently updated first.

        Args:
            status: "live", "ended", or None for both.
            limit: Maximum blogs to return.
        """
        query = "SELECT * FROM live_blogs"
        params: list[Any] = []
        if status == "live":
            query += " WHERE is_live = 1"
        elif status == "ended":
            query += " WHERE is_live = 0"
        elif status not in (None, "", "all"):
            raise ValidationError(f"Unknown status filter: {status}")
        query += " ORDER BY updated_at DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            conn = self._ensure_connected()
            rows = conn.execute(query, params).fetchall()
        return [_row_to_blog(r) for r in rows]

    def update_blog(self, blog_id: str, **fields: Any) -> LiveBlog:
        """Update blog metadata, live flag or summary.

        Returns:
            The updated LiveBlog.

        Raises:
            ValidationError: On unknown fields, an empty title or a slug
                without letters or digits.
            SlugTakenError: If the new slug belongs to another blog.
        """
        unknown = set(fields) - UPDATABLE_BLOG_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        # null means "leave unchanged" for fields that cannot be cleared
        for key in NON_NULLABLE_BLOG_FIELDS:
            if key in fields and fields[key] is None:
                del fields[key]
        if "title" in fields and not (fields["title"] or "").strip():
            raise ValidationError("Title is required")

        with self._transaction() as conn:
            # Raises BlogNotFoundError before anything is written
            self._next_stamp(conn, blog_id)

            if "slug" in fields:
                fields["slug"] = to_slug(fields["slug"])
                if not fields["slug"]:
                    raise ValidationError("Slug must contain letters or digits")
                if self._slug_taken(conn, fields["slug"], exclude_id=blog_id):
                    raise SlugTakenError(fields["slug"])

            if "is_live" in fields:
                fields["is_live"] = int(bool(fields["is_live"]))
            for key in ("excerpt", "body", "summary"):
                if key in fields and fields[key] is None:
                    fields[key] = ""

            if fields:
                assignments = ", ".join(f"{k} = ?" for k in fields)
                conn.execute(
                    f"UPDATE live_blogs SET {assignments} WHERE id = ?",
                    (*fields.values(), blog_id),
                )

            row = conn.execute(
                "SELECT * FROM live_blogs WHERE id = ?", (blog_id,)
            ).fetchone()

        blog = _row_to_blog(row)
        logger.debug(f"Updated live blog {blog_id}: {sorted(fields)}")
        return blog

    def delete_blog(self, blog_id: str) -> None:
        """Delete a blog together with all of its entries."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM timeline_entries WHERE blog_id = ?", (blog_id,))
            cursor = conn.execute("DELETE FROM live_blogs WHERE id = ?", (blog_id,))
            if cursor.rowcount == 0:
                raise BlogNotFoundError(blog_id)
        logger.info(f"Deleted live blog {blog_id}")

    def generate_slug(self, title: str, blog_id: str | None = None) -> str:
        """Suggest a unique slug for a title.

        A slug already owned by ``blog_id`` counts as free, so editing a
        blog keeps its own slug.
        """
        if not (title or "").strip():
            raise ValidationError("Title is required")
        with self._lock:
            conn = self._ensure_connected()
            return unique_slug(title, lambda s: self._slug_taken(conn, s, exclude_id=blog_id))

    # ==================== Entries ====================

    def append_entry(
        self,
        blog_id: str,
        content: str,
        image_url: str | None = None,
        image_alt: str | None = None,
        author_name: str | None = None,
    ) -> TimelineEntry:
        """Append a new entry to a blog's timeline.

        The id and creation time are assigned here; callers cannot supply them.

        Returns:
            The created TimelineEntry.
        """
        if not (content or "").strip():
            raise ValidationError("Entry content is required")

        with self._transaction() as conn:
            stamp = self._next_stamp(conn, blog_id)
            entry = TimelineEntry(
                id=uuid.uuid4().hex,
                blog_id=blog_id,
                created_at=stamp,
                content=content,
                image_url=image_url or None,
                image_alt=image_alt or None,
                author_name=author_name or None,
                is_pinned=False,
            )
            conn.execute(
                """
                INSERT INTO timeline_entries (
                    id, blog_id, created_at, modified_at, content,
                    image_url, image_alt, author_name, is_pinned
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)
                """,
                (
                    entry.id,
                    entry.blog_id,
                    format_ts(stamp),
                    format_ts(stamp),
                    entry.content,
                    entry.image_url,
                    entry.image_alt,
                    entry.author_name,
                ),
            )

        logger.debug(f"Appended entry {entry.id} to {blog_id} at {format_ts(stamp)}")
        return entry

    def get_entry(self, blog_id: str, entry_id: str) -> TimelineEntry:
        """Get one entry of a blog."""
        with self._lock:
            conn = self._ensure_connected()
            row = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM timeline_entries WHERE id = ? AND blog_id = ?",
                (entry_id, blog_id),
            ).fetchone()
        if row is None:
            raise EntryNotFoundError(blog_id, entry_id)
        return _row_to_entry(row)

    def set_pinned(self, blog_id: str, entry_id: str, is_pinned: bool) -> TimelineEntry:
        """Pin or unpin an entry. Creation time and ordering are unchanged."""
        with self._transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM timeline_entries WHERE id = ? AND blog_id = ?",
                (entry_id, blog_id),
            ).fetchone()
            if exists is None:
                raise EntryNotFoundError(blog_id, entry_id)

            stamp = self._next_stamp(conn, blog_id)
            conn.execute(
                """
                UPDATE timeline_entries SET is_pinned = ?, modified_at = ?
                WHERE id = ? AND blog_id = ?
                """,
                (int(bool(is_pinned)), format_ts(stamp), entry_id, blog_id),
            )
            row = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM timeline_entries WHERE id = ?",
                (entry_id,),
            ).fetchone()

        logger.debug(f"Entry {entry_id} pinned={bool(is_pinned)}")
        return _row_to_entry(row)

    def delete_entry(self, blog_id: str, entry_id: str) -> None:
        """Permanently remove an entry."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM timeline_entries WHERE id = ? AND blog_id = ?",
                (entry_id, blog_id),
            )
            if cursor.rowcount == 0:
                raise EntryNotFoundError(blog_id, entry_id)
            self._next_stamp(conn, blog_id)
        logger.debug(f"Deleted entry {entry_id} from {blog_id}")

    def poll_entries(
        self,
        blog_id: str,
        since: datetime | None = None,
        changed_since: datetime | None = None,
    ) -> PollResult:
        """Fetch entries for a reader.

        Without ``since`` the full entry set is returned. With ``since``,
        only entries created strictly after it are returned, plus known
        entries whose pin state changed strictly after ``changed_since``.
        Entries are ordered newest first, ties broken by id.

        ``changed_since`` should be the ``revision`` of the reader's last
        poll. When it is omitted, ``since`` is used instead, which re-sends
        a pin change on every poll until a newer entry is appended.

        Args:
            blog_id: Blog to read.
            since: Exclusive cursor, the newest creation time the reader holds.
            changed_since: Exclusive revision cursor for pin changes.

        Returns:
            PollResult carrying the entries, the live flag, the blog's
            revision at read time and, once the blog has ended, its summary.
        """
        with self._lock:
            conn = self._ensure_connected()
            blog_row = conn.execute(
                "SELECT * FROM live_blogs WHERE id = ?", (blog_id,)
            ).fetchone()
            if blog_row is None:
                raise BlogNotFoundError(blog_id)

            if since is None:
                rows = conn.execute(
                    f"""
                    SELECT {ENTRY_COLUMNS} FROM timeline_entries
                    WHERE blog_id = ?
                    ORDER BY created_at DESC, id DESC
                    """,
                    (blog_id,),
                ).fetchall()
            else:
                created_ts = format_ts(since)
                changed_ts = format_ts(changed_since or since)
                rows = conn.execute(
                    f"""
                    SELECT {ENTRY_COLUMNS} FROM timeline_entries
                    WHERE blog_id = ? AND (created_at > ? OR modified_at > ?)
                    ORDER BY created_at DESC, id DESC
                    """,
                    (blog_id, created_ts, changed_ts),
                ).fetchall()

        blog = _row_to_blog(blog_row)
        return PollResult(
            entries=[_row_to_entry(r) for r in rows],
            is_live=blog.is_live,
            summary=None if blog.is_live else (blog.summary or None),
            revision=blog.updated_at,
        )

    def load_blog(self, slug: str) -> tuple[LiveBlog, list[TimelineEntry]]:
        """Full load of a blog and all its entries, newest first.

        The blog's ``updated_at`` is its revision at read time.
        """
        with self._lock:
            blog = self.get_blog_by_slug(slug)
            result = self.poll_entries(blog.id)
        return blog, result.entries

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            conn = self._ensure_connected()
            stats = {
                "blog_count": conn.execute("SELECT COUNT(*) FROM live_blogs").fetchone()[0],
                "live_blog_count": conn.execute(
                    "SELECT COUNT(*) FROM live_blogs WHERE is_live = 1"
                ).fetchone()[0],
                "entry_count": conn.execute(
                    "SELECT COUNT(*) FROM timeline_entries"
                ).fetchone()[0],
                "pinned_entry_count": conn.execute(
                    "SELECT COUNT(*) FROM timeline_entries WHERE is_pinned = 1"
                ).fetchone()[0],
            }
        return stats
