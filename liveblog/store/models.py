"""Data types shared by the entry store, the HTTP API and the sync client."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(ts: datetime) -> str:
    """Serialize a timestamp in a fixed-width form so string order matches time order."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_ts(value: str | datetime) -> datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    ts = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass
class TimelineEntry:
    """A single timestamped update within a live blog."""

    id: str
    blog_id: str
    created_at: datetime  # Assigned by the store, never changes
    content: str
    image_url: str | None = None
    image_alt: str | None = None
    author_name: str | None = None
    is_pinned: bool = False

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Total order key: creation time, then id."""
        return (self.created_at, self.id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "blog_id": self.blog_id,
            "created_at": format_ts(self.created_at),
            "content": self.content,
            "image_url": self.image_url,
            "image_alt": self.image_alt,
            "author_name": self.author_name,
            "is_pinned": self.is_pinned,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimelineEntry":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            blog_id=data.get("blog_id", ""),
            created_at=parse_ts(data["created_at"]),
            content=data.get("content", ""),
            image_url=data.get("image_url"),
            image_alt=data.get("image_alt"),
            author_name=data.get("author_name"),
            is_pinned=bool(data.get("is_pinned", False)),
        )


@dataclass
class LiveBlog:
    """Metadata for one ongoing-coverage document."""

    id: str
    slug: str
    title: str
    excerpt: str = ""
    body: str = ""
    summary: str = ""  # Recap, meaningful once the blog has ended
    cover_image_url: str | None = None
    cover_image_alt: str | None = None
    is_live: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "excerpt": self.excerpt,
            "body": self.body,
            "summary": self.summary,
            "cover_image_url": self.cover_image_url,
            "cover_image_alt": self.cover_image_alt,
            "is_live": self.is_live,
            "created_at": format_ts(self.created_at),
            "updated_at": format_ts(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LiveBlog":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            slug=data["slug"],
            title=data.get("title", ""),
            excerpt=data.get("excerpt") or "",
            body=data.get("body") or "",
            summary=data.get("summary") or "",
            cover_image_url=data.get("cover_image_url"),
            cover_image_alt=data.get("cover_image_alt"),
            is_live=bool(data.get("is_live", True)),
            created_at=parse_ts(data["created_at"]) if data.get("created_at") else utcnow(),
            updated_at=parse_ts(data["updated_at"]) if data.get("updated_at") else utcnow(),
        )


@dataclass
class PollResult:
    """Response of an incremental fetch.

    ``entries`` are newest first. ``summary`` is only set once the blog
    has ended so the recap arrives together with the state change.
    ``revision`` is the blog's revision stamp at read time; passing it
    back as ``changed_since`` stops pin changes from being re-sent.
    """

    entries: list[TimelineEntry]
    is_live: bool
    summary: str | None = None
    revision: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "is_live": self.is_live,
            "summary": self.summary,
            "revision": format_ts(self.revision) if self.revision else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PollResult":
        return cls(
            entries=[TimelineEntry.from_dict(e) for e in data.get("entries", [])],
            is_live=bool(data.get("is_live", False)),
            summary=data.get("summary"),
            revision=parse_ts(data["revision"]) if data.get("revision") else None,
        )
