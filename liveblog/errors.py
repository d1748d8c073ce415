"""Exception types shared across the store, transport and editorial layers."""


class LiveBlogError(Exception):
    """Base class for all live blog errors."""


class ConfigError(LiveBlogError):
    """Configuration could not be loaded or is invalid."""


class ValidationError(LiveBlogError):
    """A request carried missing or malformed fields."""


class BlogNotFoundError(LiveBlogError):
    """No live blog matches the given id or slug."""

    def __init__(self, key: str):
        super().__init__(f"Live blog not found: {key}")
        self.key = key


class EntryNotFoundError(LiveBlogError):
    """No timeline entry with this id exists in the blog."""

    def __init__(self, blog_id: str, entry_id: str):
        super().__init__(f"Entry {entry_id} not found in live blog {blog_id}")
        self.blog_id = blog_id
        self.entry_id = entry_id


class SlugTakenError(LiveBlogError):
    """The requested slug already belongs to another live blog."""

    def __init__(self, slug: str):
        super().__init__(f"Slug already in use: {slug}")
        self.slug = slug


class SourceError(LiveBlogError):
    """A request to the entry source failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """True for failures worth retrying (network errors, 5xx)."""
        return self.status_code is None or self.status_code >= 500

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class WriteError(LiveBlogError):
    """An editorial write was rejected or could not be delivered."""

    def __init__(self, action: str, cause: Exception):
        super().__init__(f"Failed to {action}: {cause}")
        self.action = action
        self.cause = cause
