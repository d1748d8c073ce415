"""FastAPI application exposing the entry store."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import Config
from ..errors import (
    BlogNotFoundError,
    EntryNotFoundError,
    LiveBlogError,
    SlugTakenError,
    ValidationError,
)
from ..store import EntryStore
from ..store.models import parse_ts

logger = logging.getLogger(__name__)


# ---------- Schemas ----------
class BlogCreate(BaseModel):
    title: str
    slug: str | None = None
    excerpt: str = ""
    body: str = ""
    cover_image_url: str | None = None
    cover_image_alt: str | None = None
    is_live: bool = True


class BlogUpdate(BaseModel):
    title: str | None = None
    slug: str | None = None
    excerpt: str | None = None
    body: str | None = None
    summary: str | None = None
    cover_image_url: str | None = None
    cover_image_alt: str | None = None
    is_live: bool | None = None


class EntryCreate(BaseModel):
    content: str
    image_url: str | None = None
    image_alt: str | None = None
    author_name: str | None = None


class EntryUpdate(BaseModel):
    is_pinned: bool


class SlugRequest(BaseModel):
    title: str
    blog_id: str | None = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _parse_since(value: str | None, name: str = "since") -> datetime | None:
    if not value:
        return None
    try:
        # A raw "+" in a query string arrives as a space
        return parse_ts(value.replace(" ", "+"))
    except ValueError:
        raise ValidationError(f"Invalid {name} cursor: {value}") from None


def create_app(config: Config, store: EntryStore) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Application configuration.
        store: Connected EntryStore serving all requests.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Live Blog API",
        description="Live blog timelines with incremental polling",
        version="0.1.0",
    )

    app.state.config = config
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==================== Error mapping ====================

    @app.exception_handler(BlogNotFoundError)
    @app.exception_handler(EntryNotFoundError)
    async def not_found_handler(request: Request, exc: LiveBlogError):
        return _error(str(exc), status.HTTP_404_NOT_FOUND)

    @app.exception_handler(SlugTakenError)
    async def conflict_handler(request: Request, exc: SlugTakenError):
        return _error(str(exc), status.HTTP_409_CONFLICT)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error(str(exc), status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(LiveBlogError)
    async def error_handler(request: Request, exc: LiveBlogError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error(str(exc) or "Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    # ==================== Health ====================

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint for monitoring and load balancers."""
        health: dict[str, Any] = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
        }
        try:
            health["store"] = store.get_stats()
        except Exception as e:
            health["status"] = "degraded"
            health["store_error"] = str(e)
        return health

    # ==================== Blogs ====================

    @app.get("/api/live-blogs")
    async def list_blogs(
        blog_status: str | None = Query(None, alias="status"),
        limit: int = Query(50, ge=1, le=200),
    ) -> list[dict[str, Any]]:
        return [b.to_dict() for b in store.list_blogs(status=blog_status, limit=limit)]

    @app.post("/api/live-blogs", status_code=201)
    async def create_blog(payload: BlogCreate) -> dict[str, Any]:
        blog = store.create_blog(**payload.model_dump())
        return blog.to_dict()

    @app.get("/api/live-blogs/by-slug/{slug}")
    async def load_blog(slug: str) -> dict[str, Any]:
        """Full load: blog metadata plus every entry, newest first."""
        blog, entries = store.load_blog(slug)
        return {
            "blog": blog.to_dict(),
            "entries": [e.to_dict() for e in entries],
        }

    @app.get("/api/live-blogs/{blog_id}")
    async def get_blog(blog_id: str) -> dict[str, Any]:
        return store.get_blog(blog_id).to_dict()

    @app.patch("/api/live-blogs/{blog_id}")
    async def update_blog(blog_id: str, payload: BlogUpdate) -> dict[str, Any]:
        store.update_blog(blog_id, **payload.model_dump(exclude_unset=True))
        return {"success": True}

    @app.delete("/api/live-blogs/{blog_id}")
    async def delete_blog(blog_id: str) -> dict[str, Any]:
        store.delete_blog(blog_id)
        return {"success": True}

    # ==================== Entries ====================

    @app.get("/api/live-blogs/{blog_id}/entries")
    async def poll_entries(
        blog_id: str, since: str | None = None, changed_since: str | None = None
    ) -> dict[str, Any]:
        """Incremental fetch. Without ``since`` returns every entry."""
        result = store.poll_entries(
            blog_id, _parse_since(since), _parse_since(changed_since, "changed_since")
        )
        return result.to_dict()

    @app.post("/api/live-blogs/{blog_id}/entries", status_code=201)
    async def append_entry(blog_id: str, payload: EntryCreate) -> dict[str, Any]:
        entry = store.append_entry(blog_id, **payload.model_dump())
        return {"entry": entry.to_dict()}

    @app.patch("/api/live-blogs/{blog_id}/entries/{entry_id}")
    async def update_entry(blog_id: str, entry_id: str, payload: EntryUpdate) -> dict[str, Any]:
        store.set_pinned(blog_id, entry_id, payload.is_pinned)
        return {"success": True}

    @app.delete("/api/live-blogs/{blog_id}/entries/{entry_id}")
    async def delete_entry(blog_id: str, entry_id: str) -> dict[str, Any]:
        store.delete_entry(blog_id, entry_id)
        return {"success": True}

    # ==================== Slugs ====================

    @app.post("/api/slugs")
    async def generate_slug(payload: SlugRequest) -> dict[str, Any]:
        return {"slug": store.generate_slug(payload.title, payload.blog_id)}

    return app
