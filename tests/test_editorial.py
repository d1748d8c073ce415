"""Tests for editorial actions."""

import pytest
from unittest.mock import AsyncMock

from liveblog.editorial import EditorialPoster
from liveblog.errors import SourceError, WriteError
from liveblog.store import EntryStore
from liveblog.sync import StoreEntrySource


@pytest.fixture
def store():
    """Create an in-memory entry store."""
    store = EntryStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def blog(store):
    return store.create_blog("Storm Maria")


@pytest.fixture
def poster(store):
    return EditorialPoster(StoreEntrySource(store), author_name="News Desk")


class TestEditorialPoster:
    """Tests for EditorialPoster."""

    @pytest.mark.asyncio
    async def test_post_entry_uses_default_author(self, poster, store, blog):
        entry = await poster.post_entry(blog.id, "<p>Landfall</p>")

        assert entry.author_name == "News Desk"
        assert store.get_entry(blog.id, entry.id).content == "<p>Landfall</p>"

    @pytest.mark.asyncio
    async def test_post_entry_author_override(self, poster, blog):
        entry = await poster.post_entry(
            blog.id, "Radar image", image_url="https://img/1.jpg", author_name="Sam"
        )

        assert entry.author_name == "Sam"
        assert entry.image_url == "https://img/1.jpg"

    @pytest.mark.asyncio
    async def test_post_empty_content_fails(self, poster, store, blog):
        with pytest.raises(WriteError) as exc_info:
            await poster.post_entry(blog.id, "   ")

        assert exc_info.value.action == "post entry"
        assert store.get_stats()["entry_count"] == 0

    @pytest.mark.asyncio
    async def test_pin_and_unpin(self, poster, store, blog):
        entry = await poster.post_entry(blog.id, "Evacuation orders")

        await poster.pin_entry(blog.id, entry.id)
        assert store.get_entry(blog.id, entry.id).is_pinned is True

        await poster.unpin_entry(blog.id, entry.id)
        assert store.get_entry(blog.id, entry.id).is_pinned is False

    @pytest.mark.asyncio
    async def test_pin_missing_entry(self, poster, blog):
        with pytest.raises(WriteError, match="pin entry"):
            await poster.pin_entry(blog.id, "nope")

    @pytest.mark.asyncio
    async def test_delete_entry(self, poster, store, blog):
        entry = await poster.post_entry(blog.id, "Typo")

        await poster.delete_entry(blog.id, entry.id)

        assert store.poll_entries(blog.id).entries == []

    @pytest.mark.asyncio
    async def test_end_coverage_with_summary(self, poster, store, blog):
        await poster.end_coverage(blog.id, summary="The storm has passed.")

        result = store.poll_entries(blog.id)
        assert result.is_live is False
        assert result.summary == "The storm has passed."

    @pytest.mark.asyncio
    async def test_end_coverage_single_update(self):
        source = AsyncMock()
        poster = EditorialPoster(source)

        await poster.end_coverage("b1", summary="Recap")

        source.update_blog.assert_awaited_once_with("b1", is_live=False, summary="Recap")

    @pytest.mark.asyncio
    async def test_end_coverage_without_summary(self):
        source = AsyncMock()
        poster = EditorialPoster(source)

        await poster.end_coverage("b1")

        source.update_blog.assert_awaited_once_with("b1", is_live=False)

    @pytest.mark.asyncio
    async def test_reopen_coverage(self, poster, store, blog):
        await poster.end_coverage(blog.id)

        await poster.reopen_coverage(blog.id)

        assert store.get_blog(blog.id).is_live is True

    @pytest.mark.asyncio
    async def test_source_failure_wrapped(self):
        source = AsyncMock()
        source.update_blog.side_effect = SourceError("Connection failed", None)
        poster = EditorialPoster(source)

        with pytest.raises(WriteError) as exc_info:
            await poster.end_coverage("b1", summary="Recap")

        assert isinstance(exc_info.value.cause, SourceError)
        assert "end coverage" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_update_blog(self, poster, store, blog):
        await poster.update_blog(blog.id, title="Storm Maria: aftermath")

        assert store.get_blog(blog.id).title == "Storm Maria: aftermath"
