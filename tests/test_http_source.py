"""Tests for the HTTP entry source."""

import httpx
import pytest

from liveblog.config import Config
from liveblog.errors import SourceError
from liveblog.server import create_app
from liveblog.store import EntryStore
from liveblog.store.models import parse_ts
from liveblog.sync import HttpEntrySource, SyncClient, SyncState

from test_sync import FakeScheduler


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
def source(store):
    """HTTP source wired straight to the app, no network."""
    transport = httpx.ASGITransport(app=create_app(Config(), store))
    return HttpEntrySource("http://testserver", backoff_seconds=0, transport=transport)


def mock_source(handler, max_retries: int = 3) -> HttpEntrySource:
    return HttpEntrySource(
        "http://testserver",
        max_retries=max_retries,
        backoff_seconds=0,
        transport=httpx.MockTransport(handler),
    )


class TestHttpEntrySource:
    """Tests against the real API."""

    @pytest.mark.asyncio
    async def test_load_blog(self, source, store, blog):
        store.append_entry(blog.id, "First")

        loaded, entries = await source.load_blog("storm-maria")

        assert loaded.id == blog.id
        assert loaded.is_live is True
        assert [e.content for e in entries] == ["First"]

    @pytest.mark.asyncio
    async def test_load_missing_blog(self, source):
        with pytest.raises(SourceError) as exc_info:
            await source.load_blog("nope")

        assert exc_info.value.is_not_found
        assert not exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_poll_since(self, source, store, blog):
        first = store.append_entry(blog.id, "First")
        second = store.append_entry(blog.id, "Second")

        result = await source.poll_entries(blog.id, since=first.created_at)

        assert [e.id for e in result.entries] == [second.id]
        assert result.entries[0].created_at == second.created_at
        assert result.is_live is True

    @pytest.mark.asyncio
    async def test_writes(self, source, store, blog):
        entry = await source.append_entry(blog.id, "Posted", author_name="Desk")
        await source.set_pinned(blog.id, entry.id, True)
        await source.update_blog(blog.id, is_live=False, summary="Recap")

        assert store.get_entry(blog.id, entry.id).is_pinned is True
        result = await source.poll_entries(blog.id)
        assert result.is_live is False
        assert result.summary == "Recap"

        await source.delete_entry(blog.id, entry.id)
        assert store.poll_entries(blog.id).entries == []

    @pytest.mark.asyncio
    async def test_create_and_list(self, source):
        created = await source.create_blog("Election Night", excerpt="Results")

        blogs = await source.list_blogs(status="live")

        assert created.slug == "election-night"
        assert [b.id for b in blogs] == [created.id]

    @pytest.mark.asyncio
    async def test_check_connection(self, source):
        assert await source.check_connection() is True


class TestRetry:
    """Tests for retry behavior."""

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, json={"error": "busy"})
            return httpx.Response(200, json={"entries": [], "is_live": True, "summary": None})

        result = await mock_source(handler).poll_entries("b1")

        assert len(calls) == 3
        assert result.entries == []

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"error": "boom"})

        with pytest.raises(SourceError) as exc_info:
            await mock_source(handler, max_retries=2).poll_entries("b1")

        assert len(calls) == 2
        assert exc_info.value.status_code == 500
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "Invalid since"})

        with pytest.raises(SourceError, match="Invalid since"):
            await mock_source(handler).poll_entries("b1")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_connection_error_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        source = mock_source(handler)
        with pytest.raises(SourceError) as exc_info:
            await source.load_blog("storm")

        assert len(calls) == 3
        assert exc_info.value.status_code is None
        assert await source.check_connection() is False

    @pytest.mark.asyncio
    async def test_since_is_sent_as_query(self):
        seen = []

        def handler(request):
            seen.append(request.url.params.get("since"))
            return httpx.Response(200, json={"entries": [], "is_live": True})

        source = mock_source(handler)
        await source.poll_entries("b1")
        await source.poll_entries("b1", since=parse_ts("2026-03-01T12:00:00+00:00"))

        assert seen == [None, "2026-03-01T12:00:00.000000+00:00"]


BLOG_BODY = {
    "blog": {"id": "b1", "slug": "storm", "title": "Storm", "is_live": True},
    "entries": [],
}


class TestMalformedResponses:
    """Tests for 2xx responses that are not the expected JSON."""

    @pytest.mark.asyncio
    async def test_html_body_raises_source_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, text="<html>proxy login</html>")

        with pytest.raises(SourceError, match="Invalid response body"):
            await mock_source(handler).poll_entries("b1")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_missing_key_raises_source_error(self):
        def handler(request):
            return httpx.Response(200, json={"entries": []})

        with pytest.raises(SourceError, match="Invalid response body"):
            await mock_source(handler).load_blog("storm")

    @pytest.mark.asyncio
    async def test_bad_entry_raises_source_error(self):
        def handler(request):
            return httpx.Response(200, json={"entries": [{"id": "e1"}], "is_live": True})

        with pytest.raises(SourceError):
            await mock_source(handler).poll_entries("b1")

    @pytest.mark.asyncio
    async def test_load_of_html_page_ends_in_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>proxy login</html>")

        client = SyncClient(mock_source(handler), "storm", scheduler=FakeScheduler())

        await client.start()

        assert client.state == SyncState.ERROR
        assert isinstance(client.error, SourceError)

    @pytest.mark.asyncio
    async def test_load_without_blog_ends_in_error(self):
        def handler(request):
            return httpx.Response(200, json={"entries": []})

        client = SyncClient(mock_source(handler), "storm", scheduler=FakeScheduler())

        await client.start()

        assert client.state == SyncState.ERROR

    @pytest.mark.asyncio
    async def test_poll_of_html_page_stays_live(self):
        def handler(request):
            if request.url.path.endswith("/by-slug/storm"):
                return httpx.Response(200, json=BLOG_BODY)
            return httpx.Response(200, text="<html>proxy login</html>")

        scheduler = FakeScheduler()
        client = SyncClient(mock_source(handler), "storm", scheduler=scheduler, poll_interval=30)
        await client.start()

        await scheduler.fire(30)

        assert client.state == SyncState.LIVE
        assert client.error is None
        assert client.get_sync_status()["consecutive_failures"] == 1
        assert len(scheduler.pending(30)) == 1


class TestSyncOverHttp:
    """End-to-end: a sync client following a blog through the API."""

    @pytest.mark.asyncio
    async def test_follow_until_ended(self, source, store, blog):
        store.append_entry(blog.id, "Opening")
        scheduler = FakeScheduler()
        client = SyncClient(source, blog.slug, scheduler=scheduler, poll_interval=30)

        await client.start()
        assert client.state == SyncState.LIVE

        newest = store.append_entry(blog.id, "Landfall")
        await scheduler.fire(30)

        assert client.timeline.entries[0].id == newest.id
        assert client.new_entries_count == 1

        store.update_blog(blog.id, is_live=False, summary="Storm passed")
        await scheduler.fire(30)

        assert client.state == SyncState.ENDED
        assert client.summary == "Storm passed"
        assert scheduler.pending(30) == []
