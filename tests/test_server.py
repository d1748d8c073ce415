"""Tests for the HTTP API."""

import pytest

from liveblog.config import Config, ServerConfig
from liveblog.store import EntryStore

# Only run tests if fastapi is installed
pytest.importorskip("fastapi")


from fastapi.testclient import TestClient
from liveblog.server import create_app


@pytest.fixture
def config():
    """Create a test configuration."""
    return Config(server=ServerConfig(cors_origins=["http://localhost:5173"]))


@pytest.fixture
def store():
    """Create an in-memory entry store."""
    store = EntryStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def app(config, store):
    return create_app(config, store)


@pytest.fixture
def client(app):
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def blog(client):
    response = client.post("/api/live-blogs", json={"title": "Storm Maria"})
    assert response.status_code == 201
    return response.json()


def post_entry(client, blog_id, content="Update"):
    response = client.post(f"/api/live-blogs/{blog_id}/entries", json={"content": content})
    assert response.status_code == 201
    return response.json()["entry"]


class TestHealth:
    def test_health(self, client, blog):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["store"]["blog_count"] == 1


class TestBlogRoutes:
    """Tests for live blog metadata routes."""

    def test_create_blog(self, blog):
        assert blog["slug"] == "storm-maria"
        assert blog["is_live"] is True
        assert blog["summary"] == ""

    def test_create_blog_requires_title(self, client):
        response = client.post("/api/live-blogs", json={"title": " "})

        assert response.status_code == 400
        assert "Title" in response.json()["error"]

    def test_create_blog_slug_conflict(self, client, blog):
        response = client.post(
            "/api/live-blogs", json={"title": "Other", "slug": "storm-maria"}
        )

        assert response.status_code == 409

    def test_get_blog(self, client, blog):
        response = client.get(f"/api/live-blogs/{blog['id']}")

        assert response.status_code == 200
        assert response.json()["title"] == "Storm Maria"

    def test_get_missing_blog(self, client):
        response = client.get("/api/live-blogs/nope")

        assert response.status_code == 404
        assert "error" in response.json()

    def test_list_blogs(self, client, blog):
        other = client.post("/api/live-blogs", json={"title": "Budget"}).json()
        client.patch(f"/api/live-blogs/{other['id']}", json={"is_live": False})

        live = client.get("/api/live-blogs", params={"status": "live"}).json()
        ended = client.get("/api/live-blogs", params={"status": "ended"}).json()

        assert [b["id"] for b in live] == [blog["id"]]
        assert [b["id"] for b in ended] == [other["id"]]

    def test_list_bad_status(self, client):
        response = client.get("/api/live-blogs", params={"status": "archived"})

        assert response.status_code == 400

    def test_update_blog(self, client, blog):
        response = client.patch(
            f"/api/live-blogs/{blog['id']}",
            json={"is_live": False, "summary": "Recap text"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        updated = client.get(f"/api/live-blogs/{blog['id']}").json()
        assert updated["is_live"] is False
        assert updated["summary"] == "Recap text"

    def test_update_null_live_flag_ignored(self, client, blog):
        response = client.patch(
            f"/api/live-blogs/{blog['id']}",
            json={"is_live": None, "title": "Storm Maria: day 2"},
        )

        assert response.status_code == 200
        updated = client.get(f"/api/live-blogs/{blog['id']}").json()
        assert updated["is_live"] is True
        assert updated["title"] == "Storm Maria: day 2"

    def test_update_null_title_ignored(self, client, blog):
        response = client.patch(
            f"/api/live-blogs/{blog['id']}", json={"title": None, "excerpt": "Day 2"}
        )

        assert response.status_code == 200
        updated = client.get(f"/api/live-blogs/{blog['id']}").json()
        assert updated["title"] == "Storm Maria"
        assert updated["excerpt"] == "Day 2"

    def test_update_unusable_slug(self, client, blog):
        response = client.patch(f"/api/live-blogs/{blog['id']}", json={"slug": "!!!"})

        assert response.status_code == 400
        assert client.get(f"/api/live-blogs/{blog['id']}").json()["slug"] == "storm-maria"

    def test_update_missing_blog(self, client):
        response = client.patch("/api/live-blogs/nope", json={"summary": "x"})

        assert response.status_code == 404

    def test_delete_blog(self, client, blog):
        post_entry(client, blog["id"])

        response = client.delete(f"/api/live-blogs/{blog['id']}")

        assert response.json() == {"success": True}
        assert client.get(f"/api/live-blogs/{blog['id']}").status_code == 404

    def test_load_by_slug(self, client, blog):
        first = post_entry(client, blog["id"], "First")
        second = post_entry(client, blog["id"], "Second")

        response = client.get("/api/live-blogs/by-slug/storm-maria")

        assert response.status_code == 200
        data = response.json()
        assert data["blog"]["id"] == blog["id"]
        assert [e["id"] for e in data["entries"]] == [second["id"], first["id"]]

    def test_load_missing_slug(self, client):
        assert client.get("/api/live-blogs/by-slug/nope").status_code == 404

    def test_generate_slug(self, client, blog):
        response = client.post("/api/slugs", json={"title": "Storm Maria"})

        assert response.json() == {"slug": "storm-maria-1"}


class TestEntryRoutes:
    """Tests for timeline entry routes."""

    def test_append_returns_server_fields(self, client, blog):
        response = client.post(
            f"/api/live-blogs/{blog['id']}/entries",
            json={
                "content": "<p>Landfall</p>",
                "image_url": "https://img/1.jpg",
                "image_alt": "Radar",
                "created_at": "2000-01-01T00:00:00+00:00",
                "id": "client-chosen",
            },
        )

        assert response.status_code == 201
        entry = response.json()["entry"]
        assert entry["id"] != "client-chosen"
        assert not entry["created_at"].startswith("2000")
        assert entry["is_pinned"] is False
        assert entry["image_alt"] == "Radar"

    def test_append_to_missing_blog(self, client):
        response = client.post("/api/live-blogs/nope/entries", json={"content": "x"})

        assert response.status_code == 404

    def test_poll_since_cursor(self, client, blog):
        post_entry(client, blog["id"], "t=10")
        e20 = post_entry(client, blog["id"], "t=20")
        e30 = post_entry(client, blog["id"], "t=30")

        response = client.get(
            f"/api/live-blogs/{blog['id']}/entries", params={"since": e20["created_at"]}
        )

        data = response.json()
        assert [e["id"] for e in data["entries"]] == [e30["id"]]
        assert data["is_live"] is True
        assert data["summary"] is None

        data = client.get(
            f"/api/live-blogs/{blog['id']}/entries", params={"since": e30["created_at"]}
        ).json()
        assert data["entries"] == []

    def test_poll_unencoded_plus(self, client, blog):
        e1 = post_entry(client, blog["id"])
        raw = e1["created_at"]

        response = client.get(f"/api/live-blogs/{blog['id']}/entries?since={raw}")

        assert response.status_code == 200
        assert response.json()["entries"] == []

    def test_poll_invalid_cursor(self, client, blog):
        response = client.get(
            f"/api/live-blogs/{blog['id']}/entries", params={"since": "yesterday"}
        )

        assert response.status_code == 400

    def test_poll_after_end(self, client, blog):
        entry = post_entry(client, blog["id"])
        client.patch(
            f"/api/live-blogs/{blog['id']}",
            json={"is_live": False, "summary": "Recap text"},
        )

        data = client.get(
            f"/api/live-blogs/{blog['id']}/entries",
            params={"since": entry["created_at"]},
        ).json()

        assert data["entries"] == []
        assert data["is_live"] is False
        assert data["summary"] == "Recap text"
        assert data["revision"] > entry["created_at"]

    def test_pin_entry(self, client, blog):
        entry = post_entry(client, blog["id"])

        response = client.patch(
            f"/api/live-blogs/{blog['id']}/entries/{entry['id']}",
            json={"is_pinned": True},
        )

        assert response.json() == {"success": True}
        data = client.get(f"/api/live-blogs/{blog['id']}/entries").json()
        assert data["entries"][0]["is_pinned"] is True
        assert data["entries"][0]["created_at"] == entry["created_at"]

    def test_pin_sent_once_with_changed_since(self, client, blog):
        entry = post_entry(client, blog["id"])
        client.patch(
            f"/api/live-blogs/{blog['id']}/entries/{entry['id']}",
            json={"is_pinned": True},
        )
        url = f"/api/live-blogs/{blog['id']}/entries"

        first = client.get(url, params={"since": entry["created_at"]}).json()
        second = client.get(
            url,
            params={"since": entry["created_at"], "changed_since": first["revision"]},
        ).json()

        assert [e["id"] for e in first["entries"]] == [entry["id"]]
        assert second["entries"] == []

    def test_poll_invalid_changed_since(self, client, blog):
        response = client.get(
            f"/api/live-blogs/{blog['id']}/entries", params={"changed_since": "soon"}
        )

        assert response.status_code == 400
        assert "changed_since" in response.json()["error"]

    def test_pin_missing_entry(self, client, blog):
        response = client.patch(
            f"/api/live-blogs/{blog['id']}/entries/nope", json={"is_pinned": True}
        )

        assert response.status_code == 404

    def test_delete_entry(self, client, blog):
        entry = post_entry(client, blog["id"])

        response = client.delete(f"/api/live-blogs/{blog['id']}/entries/{entry['id']}")

        assert response.json() == {"success": True}
        assert client.get(f"/api/live-blogs/{blog['id']}/entries").json()["entries"] == []
        again = client.delete(f"/api/live-blogs/{blog['id']}/entries/{entry['id']}")
        assert again.status_code == 404
