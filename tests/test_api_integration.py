"""Integration tests for the HTTP API."""

from unittest.mock import MagicMock

import pytest

from ruddit_core.api.deps import get_store
from ruddit_core.errors import AuthRejected, CredentialError, PersistenceError, TransportError
from ruddit_core.providers.base import RawListing
from tests.factories import make_comment_child, make_post_child, make_post_record


def listing(*post_ids: str) -> RawListing:
    return RawListing(
        children=[make_post_child(pid, created_utc=1_700_000_000 + i) for i, pid in enumerate(post_ids)]
    )


class TestHealth:
    """Tests for the health endpoint."""

    @pytest.mark.asyncio
    async def test_healthz(self, client):
        response = await client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["ok"] is True


class TestSearchEndpoints:
    """Tests for /search."""

    @pytest.mark.asyncio
    async def test_run_search(self, client, mock_adapter):
        mock_adapter.fetch_listing.return_value = listing("aaa", "bbb")

        response = await client.post("/search", json={"query": "r/rust", "sort_types": ["hot", "new"]})

        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "listing"
        assert data["facets"] == ["hot", "new"]
        assert data["total"] == 2
        assert data["posts"][0]["sort_type"] == "hot,new"
        assert data["failed_facets"] == {}

    @pytest.mark.asyncio
    async def test_current_search(self, client, mock_adapter):
        mock_adapter.fetch_listing.return_value = listing("aaa")
        await client.post("/search", json={"query": "r/rust"})

        response = await client.get("/search/current")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["t3_aaa"]

    @pytest.mark.asyncio
    async def test_clear_current_search(self, client, store):
        store.replace_current_search([make_post_record(1), make_post_record(2)])

        response = await client.delete("/search/current")

        assert response.json() == {"deleted": 2}
        assert store.get_current_search() == []

    @pytest.mark.asyncio
    async def test_partial_failure_reported(self, client, mock_adapter):
        def answer(token, query, sort, after=None):
            if sort == "hot":
                raise TransportError("Service Unavailable", status_code=503)
            return listing("ccc")

        mock_adapter.fetch_listing.side_effect = answer

        response = await client.post("/search", json={"query": "r/rust", "sort_types": ["hot", "new"]})

        assert response.status_code == 200
        assert list(response.json()["failed_facets"]) == ["hot"]
        assert response.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_invalid_sort_type(self, client):
        response = await client.post("/search", json={"query": "r/rust", "sort_types": ["relevance"]})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, client):
        response = await client.post("/search", json={"query": ""})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_all_facets_failed(self, client, mock_adapter):
        mock_adapter.fetch_listing.side_effect = TransportError("down", status_code=503)

        response = await client.post("/search", json={"query": "r/rust"})

        assert response.status_code == 502
        assert response.json()["error"] == "TransportError"

    @pytest.mark.asyncio
    async def test_credentials_missing(self, client, oauth_service):
        oauth_service.get_cached_or_refreshed_token.side_effect = CredentialError("not configured")

        response = await client.post("/search", json={"query": "r/rust"})

        assert response.status_code == 412
        assert response.json()["error"] == "CredentialError"

    @pytest.mark.asyncio
    async def test_unauthorized_client_flag(self, client, oauth_service):
        oauth_service.get_cached_or_refreshed_token.side_effect = AuthRejected(
            "app not allowed", unauthorized_client=True
        )

        response = await client.post("/search", json={"query": "r/rust"})

        assert response.status_code == 401
        assert response.json()["unauthorized_client"] is True


class TestPostEndpoints:
    """Tests for /posts."""

    @pytest.mark.asyncio
    async def test_save_from_current_search(self, client, store):
        store.replace_current_search([make_post_record(42)])

        response = await client.post("/posts/42/save")

        assert response.status_code == 200
        assert response.json() == {"id": 42, "saved": True}
        assert store.get_saved(42) is not None

    @pytest.mark.asyncio
    async def test_save_unknown_post(self, client):
        response = await client.post("/posts/404/save")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_save_record(self, client, store):
        body = make_post_record(7, title="Posted directly").to_dict()

        response = await client.post("/posts", json=body)

        assert response.status_code == 201
        assert response.json()["saved"] is True
        assert store.get_saved(7).title == "Posted directly"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("post_id", [0, -5])
    async def test_save_record_rejects_degenerate_identity(self, client, store, post_id):
        body = make_post_record(1).to_dict()
        body["id"] = post_id

        response = await client.post("/posts", json=body)

        assert response.status_code == 422
        assert store.get_all_saved() == []

    @pytest.mark.asyncio
    async def test_list_and_filter(self, client, store):
        store.upsert_saved([
            make_post_record(1, subreddit="rust", sort_type="hot", timestamp=10),
            make_post_record(2, subreddit="golang", sort_type="new", title="Go", timestamp=20),
        ])

        all_posts = (await client.get("/posts")).json()
        by_sub = (await client.get("/posts", params={"subreddit": "golang"})).json()
        by_facet = (await client.get("/posts", params={"sort_type": "hot"})).json()
        by_term = (await client.get("/posts", params={"q": "rust"})).json()
        limited = (await client.get("/posts", params={"limit": 1})).json()

        assert [p["id"] for p in all_posts] == [2, 1]
        assert [p["id"] for p in by_sub] == [2]
        assert [p["id"] for p in by_facet] == [1]
        assert [p["id"] for p in by_term] == [1]
        assert [p["id"] for p in limited] == [2]

    @pytest.mark.asyncio
    async def test_update_post(self, client, store):
        store.upsert_saved([make_post_record(1)])

        response = await client.patch("/posts/1", json={"notes": "ping them", "engaged": True, "interest": 3})

        assert response.status_code == 200
        data = response.json()
        assert data["notes"] == "ping them"
        assert data["engaged"] is True
        assert data["interest"] == 3

    @pytest.mark.asyncio
    async def test_update_missing_post_is_noop(self, client, store):
        response = await client.patch("/posts/999", json={"notes": "x"})

        assert response.status_code == 204
        assert store.get_saved(999) is None

    @pytest.mark.asyncio
    async def test_get_and_delete(self, client, store):
        store.upsert_saved([make_post_record(1)])

        assert (await client.get("/posts/1")).status_code == 200
        assert (await client.delete("/posts/1")).status_code == 204
        assert (await client.get("/posts/1")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_unknown_post_is_noop(self, client, store):
        store.upsert_saved([make_post_record(1)])

        response = await client.delete("/posts/999")

        assert response.status_code == 204
        assert [p.id for p in store.get_all_saved()] == [1]

    @pytest.mark.asyncio
    async def test_all_posts_and_facets(self, client, store):
        store.replace_current_search([make_post_record(1, sort_type="hot")])
        store.upsert_saved([make_post_record(2, sort_type="hot,new")])

        all_posts = (await client.get("/posts/all")).json()
        facets = (await client.get("/posts/facets")).json()

        assert {p["id"] for p in all_posts} == {1, 2}
        assert {f["facet"]: f["count"] for f in facets} == {"hot": 1, "new": 1}

    @pytest.mark.asyncio
    async def test_clear_saved(self, client, store):
        store.upsert_saved([make_post_record(1)])

        response = await client.delete("/posts")

        assert response.json() == {"deleted": 1}

    @pytest.mark.asyncio
    async def test_persistence_failure(self, client, test_app, store, monkeypatch):
        def broken(*args, **kwargs):
            raise PersistenceError("disk I/O error")

        monkeypatch.setattr(store, "get_all_saved", broken)
        test_app.dependency_overrides[get_store] = lambda: store

        response = await client.get("/posts")

        assert response.status_code == 500
        assert response.json()["error"] == "PersistenceError"


class TestCommentEndpoints:
    """Tests for /comments."""

    @pytest.mark.asyncio
    async def test_fetch_and_list(self, client, mock_adapter):
        mock_adapter.fetch_comment_tree.return_value = (
            {"id": "abc123", "title": "Title", "subreddit": "rust"},
            [make_comment_child("a1", "t3_abc123", replies=[make_comment_child("b1", "t1_a1")])],
        )

        response = await client.post(
            "/comments/fetch", json={"url": "https://www.reddit.com/r/rust/comments/abc123/x/"}
        )

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == ["a1", "b1"]
        assert [c["depth"] for c in response.json()] == [0, 1]

        listed = (await client.get("/comments", params={"post_id": "abc123"})).json()
        assert {c["id"] for c in listed} == {"a1", "b1"}

    @pytest.mark.asyncio
    async def test_fetch_bad_reference(self, client):
        response = await client.post("/comments/fetch", json={"url": "https://example.com/"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_comment(self, client, mock_adapter, store):
        mock_adapter.fetch_comment_tree.return_value = (None, [make_comment_child("a1", "t3_abc123")])
        await client.post("/comments/fetch", json={"url": "abc123"})

        response = await client.patch("/comments/a1", json={"notes": "answer this", "assignee": "kim"})
        missing = await client.patch("/comments/zzz", json={"notes": "x"})

        assert response.status_code == 204
        assert missing.status_code == 204
        comment = store.get_all_comments()[0]
        assert comment.notes == "answer this"
        assert comment.assignee == "kim"

    @pytest.mark.asyncio
    async def test_reply(self, client, mock_adapter):
        mock_adapter.submit_comment.return_value = {"id": "new1", "name": "t1_new1", "permalink": "/r/rust/x/new1/"}

        response = await client.post("/comments/reply", json={"parent": "t1_a1", "text": "Thanks"})

        assert response.status_code == 200
        assert response.json()["name"] == "t1_new1"

    @pytest.mark.asyncio
    async def test_reply_bad_parent(self, client):
        response = await client.post("/comments/reply", json={"parent": "a1", "text": "Thanks"})

        assert response.status_code == 400


class TestAuthEndpoints:
    """Tests for /auth/reddit."""

    @pytest.mark.asyncio
    async def test_authorize_and_callback(self, client, mock_httpx_client):
        authorize = (await client.get("/auth/reddit/authorize")).json()
        token_response = MagicMock()
        token_response.status_code = 200
        token_response.json.return_value = {
            "access_token": "user-1",
            "refresh_token": "refresh-1",
            "expires_in": 3600,
            "scope": "identity read",
        }
        mock_httpx_client.post.return_value = token_response

        response = await client.get(
            "/auth/reddit/callback", params={"code": "the-code", "state": authorize["state"]}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "scope": "identity read"}

    @pytest.mark.asyncio
    async def test_callback_rejects_unknown_state(self, client):
        response = await client.get("/auth/reddit/callback", params={"code": "c", "state": "forged"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_callback_with_error(self, client):
        response = await client.get("/auth/reddit/callback", params={"error": "access_denied"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_forget_tokens(self, client):
        response = await client.delete("/auth/reddit/tokens")

        assert response.status_code == 204


class TestMetricsEndpoint:
    """Tests for /metrics."""

    @pytest.mark.asyncio
    async def test_counts_facet_requests(self, client, mock_adapter):
        mock_adapter.fetch_listing.return_value = listing("aaa")
        await client.post("/search", json={"query": "r/rust"})

        response = await client.get("/metrics")

        counters = response.json()["counters"]
        assert counters["facet_requests_total{facet=hot,outcome=ok}"] == 1
        assert counters["posts_merged_total"] == 1
