"""Tests for view recording: classification, visitor keys, dedup and the API."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from blog_analytics.core.config import settings
from blog_analytics.core.constants import TrafficSource
from blog_analytics.core.exceptions import NotFoundError, StoreError
from blog_analytics.models.post_view import PostView
from blog_analytics.services.views import (
    VisitorContext,
    classify_referrer,
    compute_visitor_key,
    record_view,
)


async def _view_count(db) -> int:
    return (await db.execute(select(func.count(PostView.id)))).scalar()


class TestClassifyReferrer:
    @pytest.mark.parametrize(
        "referrer,expected",
        [
            (None, TrafficSource.DIRECT),
            ("", TrafficSource.DIRECT),
            ("   ", TrafficSource.DIRECT),
            ("not a url", TrafficSource.DIRECT),
            ("http://[::1", TrafficSource.DIRECT),
            ("https://www.google.com/search?q=fastapi", TrafficSource.SEARCH),
            ("https://news.google.co.uk/", TrafficSource.SEARCH),
            ("https://duckduckgo.com/?q=blog", TrafficSource.SEARCH),
            ("https://www.bing.com/", TrafficSource.SEARCH),
            ("https://t.co/abc123", TrafficSource.SOCIAL),
            ("https://x.com/someone/status/1", TrafficSource.SOCIAL),
            ("https://m.facebook.com/story", TrafficSource.SOCIAL),
            ("https://old.reddit.com/r/python", TrafficSource.SOCIAL),
            ("https://example.org/links", TrafficSource.OTHER),
            ("https://notgoogle.com/", TrafficSource.OTHER),
            ("https://fax.com/", TrafficSource.OTHER),
        ],
    )
    def test_classification(self, referrer, expected):
        assert classify_referrer(referrer) == expected

    def test_same_origin_is_direct(self):
        assert classify_referrer("https://www.myblog.dev/posts/2", ["myblog.dev"]) == TrafficSource.DIRECT
        assert classify_referrer("https://myblog.dev/posts/2", ["other.dev"]) == TrafficSource.OTHER

    @pytest.mark.parametrize("token", ["direct", "search", "social", "other"])
    def test_preclassified_tokens_pass_through(self, token):
        assert classify_referrer(token) == TrafficSource(token)


class TestVisitorKey:
    def test_deterministic_sha256(self):
        key = compute_visitor_key("session-abc")
        assert key == compute_visitor_key("session-abc")
        assert len(key) == 64
        assert "session-abc" not in key

    def test_fingerprint_fallback(self):
        a = compute_visitor_key(None, "10.0.0.1", "Firefox")
        b = compute_visitor_key(None, "10.0.0.1", "Chrome")
        assert a != b
        assert a == compute_visitor_key("", "10.0.0.1", "Firefox")

    def test_salt_changes_key(self):
        assert compute_visitor_key("abc", salt="one") != compute_visitor_key("abc", salt="two")


class TestRecordView:
    @pytest.mark.asyncio
    async def test_second_view_within_window_is_deduplicated(self, db, make_post):
        post = await make_post()
        visitor = VisitorContext(visitor_key=compute_visitor_key("v1"))
        now = datetime.now(timezone.utc)

        first = await record_view(db, post.id, visitor, now=now)
        second = await record_view(db, post.id, visitor, now=now + timedelta(seconds=30))

        assert first.recorded is True
        assert second.recorded is False
        assert await _view_count(db) == 1

    @pytest.mark.asyncio
    async def test_view_after_window_is_recorded(self, db, make_post):
        post = await make_post()
        visitor = VisitorContext(visitor_key=compute_visitor_key("v1"))
        now = datetime.now(timezone.utc)

        await record_view(db, post.id, visitor, now=now)
        later = await record_view(
            db, post.id, visitor, now=now + timedelta(hours=settings.view_dedup_hours, minutes=1)
        )

        assert later.recorded is True
        assert await _view_count(db) == 2

    @pytest.mark.asyncio
    async def test_other_visitors_and_posts_are_independent(self, db, make_post):
        post = await make_post()
        other_post = await make_post(title="Other")
        alice = VisitorContext(visitor_key=compute_visitor_key("alice"))
        bob = VisitorContext(visitor_key=compute_visitor_key("bob"))

        assert (await record_view(db, post.id, alice)).recorded
        assert (await record_view(db, post.id, bob)).recorded
        assert (await record_view(db, other_post.id, alice)).recorded

    @pytest.mark.asyncio
    async def test_admin_views_are_stored_but_never_block(self, db, make_post):
        post = await make_post()
        key = compute_visitor_key("same-browser")
        admin = VisitorContext(visitor_key=key, is_admin=True)
        visitor = VisitorContext(visitor_key=key, traffic_source=TrafficSource.SEARCH)

        assert (await record_view(db, post.id, admin)).recorded
        assert (await record_view(db, post.id, admin)).recorded
        assert (await record_view(db, post.id, visitor)).recorded

        rows = (await db.execute(select(PostView).order_by(PostView.id))).scalars().all()
        assert [row.is_admin for row in rows] == [True, True, False]
        assert rows[-1].traffic_source == "search"

    @pytest.mark.asyncio
    async def test_unpublished_post(self, db, make_post):
        draft = await make_post(is_published=False)
        with pytest.raises(NotFoundError):
            await record_view(db, draft.id, VisitorContext(visitor_key="k"))

    @pytest.mark.asyncio
    async def test_missing_post(self, db):
        with pytest.raises(NotFoundError):
            await record_view(db, 999, VisitorContext(visitor_key="k"))
        assert await _view_count(db) == 0

    @pytest.mark.asyncio
    async def test_failed_commit_raises_store_error(self, db, make_post, caplog, monkeypatch):
        post = await make_post()
        failure = OperationalError("INSERT INTO post_views", {}, Exception("database is locked"))
        monkeypatch.setattr(db, "commit", AsyncMock(side_effect=failure))

        with pytest.raises(StoreError) as exc_info:
            await record_view(db, post.id, VisitorContext(visitor_key="k"))

        assert exc_info.value.__cause__ is failure
        assert exc_info.value.message == "Record store unavailable"
        assert "Failed to record view" in caplog.text
        assert await _view_count(db) == 0


class TestTrackEndpoint:
    @pytest.mark.asyncio
    async def test_duplicate_is_a_success_variant(self, client: AsyncClient, db, make_post):
        post = await make_post()
        body = {"postId": post.id, "visitorKey": "browser-session-1"}

        first = await client.post("/api/views/track", json=body)
        second = await client.post("/api/views/track", json=body)

        assert first.status_code == 201
        assert first.json() == {"success": True, "recorded": True, "message": "View recorded"}
        assert second.status_code == 200
        assert second.json() == {
            "success": True,
            "recorded": False,
            "message": "View already recorded",
        }
        assert await _view_count(db) == 1

    @pytest.mark.asyncio
    async def test_fingerprint_dedup_without_visitor_key(self, client: AsyncClient, db, make_post):
        post = await make_post()
        headers = {"User-Agent": "pytest-browser"}

        first = await client.post("/api/views/track", json={"postId": post.id}, headers=headers)
        second = await client.post("/api/views/track", json={"postId": post.id}, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert await _view_count(db) == 1

    @pytest.mark.asyncio
    async def test_visitor_header_and_referer(self, client: AsyncClient, db, make_post):
        post = await make_post()

        response = await client.post(
            "/api/views/track",
            json={"postId": post.id},
            headers={"X-Visitor-ID": "abc", "Referer": "https://www.google.com/"},
        )

        assert response.status_code == 201
        view = (await db.execute(select(PostView))).scalar_one()
        assert view.traffic_source == "search"
        assert view.visitor_key == compute_visitor_key("abc", salt=settings.visitor_hash_salt)
        assert view.is_admin is False

    @pytest.mark.asyncio
    async def test_body_referrer_token(self, client: AsyncClient, db, make_post):
        post = await make_post()

        await client.post(
            "/api/views/track",
            json={"postId": post.id, "visitorKey": "k", "referrer": "social"},
        )

        view = (await db.execute(select(PostView))).scalar_one()
        assert view.traffic_source == "social"

    @pytest.mark.asyncio
    async def test_same_site_referer_is_direct(self, client: AsyncClient, db, make_post):
        post = await make_post()

        await client.post(
            "/api/views/track",
            json={"postId": post.id, "visitorKey": "k"},
            headers={"Referer": "http://testserver/posts/other"},
        )

        view = (await db.execute(select(PostView))).scalar_one()
        assert view.traffic_source == "direct"

    @pytest.mark.asyncio
    async def test_admin_token_marks_view(self, client: AsyncClient, db, make_post, admin_headers):
        post = await make_post()

        response = await client.post(
            "/api/views/track", json={"postId": post.id}, headers=admin_headers
        )

        assert response.status_code == 201
        view = (await db.execute(select(PostView))).scalar_one()
        assert view.is_admin is True

    @pytest.mark.asyncio
    async def test_invalid_token_counts_as_visitor(self, client: AsyncClient, db, make_post):
        post = await make_post()

        response = await client.post(
            "/api/views/track",
            json={"postId": post.id},
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 201
        view = (await db.execute(select(PostView))).scalar_one()
        assert view.is_admin is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"postId": "abc"},
            {"postId": 0},
            {"postId": -3},
            {},
            {"postId": 1, "visitorKey": "x" * 129},
        ],
    )
    async def test_invalid_body(self, client: AsyncClient, body):
        response = await client.post("/api/views/track", json=body)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["message"]

    @pytest.mark.asyncio
    async def test_oversized_visitor_header(self, client: AsyncClient, make_post):
        post = await make_post()

        response = await client.post(
            "/api/views/track", json={"postId": post.id}, headers={"X-Visitor-ID": "x" * 200}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_post(self, client: AsyncClient):
        response = await client.post("/api/views/track", json={"postId": 4242})

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Post not found"}

    @pytest.mark.asyncio
    async def test_draft_post(self, client: AsyncClient, make_post):
        draft = await make_post(is_published=False)

        response = await client.post("/api/views/track", json={"postId": draft.id})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_timeout_maps_to_503(self, client: AsyncClient, make_post, monkeypatch):
        post = await make_post()

        async def _slow_record(*args, **kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr("blog_analytics.api.views.record_view", _slow_record)
        monkeypatch.setattr(settings, "view_record_timeout_seconds", 0.01)

        response = await client.post("/api/views/track", json={"postId": post.id})

        assert response.status_code == 503
        assert response.json() == {"success": False, "message": "Record store unavailable"}

    @pytest.mark.asyncio
    async def test_store_failure_maps_to_503(self, client: AsyncClient, db, make_post, monkeypatch):
        post = await make_post()
        failure = OperationalError("INSERT INTO post_views", {}, Exception("disk I/O error"))
        monkeypatch.setattr(db, "commit", AsyncMock(side_effect=failure))

        response = await client.post(
            "/api/views/track", json={"postId": post.id, "visitorKey": "v1"}
        )

        assert response.status_code == 503
        assert response.json() == {"success": False, "message": "Record store unavailable"}
        assert await _view_count(db) == 0
