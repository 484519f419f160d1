from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from itertools import count

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from blog_analytics.core.constants import ROLE_ADMIN, ROLE_AUTHOR, TrafficSource
from blog_analytics.core.deps import get_db
from blog_analytics.core.rate_limit import limiter
from blog_analytics.core.security import create_access_token
from blog_analytics.db.base import Base
from blog_analytics.main import app
from blog_analytics.models import Comment, Post, PostView, User

# Disable rate limiting for tests
limiter.enabled = False

# In-memory SQLite; StaticPool keeps the single connection (and its data) alive
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_visitor_seq = count(1)


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Fresh schema per test; the app shares this session through get_db."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:

        async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = _get_test_db
        yield session

    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the FastAPI app (no real server)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token({"sub": "1", "role": ROLE_ADMIN})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def author_headers() -> dict:
    token = create_access_token({"sub": "2", "role": ROLE_AUTHOR})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def author(db: AsyncSession) -> User:
    user = User(name="Jane Writer", email="jane@example.com", role=ROLE_AUTHOR)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
def make_post(db: AsyncSession, author: User):
    async def _make(
        title: str = "Hello world",
        category: str = "Technology",
        created_at: datetime | None = None,
        is_published: bool = True,
    ) -> Post:
        post = Post(
            title=title,
            category=category,
            author_id=author.id,
            author_name=author.name,
            is_published=is_published,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db.add(post)
        await db.commit()
        return post

    return _make


@pytest.fixture
def make_comment(db: AsyncSession):
    async def _make(
        post: Post,
        created_at: datetime | None = None,
        is_approved: bool = True,
        content: str = "Nice post!",
        author_name: str = "Reader",
    ) -> Comment:
        comment = Comment(
            post_id=post.id,
            author_name=author_name,
            content=content,
            is_approved=is_approved,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db.add(comment)
        await db.commit()
        return comment

    return _make


@pytest.fixture
def make_views(db: AsyncSession):
    """Insert ``n`` views of a post, each from a distinct visitor."""

    async def _make(
        post: Post,
        n: int = 1,
        viewed_at: datetime | None = None,
        is_admin: bool = False,
        traffic_source: TrafficSource = TrafficSource.DIRECT,
    ) -> list[PostView]:
        views = [
            PostView(
                post_id=post.id,
                viewed_at=viewed_at or datetime.now(timezone.utc),
                traffic_source=traffic_source.value,
                is_admin=is_admin,
                visitor_key=f"{next(_visitor_seq):064x}",
            )
            for _ in range(n)
        ]
        db.add_all(views)
        await db.commit()
        return views

    return _make
