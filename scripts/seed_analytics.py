"""Seed the database with demo content for the analytics dashboard.

Creates an admin and a few authors, posts spread over the last year in every
category, comments (approved and pending) and views from several traffic
sources. A share of the views are admin views and repeat visits, which the
dashboard must not count. Prints an admin bearer token at the end.

Tables must exist already (``alembic upgrade head``).

Usage:
    python -m scripts.seed_analytics [--posts N] [--seed S]
"""

import asyncio
import random
import sys
from datetime import datetime, timedelta, timezone

from blog_analytics.core.constants import CATEGORIES, ROLE_ADMIN, TrafficSource
from blog_analytics.core.security import create_access_token
from blog_analytics.db.session import async_session_factory, engine
from blog_analytics.models import Comment, Post, User
from blog_analytics.services.views import VisitorContext, compute_visitor_key, record_view

COMMENTERS = ("Ada", "Linus", "Grace", "Ken", "Barbara", "Dennis", "Margaret")
SOURCES = (
    TrafficSource.DIRECT,
    TrafficSource.DIRECT,
    TrafficSource.SEARCH,
    TrafficSource.SOCIAL,
    TrafficSource.OTHER,
)


def plan_views(
    created_at: datetime, now: datetime, rng: random.Random, max_views: int = 40
) -> list[tuple[datetime, VisitorContext]]:
    """Random view events for one post, oldest first.

    About one visit in five is repeated at the same instant. Dedup only looks
    back from each view, so events must be replayed in time order.
    """
    age = max((now - created_at).total_seconds(), 3600)
    events = []
    for _ in range(rng.randint(0, max_views)):
        viewed_at = created_at + timedelta(seconds=rng.uniform(0, age))
        visitor = VisitorContext(
            visitor_key=compute_visitor_key(f"visitor-{rng.randint(1, 500)}"),
            traffic_source=rng.choice(SOURCES),
            is_admin=rng.random() < 0.1,
        )
        attempts = 2 if rng.random() < 0.2 else 1
        events.extend([(viewed_at, visitor)] * attempts)
    events.sort(key=lambda event: event[0])
    return events


async def seed(post_count: int, rng: random.Random) -> None:
    now = datetime.now(timezone.utc)
    recorded = skipped = 0

    async with async_session_factory() as db:
        admin = User(name="Admin", email=f"admin-{rng.getrandbits(32):08x}@example.com", role=ROLE_ADMIN)
        authors = [
            User(name=f"Author {i}", email=f"author{i}-{rng.getrandbits(32):08x}@example.com")
            for i in range(1, 4)
        ]
        db.add_all([admin, *authors])
        await db.flush()

        posts = []
        for i in range(post_count):
            author = rng.choice(authors)
            category = rng.choice(CATEGORIES)
            created_at = now - timedelta(days=rng.randint(0, 364), hours=rng.randint(0, 23))
            post = Post(
                title=f"Post #{i + 1}: {category} notes",
                body="Lorem ipsum dolor sit amet.",
                category=category,
                author_id=author.id,
                author_name=author.name,
                is_published=rng.random() < 0.8,
                created_at=created_at,
            )
            posts.append(post)
        db.add_all(posts)
        await db.flush()

        for post in posts:
            for _ in range(rng.randint(0, 6)):
                db.add(
                    Comment(
                        post_id=post.id,
                        author_name=rng.choice(COMMENTERS),
                        content="Great read! " * rng.randint(1, 15),
                        is_approved=rng.random() < 0.7,
                        created_at=min(now, post.created_at + timedelta(hours=rng.randint(1, 24 * 30))),
                    )
                )
        await db.commit()

        published = [post for post in posts if post.is_published]
        for post in published:
            for viewed_at, visitor in plan_views(post.created_at, now, rng):
                result = await record_view(db, post.id, visitor, now=viewed_at)
                if result.recorded:
                    recorded += 1
                else:
                    skipped += 1

        admin_id = admin.id

    await engine.dispose()

    print(f"Posts:    {len(posts)} ({len(published)} published)")
    print(f"Views:    {recorded} recorded, {skipped} deduplicated")
    print()
    print("Admin bearer token:")
    print(create_access_token({"sub": str(admin_id), "role": ROLE_ADMIN}))


def main() -> None:
    args = sys.argv[1:]
    post_count, seed_value = 40, 42

    try:
        if "--posts" in args:
            post_count = int(args[args.index("--posts") + 1])
        if "--seed" in args:
            seed_value = int(args[args.index("--seed") + 1])
    except (IndexError, ValueError):
        print("Usage: python -m scripts.seed_analytics [--posts N] [--seed S]")
        sys.exit(1)

    print(f"=== Seeding {post_count} posts (seed={seed_value}) ===")
    asyncio.run(seed(post_count, random.Random(seed_value)))


if __name__ == "__main__":
    main()
