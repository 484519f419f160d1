"""Read-only analytics aggregations over posts, comments and views.

Every query starts from the *post scope*: posts created inside the filter
range and, unless the filter says "All", in the requested category. View
counts only include non-admin views inside the same range and are always
joined through an existing post, so orphaned rows never leak into totals.

An empty scope is a normal outcome: every function returns zeroes or an
empty list instead of raising.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_analytics.api.schemas import (
    BlogsKpi,
    CategoryCount,
    CategoryViews,
    CommentActivityPoint,
    CommentsKpi,
    CommentSplit,
    DrillDownRow,
    KpiMetric,
    KpiSummary,
    MostActiveCategory,
    PublicationsPoint,
    RecentCommentRow,
    TopCommentedRow,
    TopViewedRow,
    Trend,
    ViewsPoint,
)
from blog_analytics.core.config import settings
from blog_analytics.core.constants import CATEGORIES
from blog_analytics.models.comment import Comment
from blog_analytics.models.post import Post
from blog_analytics.models.post_view import PostView
from blog_analytics.services.filters import (
    AnalyticsFilter,
    as_utc,
    bucket_label,
    bucket_size,
    month_label,
    parse_bucket_label,
)

logger = logging.getLogger(__name__)

NO_CATEGORY = "N/A"

_approved = case((Comment.is_approved == True, 1), else_=0)  # noqa: E712
_published = case((Post.is_published == True, 1), else_=0)  # noqa: E712


def _post_scope(flt: AnalyticsFilter) -> list:
    conditions = [Post.created_at >= flt.start, Post.created_at <= flt.end]
    if flt.is_category_filtered:
        conditions.append(Post.category == flt.category)
    return conditions


def _counted_views(window: AnalyticsFilter) -> list:
    """Views that count towards engagement: non-admin and inside the window."""
    return [
        PostView.is_admin == False,  # noqa: E712
        PostView.viewed_at >= window.start,
        PostView.viewed_at <= window.end,
    ]


def _category_rank(category: str) -> int:
    try:
        return CATEGORIES.index(category)
    except ValueError:
        return len(CATEGORIES)


def excerpt(text: str | None, limit: int) -> str:
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


# ---------------------------------------------------------------------------
# KPIs
# ---------------------------------------------------------------------------


def calculate_trend(current: float, previous: float) -> Trend:
    """Compare a metric with its previous-period value."""
    if previous == 0:
        if current > 0:
            return Trend(direction="up", percent_change=100.0)
        return Trend(direction="unchanged", percent_change=0.0)

    change = (current - previous) / previous * 100
    if change > 0:
        direction = "up"
    elif change < 0:
        direction = "down"
    else:
        direction = "unchanged"
    return Trend(direction=direction, percent_change=round(change, 2))


@dataclass
class PeriodTotals:
    views: int = 0
    posts: int = 0
    published: int = 0
    comments: int = 0
    approved: int = 0
    posts_by_category: dict[str, int] | None = None

    @property
    def drafts(self) -> int:
        return self.posts - self.published

    @property
    def pending(self) -> int:
        return self.comments - self.approved

    @property
    def avg_engagement(self) -> float:
        return self.views / self.published if self.published else 0.0

    @property
    def approval_rate(self) -> float:
        return self.approved / self.comments * 100 if self.comments else 0.0

    def most_active_category(self) -> tuple[str, int]:
        """Category with the most posts; ties go to the earlier enum member."""
        best, best_count = NO_CATEGORY, 0
        counts = self.posts_by_category or {}
        for category in CATEGORIES:
            count = counts.get(category, 0)
            if count > best_count:
                best, best_count = category, count
        return best, best_count


async def collect_period_totals(db: AsyncSession, flt: AnalyticsFilter) -> PeriodTotals:
    """Counts for one period. Queries run sequentially on the caller's session."""
    scope = _post_scope(flt)

    post_rows = (
        await db.execute(
            select(Post.category, func.count(Post.id), func.sum(_published))
            .where(*scope)
            .group_by(Post.category)
        )
    ).all()
    posts_by_category = {category: count for category, count, _ in post_rows}

    views = (
        await db.execute(
            select(func.count(PostView.id))
            .select_from(PostView)
            .join(Post, Post.id == PostView.post_id)
            .where(*scope, *_counted_views(flt))
        )
    ).scalar() or 0

    comment_total, comment_approved = (
        await db.execute(
            select(func.count(Comment.id), func.sum(_approved))
            .select_from(Comment)
            .join(Post, Post.id == Comment.post_id)
            .where(*scope)
        )
    ).one()

    return PeriodTotals(
        views=views,
        posts=sum(posts_by_category.values()),
        published=sum(int(published or 0) for _, _, published in post_rows),
        comments=comment_total or 0,
        approved=int(comment_approved or 0),
        posts_by_category=posts_by_category,
    )


def _metric(current: float, previous: float, digits: int | None = None, **extra) -> dict:
    shown = round(current, digits) if digits is not None else current
    shown_prev = round(previous, digits) if digits is not None else previous
    return {
        "value": shown,
        "previous_value": shown_prev,
        "trend": calculate_trend(current, previous),
        **extra,
    }


async def get_kpis(db: AsyncSession, flt: AnalyticsFilter) -> KpiSummary:
    current = await collect_period_totals(db, flt)
    previous = await collect_period_totals(db, flt.previous_period())
    category, category_count = current.most_active_category()

    return KpiSummary(
        total_views=KpiMetric(**_metric(current.views, previous.views)),
        total_blogs=BlogsKpi(
            **_metric(
                current.posts,
                previous.posts,
                published=current.published,
                drafts=current.drafts,
            )
        ),
        published_blogs=KpiMetric(**_metric(current.published, previous.published)),
        draft_blogs=KpiMetric(**_metric(current.drafts, previous.drafts)),
        total_comments=CommentsKpi(
            **_metric(
                current.comments,
                previous.comments,
                approved=current.approved,
                pending=current.pending,
            )
        ),
        approved_comments=KpiMetric(**_metric(current.approved, previous.approved)),
        pending_comments=KpiMetric(**_metric(current.pending, previous.pending)),
        avg_engagement=KpiMetric(
            **_metric(current.avg_engagement, previous.avg_engagement, digits=2)
        ),
        approval_rate=KpiMetric(
            **_metric(current.approval_rate, previous.approval_rate, digits=2)
        ),
        most_active_category=MostActiveCategory(value=category, count=category_count),
    )


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------


async def get_views_over_time(db: AsyncSession, flt: AnalyticsFilter) -> list[ViewsPoint]:
    """Non-admin views grouped into day / ISO-week / month buckets, oldest first."""
    size = bucket_size(flt.start, flt.end)
    result = await db.execute(
        select(PostView.viewed_at)
        .select_from(PostView)
        .join(Post, Post.id == PostView.post_id)
        .where(*_post_scope(flt), *_counted_views(flt))
    )

    counts: dict[str, int] = defaultdict(int)
    for viewed_at in result.scalars():
        counts[bucket_label(viewed_at, size)] += 1

    return [ViewsPoint(date=label, views=n) for label, n in sorted(counts.items())]


async def get_publications_over_time(
    db: AsyncSession, flt: AnalyticsFilter
) -> list[PublicationsPoint]:
    """Posts per creation month with a count for every category (stack-ready)."""
    result = await db.execute(
        select(Post.created_at, Post.category).where(*_post_scope(flt))
    )

    by_month: dict[str, dict[str, int]] = {}
    for created_at, category in result.all():
        counts = by_month.setdefault(month_label(created_at), dict.fromkeys(CATEGORIES, 0))
        counts[category] = counts.get(category, 0) + 1

    return [
        {"month": month, **counts, "total": sum(counts.values())}
        for month, counts in sorted(by_month.items())
    ]


async def get_comment_activity(
    db: AsyncSession, flt: AnalyticsFilter
) -> list[CommentActivityPoint]:
    result = await db.execute(
        select(Comment.created_at, Comment.is_approved)
        .select_from(Comment)
        .join(Post, Post.id == Comment.post_id)
        .where(*_post_scope(flt))
    )

    by_month: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    for created_at, is_approved in result.all():
        by_month[month_label(created_at)][0 if is_approved else 1] += 1

    return [
        CommentActivityPoint(
            month=month, approved=approved, pending=pending, total=approved + pending
        )
        for month, (approved, pending) in sorted(by_month.items())
    ]


# ---------------------------------------------------------------------------
# Distributions
# ---------------------------------------------------------------------------


async def get_category_distribution(
    db: AsyncSession, flt: AnalyticsFilter
) -> list[CategoryCount]:
    """Published posts per category, largest first."""
    rows = (
        await db.execute(
            select(Post.category, func.count(Post.id))
            .where(*_post_scope(flt), Post.is_published == True)  # noqa: E712
            .group_by(Post.category)
        )
    ).all()
    total = sum(count for _, count in rows)
    ordered = sorted(rows, key=lambda row: (-row[1], _category_rank(row[0])))
    return [
        CategoryCount(
            category=category,
            count=count,
            percent=round(count / total * 100, 2) if total else 0.0,
        )
        for category, count in ordered
    ]


async def get_views_by_category(
    db: AsyncSession, flt: AnalyticsFilter
) -> list[CategoryViews]:
    rows = (
        await db.execute(
            select(Post.category, func.count(PostView.id))
            .select_from(PostView)
            .join(Post, Post.id == PostView.post_id)
            .where(*_post_scope(flt), *_counted_views(flt))
            .group_by(Post.category)
        )
    ).all()
    ordered = sorted(rows, key=lambda row: (-row[1], _category_rank(row[0])))
    return [CategoryViews(category=category, views=views) for category, views in ordered]


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


async def _comment_counts(db: AsyncSession, post_ids: list[int]) -> dict[int, tuple[int, int]]:
    """post_id -> (total, approved) over all comments of those posts."""
    if not post_ids:
        return {}
    rows = (
        await db.execute(
            select(Comment.post_id, func.count(Comment.id), func.sum(_approved))
            .where(Comment.post_id.in_(post_ids))
            .group_by(Comment.post_id)
        )
    ).all()
    return {post_id: (total, int(approved or 0)) for post_id, total, approved in rows}


async def _view_counts(
    db: AsyncSession, post_ids: list[int], window: AnalyticsFilter
) -> dict[int, int]:
    if not post_ids:
        return {}
    rows = (
        await db.execute(
            select(PostView.post_id, func.count(PostView.id))
            .where(PostView.post_id.in_(post_ids), *_counted_views(window))
            .group_by(PostView.post_id)
        )
    ).all()
    return dict(rows)


async def _ranked_by_views(
    db: AsyncSession,
    flt: AnalyticsFilter,
    window: AnalyticsFilter,
    limit: int | None = None,
) -> list:
    """Scoped posts that have counted views in ``window``, most viewed first."""
    views = func.count(PostView.id).label("views")
    stmt = (
        select(Post.id, Post.title, Post.category, Post.created_at, views)
        .select_from(Post)
        .join(PostView, PostView.post_id == Post.id)
        .where(*_post_scope(flt), *_counted_views(window))
        .group_by(Post.id, Post.title, Post.category, Post.created_at)
        .order_by(views.desc(), Post.id.asc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return (await db.execute(stmt)).all()


async def get_top_viewed(
    db: AsyncSession, flt: AnalyticsFilter, limit: int | None = None
) -> list[TopViewedRow]:
    rows = await _ranked_by_views(db, flt, flt, limit or settings.analytics_top_n)
    comments = await _comment_counts(db, [row.id for row in rows])
    return [
        TopViewedRow(
            id=row.id,
            title=row.title,
            category=row.category,
            views=row.views,
            comments=comments.get(row.id, (0, 0))[0],
            publish_date=as_utc(row.created_at),
        )
        for row in rows
    ]


async def get_top_commented(
    db: AsyncSession, flt: AnalyticsFilter, limit: int | None = None
) -> list[TopCommentedRow]:
    total = func.count(Comment.id).label("total")
    approved = func.sum(_approved).label("approved")
    rows = (
        await db.execute(
            select(Post.id, Post.title, Post.category, Post.created_at, total, approved)
            .select_from(Post)
            .join(Comment, Comment.post_id == Post.id)
            .where(*_post_scope(flt))
            .group_by(Post.id, Post.title, Post.category, Post.created_at)
            .order_by(total.desc(), Post.id.asc())
            .limit(limit or settings.analytics_top_n)
        )
    ).all()
    views = await _view_counts(db, [row.id for row in rows], flt)
    return [
        TopCommentedRow(
            id=row.id,
            title=row.title,
            category=row.category,
            comments=CommentSplit(approved=int(row.approved or 0), total=row.total),
            views=views.get(row.id, 0),
            publish_date=as_utc(row.created_at),
        )
        for row in rows
    ]


async def get_recent_comments(
    db: AsyncSession, flt: AnalyticsFilter, limit: int | None = None
) -> list[RecentCommentRow]:
    result = await db.execute(
        select(Comment, Post.title)
        .join(Post, Post.id == Comment.post_id)
        .where(*_post_scope(flt))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .limit(limit or settings.analytics_top_n)
    )
    return [
        RecentCommentRow(
            id=comment.id,
            author_name=comment.author_name,
            content_excerpt=excerpt(comment.content, settings.comment_excerpt_length),
            blog_title=title,
            blog_id=comment.post_id,
            created_at=as_utc(comment.created_at),
            status="approved" if comment.is_approved else "pending",
        )
        for comment, title in result.all()
    ]


async def get_drill_down(
    db: AsyncSession, flt: AnalyticsFilter, label: str
) -> list[DrillDownRow]:
    """Per-post views inside one views-over-time bucket.

    Posts still come from the active scope; only the view window is replaced
    by the bucket's exact range. That window is not intersected with the
    filter range, so the first and last buckets of a chart can drill down to
    more views than the chart shows for them, and a label outside the range
    (``2025-W03`` with ``period=90``) still resolves to that whole bucket.
    """
    start, end = parse_bucket_label(label)
    rows = await _ranked_by_views(db, flt, flt.with_range(start, end))
    return [
        DrillDownRow(
            id=row.id,
            title=row.title,
            category=row.category,
            views=row.views,
            publish_date=as_utc(row.created_at),
        )
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExportRow:
    title: str
    category: str
    created_at: datetime
    views: int
    comments: int
    is_published: bool

    @property
    def status(self) -> str:
        return "published" if self.is_published else "draft"


async def get_export_rows(db: AsyncSession, flt: AnalyticsFilter) -> list[ExportRow]:
    """Every post in scope with its counted views and total comments.

    Ordered by views (desc), then newest first.
    """
    posts = (
        await db.execute(
            select(Post.id, Post.title, Post.category, Post.created_at, Post.is_published)
            .where(*_post_scope(flt))
        )
    ).all()
    post_ids = [post.id for post in posts]
    views = await _view_counts(db, post_ids, flt)
    comments = await _comment_counts(db, post_ids)

    rows = [
        ExportRow(
            title=post.title,
            category=post.category,
            created_at=as_utc(post.created_at),
            views=views.get(post.id, 0),
            comments=comments.get(post.id, (0, 0))[0],
            is_published=post.is_published,
        )
        for post in posts
    ]
    rows.sort(key=lambda row: row.created_at, reverse=True)
    rows.sort(key=lambda row: row.views, reverse=True)
    logger.debug("Prepared %d export rows", len(rows))
    return rows
