from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class DataResponse(CamelModel, Generic[T]):
    success: bool = True
    data: list[T]


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
    errors: list[str] | None = None


# ---------------------------------------------------------------------------
# KPIs
# ---------------------------------------------------------------------------


class Trend(CamelModel):
    direction: Literal["up", "down", "unchanged"]
    percent_change: float


class KpiMetric(CamelModel):
    value: int | float
    previous_value: int | float
    trend: Trend


class BlogsKpi(KpiMetric):
    published: int
    drafts: int


class CommentsKpi(KpiMetric):
    approved: int
    pending: int


class MostActiveCategory(CamelModel):
    value: str
    count: int


class KpiSummary(CamelModel):
    total_views: KpiMetric
    total_blogs: BlogsKpi
    published_blogs: KpiMetric
    draft_blogs: KpiMetric
    total_comments: CommentsKpi
    approved_comments: KpiMetric
    pending_comments: KpiMetric
    avg_engagement: KpiMetric
    approval_rate: KpiMetric
    most_active_category: MostActiveCategory


class KpiResponse(CamelModel):
    success: bool = True
    kpis: KpiSummary


# ---------------------------------------------------------------------------
# Series and distributions
# ---------------------------------------------------------------------------


class ViewsPoint(CamelModel):
    date: str
    views: int


# Publications rows carry one key per category, so they stay plain dicts.
PublicationsPoint = dict[str, Any]


class CategoryCount(CamelModel):
    category: str
    count: int
    percent: float


class CommentActivityPoint(CamelModel):
    month: str
    approved: int
    pending: int
    total: int


class CategoryViews(CamelModel):
    category: str
    views: int


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


class TopViewedRow(CamelModel):
    id: int
    title: str
    category: str
    views: int
    comments: int
    publish_date: datetime


class CommentSplit(CamelModel):
    approved: int
    total: int


class TopCommentedRow(CamelModel):
    id: int
    title: str
    category: str
    comments: CommentSplit
    views: int
    publish_date: datetime


class RecentCommentRow(CamelModel):
    id: int
    author_name: str
    content_excerpt: str
    blog_title: str
    blog_id: int
    created_at: datetime
    status: Literal["approved", "pending"]


class DrillDownRow(CamelModel):
    id: int
    title: str
    category: str
    views: int
    publish_date: datetime


# ---------------------------------------------------------------------------
# View tracking
# ---------------------------------------------------------------------------


class ViewTrackRequest(CamelModel):
    post_id: int = Field(gt=0)
    visitor_key: str | None = Field(default=None, max_length=128)
    # Either a referring URL or an already classified source token
    referrer: str | None = Field(default=None, max_length=2048)


class ViewTrackResponse(CamelModel):
    success: bool = True
    recorded: bool
    message: str
