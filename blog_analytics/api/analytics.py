"""Admin analytics dashboard endpoints."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from blog_analytics.api.schemas import (
    CategoryCount,
    CategoryViews,
    CommentActivityPoint,
    DataResponse,
    DrillDownRow,
    KpiResponse,
    PublicationsPoint,
    RecentCommentRow,
    TopCommentedRow,
    TopViewedRow,
    ViewsPoint,
)
from blog_analytics.core.config import settings
from blog_analytics.core.deps import get_db
from blog_analytics.core.rbac import require_admin
from blog_analytics.services import analytics
from blog_analytics.services.csv_export import CSV_MEDIA_TYPE, csv_filename, export_csv
from blog_analytics.services.filters import AnalyticsFilter, FilterDefaults, resolve_filter

# require_admin runs before any endpoint dependency, so unauthenticated
# requests never reach filter validation or the database.
router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
    dependencies=[Depends(require_admin)],
)


def analytics_filter(
    period: str | None = Query(None, description="7, 30, 90, 365 or all"),
    date_from: str | None = Query(None, alias="from", description="YYYY-MM-DD"),
    date_to: str | None = Query(None, alias="to", description="YYYY-MM-DD"),
    category: str | None = Query(None),
) -> AnalyticsFilter:
    return resolve_filter(
        period,
        date_from,
        date_to,
        category,
        defaults=FilterDefaults.from_settings(settings),
    )


@router.get("/kpis", response_model=KpiResponse)
async def get_kpis(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
) -> KpiResponse:
    return KpiResponse(kpis=await analytics.get_kpis(db, flt))


@router.get("/views-over-time", response_model=DataResponse[ViewsPoint])
async def views_over_time(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[ViewsPoint](data=await analytics.get_views_over_time(db, flt))


@router.get("/publications-over-time", response_model=DataResponse[PublicationsPoint])
async def publications_over_time(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[PublicationsPoint](
        data=await analytics.get_publications_over_time(db, flt)
    )


@router.get("/category-distribution", response_model=DataResponse[CategoryCount])
async def category_distribution(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[CategoryCount](
        data=await analytics.get_category_distribution(db, flt)
    )


@router.get("/comment-activity", response_model=DataResponse[CommentActivityPoint])
async def comment_activity(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[CommentActivityPoint](
        data=await analytics.get_comment_activity(db, flt)
    )


@router.get("/views-by-category", response_model=DataResponse[CategoryViews])
async def views_by_category(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[CategoryViews](data=await analytics.get_views_by_category(db, flt))


@router.get("/top-viewed", response_model=DataResponse[TopViewedRow])
@router.get("/top-posts", response_model=DataResponse[TopViewedRow])
async def top_viewed(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[TopViewedRow](data=await analytics.get_top_viewed(db, flt))


@router.get("/top-commented", response_model=DataResponse[TopCommentedRow])
async def top_commented(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[TopCommentedRow](data=await analytics.get_top_commented(db, flt))


@router.get("/last-comments", response_model=DataResponse[RecentCommentRow])
async def last_comments(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[RecentCommentRow](
        data=await analytics.get_recent_comments(db, flt)
    )


@router.get("/drill-down", response_model=DataResponse[DrillDownRow])
async def drill_down(
    date: str | None = Query(None, description="YYYY-MM-DD, YYYY-Wnn or YYYY-MM"),
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
):
    return DataResponse[DrillDownRow](data=await analytics.get_drill_down(db, flt, date))


@router.get("/export-csv", response_class=Response)
async def export(
    flt: AnalyticsFilter = Depends(analytics_filter),
    db: AsyncSession = Depends(get_db),
) -> Response:
    return Response(
        content=await export_csv(db, flt),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{csv_filename(flt)}"'},
    )
