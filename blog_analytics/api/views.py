"""Public view-tracking endpoint called by the blog frontend."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from blog_analytics.api.schemas import ViewTrackRequest, ViewTrackResponse
from blog_analytics.core.config import settings
from blog_analytics.core.deps import get_db
from blog_analytics.core.exceptions import StoreError
from blog_analytics.core.rate_limit import limiter
from blog_analytics.core.security import is_admin_request
from blog_analytics.services.views import build_visitor_context, record_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/views", tags=["views"])


@router.post(
    "/track",
    response_model=ViewTrackResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"model": ViewTrackResponse, "description": "View already recorded"}},
)
@limiter.limit(settings.rate_limit_view_track)
async def track_view(
    request: Request,
    body: ViewTrackRequest,
    is_admin: bool = Depends(is_admin_request),
    db: AsyncSession = Depends(get_db),
):
    visitor = build_visitor_context(request, body, is_admin)

    try:
        result = await asyncio.wait_for(
            record_view(db, body.post_id, visitor),
            timeout=settings.view_record_timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        logger.error(
            "View recording timed out",
            extra={
                "post_id": body.post_id,
                "timeout_seconds": settings.view_record_timeout_seconds,
            },
        )
        raise StoreError() from exc

    if result.recorded:
        return ViewTrackResponse(recorded=True, message="View recorded")

    payload = ViewTrackResponse(recorded=False, message="View already recorded")
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=payload.model_dump(by_alias=True),
    )
