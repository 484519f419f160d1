"""View recording: traffic-source classification, visitor keys and dedup."""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blog_analytics.api.schemas import ViewTrackRequest
from blog_analytics.core.config import settings
from blog_analytics.core.constants import TrafficSource
from blog_analytics.core.exceptions import NotFoundError, StoreError, ValidationError
from blog_analytics.models.post import Post
from blog_analytics.models.post_view import PostView

logger = logging.getLogger(__name__)

MAX_VISITOR_KEY_LENGTH = 128

# Tokens with a dot match the host or any subdomain of it; bare tokens match
# a single label (so "google" covers google.com, google.co.uk, news.google.de).
SEARCH_HOSTS = ("google", "bing", "yahoo", "duckduckgo", "baidu", "yandex", "ecosia")
SOCIAL_HOSTS = (
    "facebook",
    "twitter",
    "x.com",
    "t.co",
    "linkedin",
    "instagram",
    "reddit",
    "pinterest",
    "tiktok",
)

_SOURCE_TOKENS = {source.value: source for source in TrafficSource}


def _strip_www(host: str) -> str:
    host = host.lower().rstrip(".")
    return host[4:] if host.startswith("www.") else host


def _host_matches(host: str, token: str) -> bool:
    if "." in token:
        return host == token or host.endswith("." + token)
    return token in host.split(".")


def classify_referrer(referrer: str | None, site_hosts=()) -> TrafficSource:
    """Map a referrer URL (or an already classified token) to a traffic source."""
    raw = (referrer or "").strip()
    if not raw:
        return TrafficSource.DIRECT
    if raw in _SOURCE_TOKENS:
        return _SOURCE_TOKENS[raw]

    try:
        host = urlsplit(raw).hostname or ""
    except ValueError:
        return TrafficSource.DIRECT
    host = _strip_www(host)
    if not host:
        return TrafficSource.DIRECT

    if host in {_strip_www(h) for h in site_hosts if h}:
        return TrafficSource.DIRECT
    if any(_host_matches(host, token) for token in SEARCH_HOSTS):
        return TrafficSource.SEARCH
    if any(_host_matches(host, token) for token in SOCIAL_HOSTS):
        return TrafficSource.SOCIAL
    return TrafficSource.OTHER


def compute_visitor_key(
    explicit: str | None,
    ip: str | None = None,
    user_agent: str | None = None,
    salt: str = "",
) -> str:
    """Hash the client identifier (or ip|user-agent); raw values are never stored."""
    explicit = (explicit or "").strip()
    material = explicit or f"{ip or ''}|{user_agent or ''}"
    return hashlib.sha256((salt + material).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class VisitorContext:
    visitor_key: str
    traffic_source: TrafficSource = TrafficSource.DIRECT
    is_admin: bool = False


@dataclass(frozen=True)
class ViewRecordResult:
    recorded: bool


def build_visitor_context(
    request: Request, body: ViewTrackRequest, is_admin: bool = False
) -> VisitorContext:
    explicit = body.visitor_key or request.headers.get("X-Visitor-ID")
    if explicit and len(explicit) > MAX_VISITOR_KEY_LENGTH:
        raise ValidationError(
            f"visitorKey must be at most {MAX_VISITOR_KEY_LENGTH} characters"
        )

    site_hosts = list(settings.site_hosts)
    if request.url.hostname:
        site_hosts.append(request.url.hostname)

    return VisitorContext(
        visitor_key=compute_visitor_key(
            explicit,
            ip=request.client.host if request.client else None,
            user_agent=request.headers.get("User-Agent"),
            salt=settings.visitor_hash_salt,
        ),
        traffic_source=classify_referrer(
            body.referrer or request.headers.get("Referer"), site_hosts
        ),
        is_admin=is_admin,
    )


async def record_view(
    db: AsyncSession,
    post_id: int,
    visitor: VisitorContext,
    *,
    now: datetime | None = None,
) -> ViewRecordResult:
    """Store one view unless the same visitor already viewed the post recently.

    The duplicate check and the insert are not atomic; two simultaneous
    requests may both be recorded.
    """
    now = now or datetime.now(timezone.utc)

    try:
        post = await db.get(Post, post_id)
        if post is None or not post.is_published:
            raise NotFoundError("Post not found")

        if not visitor.is_admin:
            since = now - timedelta(hours=settings.view_dedup_hours)
            existing = await db.execute(
                select(PostView.id)
                .where(
                    PostView.post_id == post_id,
                    PostView.visitor_key == visitor.visitor_key,
                    PostView.is_admin == False,  # noqa: E712
                    PostView.viewed_at >= since,
                )
                .limit(1)
            )
            if existing.scalar_one_or_none() is not None:
                logger.debug("view.deduplicated", extra={"post_id": post_id})
                return ViewRecordResult(recorded=False)

        db.add(
            PostView(
                post_id=post_id,
                viewed_at=now,
                traffic_source=visitor.traffic_source.value,
                is_admin=visitor.is_admin,
                visitor_key=visitor.visitor_key,
            )
        )
        await db.commit()
    except SQLAlchemyError as exc:
        logger.exception("Failed to record view", extra={"post_id": post_id})
        await db.rollback()
        raise StoreError() from exc

    logger.debug(
        "view.recorded",
        extra={
            "post_id": post_id,
            "traffic_source": visitor.traffic_source.value,
            "is_admin": visitor.is_admin,
        },
    )
    return ViewRecordResult(recorded=True)
