from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blog_analytics.core.constants import TrafficSource
from blog_analytics.db.base import Base, utcnow


class PostView(Base):
    """One recorded page view.

    Non-admin views are unique per (post, visitor_key) within the dedup
    window only on a best-effort basis: the recorder checks before inserting
    and there is deliberately no unique constraint backing it.
    """

    __tablename__ = "post_views"
    __table_args__ = (
        Index("ix_post_views_post_visitor_viewed", "post_id", "visitor_key", "viewed_at"),
        Index("ix_post_views_post_viewed", "post_id", "viewed_at"),
    )

    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    traffic_source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TrafficSource.DIRECT.value,
        server_default=TrafficSource.DIRECT.value,
    )
    is_admin: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    # sha256 hex digest; raw identifiers are never stored
    visitor_key: Mapped[str] = mapped_column(String(64), nullable=False)

    post = relationship("Post", back_populates="views")
