"""add analytics indexes

Revision ID: 003
Revises: 002
Create Date: 2025-01-03 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Use IF NOT EXISTS to be idempotent (safe against partial reruns)
    conn = op.get_bind()
    # Post scope: created_at range + category
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_posts_created_category ON posts (created_at, category)"))
    # Comment counts and monthly activity per post
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_comments_post_created ON comments (post_id, created_at)"))
    # View dedup lookup
    conn.execute(text(
        "CREATE INDEX IF NOT EXISTS ix_post_views_post_visitor_viewed "
        "ON post_views (post_id, visitor_key, viewed_at)"
    ))
    # Per-post view counts inside a window
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_post_views_post_viewed ON post_views (post_id, viewed_at)"))


def downgrade() -> None:
    op.drop_index("ix_post_views_post_viewed", table_name="post_views")
    op.drop_index("ix_post_views_post_visitor_viewed", table_name="post_views")
    op.drop_index("ix_comments_post_created", table_name="comments")
    op.drop_index("ix_posts_created_category", table_name="posts")
