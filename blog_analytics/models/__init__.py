from blog_analytics.models.user import User
from blog_analytics.models.post import Post
from blog_analytics.models.comment import Comment
from blog_analytics.models.post_view import PostView

__all__ = [
    "User",
    "Post",
    "Comment",
    "PostView",
]
