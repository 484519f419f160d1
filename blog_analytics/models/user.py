from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blog_analytics.core.constants import ROLE_AUTHOR
from blog_analytics.db.base import Base


class User(Base):
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default=ROLE_AUTHOR, server_default=ROLE_AUTHOR
    )

    posts = relationship("Post", back_populates="author", passive_deletes=True)
