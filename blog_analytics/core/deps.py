from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from blog_analytics.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    Analytics requests only read; the view tracker commits its own insert.
    Anything left uncommitted is rolled back when the request finishes.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
