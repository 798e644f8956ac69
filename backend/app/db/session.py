"""
Database session management.

WHY: Async database sessions are required for FastAPI's async/await pattern.
Each request gets one session and one transaction: the billing services
flush but never commit, so a proposal with its items, milestones and terms
(or a paid bill with its finder fees) is persisted atomically.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    """
    Connection pool options for the configured backend.

    SQLite (local runs and tests) does not accept pool sizing arguments.
    """
    options: Dict[str, Any] = {"echo": settings.DEBUG}
    if not url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_size=10, max_overflow=20)
    return options


engine = create_async_engine(
    settings.async_database_url,
    **_engine_options(settings.async_database_url),
)

# expire_on_commit=False keeps loaded relationships usable after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    Commits when the request handler returns, rolls back on any exception.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
