"""Database session factory setup."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def setup_db_session(db_url: str, pool_size: int = 20) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        db_url: Database URL (postgresql+psycopg://... in production,
            sqlite+aiosqlite://... for local test runs)
        pool_size: Maximum number of pooled connections (PostgreSQL only)

    Returns:
        Async session factory for creating database sessions
    """
    engine_kwargs: dict = {"echo": False}
    if not db_url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=pool_size,
            max_overflow=0,
            pool_pre_ping=True,
        )

    engine = create_async_engine(db_url, **engine_kwargs)

    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )
