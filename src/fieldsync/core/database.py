"""Database session factory setup."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

# Register table models with SQLModel metadata
from fieldsync.models import LocalState  # noqa: F401


def setup_db_session(db_url: str) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        db_url: SQLAlchemy async URL (sqlite+aiosqlite:///path/to/fieldsync.db)

    Returns:
        Async session factory for creating database sessions
    """
    engine = create_async_engine(
        db_url,
        echo=False,  # Don't log SQL queries (use structlog instead)
    )

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )

    return session_factory


async def init_schema(engine: AsyncEngine) -> None:
    """Create the local tables if they do not exist yet.

    Args:
        engine: Async engine bound to the local database
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
