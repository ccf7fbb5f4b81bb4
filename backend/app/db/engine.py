"""Database engine configuration."""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import settings


def create_db_engine() -> AsyncEngine:
    """Create async SQLAlchemy engine."""
    if settings.DATABASE_URL.startswith("sqlite"):
        # aiosqlite connections are bound to the event loop that opened them
        return create_async_engine(settings.DATABASE_URL, poolclass=NullPool, echo=False)

    return create_async_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
        echo=False,
    )


# Global engine instance
engine = create_db_engine()
