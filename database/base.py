"""Database base configuration and session management."""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from app.config import settings


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _engine_options(url: str) -> dict:
    """Pool options for the configured backend (SQLite has no sized pool)."""
    if url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {
        "echo": settings.debug,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
        "poolclass": NullPool if settings.debug else None,
    }


def _build_engine(url: str):
    options = _engine_options(url)
    if options.get("poolclass") is NullPool:
        options.pop("pool_size")
        options.pop("max_overflow")
    return create_async_engine(url, **options)


# Create async engine
engine = _build_engine(str(settings.database_url))

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db():
    """Initialize database - create all tables (development only, use Alembic elsewhere)."""
    # Register models on Base.metadata
    import database.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
