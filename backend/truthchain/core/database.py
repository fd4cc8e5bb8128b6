"""
TruthChain Database Connection
SQLAlchemy async engine and session management
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.orm import declarative_base
from truthchain.core.config import settings


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the configured database.

    postgresql:// URLs are routed to the asyncpg driver; sqlite URLs are
    routed to aiosqlite and skip the connection pool options.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
            if "+aiosqlite" not in database_url
            else database_url,
            echo=echo,
            future=True,
        )

    return create_async_engine(
        database_url.replace("postgresql://", "postgresql+asyncpg://", 1),
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # Verify connections before using
        echo=echo,
        future=True,
    )


# Create async engine
engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

# Session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Declarative base for models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI routes to get database session

    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Initialize database (create tables if needed)"""
    if not settings.DB_CREATE_TABLES:
        return

    # Register models on Base.metadata
    import truthchain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connection pool"""
    await engine.dispose()
