"""
Database session configuration.

This module builds the database engine and session factory using
SQLAlchemy with async support. Both are created by the application
lifespan and kept on ``app.state``; nothing here is a process-wide
connection.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from parcel_delivery.app.core.config import Settings

# Create declarative base for models
Base = declarative_base()


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine described by ``settings``."""
    options = {"echo": settings.db_echo, "future": True}
    if not settings.database_url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return create_async_engine(settings.database_url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create the async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


def get_session_factory(request: Request) -> async_sessionmaker:
    """FastAPI dependency returning the session factory built at startup."""
    return request.app.state.session_factory


async def get_db(session_factory: async_sessionmaker = Depends(get_session_factory)):
    """
    FastAPI dependency for database sessions.

    Yields an async database session from the factory the lifespan
    stored on the application and ensures it's properly closed.
    """
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
