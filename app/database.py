# app/database.py

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.orm import declarative_base

from app.core.config import Settings

Base = declarative_base()


def normalize_database_url(database_url: str) -> str:
    """Convert postgresql:// to postgresql+asyncpg:// for async support"""
    if database_url.startswith('postgresql://'):
        return database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url


def create_db_engine(settings: Settings) -> AsyncEngine:
    """
    Build the async engine for the configured database.

    The engine is owned by whoever composes the application (app lifespan,
    CLI command, test fixture) and passed down explicitly.
    """
    if not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL is not set in environment variables")

    database_url = normalize_database_url(settings.DATABASE_URL)
    engine_kwargs = {"echo": False, "future": True}
    if database_url.startswith("postgresql"):
        engine_kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=30,
            pool_recycle=1800,
        )
    return create_async_engine(database_url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
