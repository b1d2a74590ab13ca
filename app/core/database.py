# app/core/database.py
from typing import AsyncIterator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from app.core.config import settings
from app.models.base import Base


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine; SQLite gets no pool sizing and a busy timeout."""
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=settings.DATABASE_ECHO,
            future=True,
            connect_args={"timeout": 30},
        )

    return create_async_engine(
        database_url,
        pool_size=20,
        max_overflow=30,
        pool_timeout=60,
        pool_recycle=3600,      # Recycle connections every hour
        echo=settings.DATABASE_ECHO,
        future=True,
        pool_pre_ping=True,
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = build_engine(settings.DATABASE_URL)
async_session_maker = build_session_maker(engine)


async def get_async_session() -> AsyncIterator[AsyncSession]:
    async with async_session_maker() as session:
        yield session

