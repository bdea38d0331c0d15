"""Async engine and session wiring for the booking store."""

from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from pickleplus.core.settings import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create the engine; SQLite (tests, local runs) keeps the default pool."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # Services hand ORM rows back to the API layer after commit
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.env == "dev")
AsyncSessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """Declarative base for facilities, classes, enrollments and the audit log."""


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session. Commit and rollback belong to the services."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create missing tables on ``bind`` (the application engine by default)."""
    import pickleplus.models  # noqa: F401  registers every table on Base.metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
