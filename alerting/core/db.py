"""
Database connection and session management.

SQLAlchemy 2.0 async pattern:
- Engine: manages the connection pool
- AsyncSessionLocal: factory for creating database sessions
- Base: parent class for all our ORM models
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from alerting.core.config import settings


# =============================================================================
# DATABASE ENGINE
# =============================================================================
# - echo=settings.debug: logs all SQL statements when debugging
# - pool_pre_ping=True: tests connections before using them

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)


# =============================================================================
# SESSION FACTORY
# =============================================================================
# expire_on_commit=False keeps rules and audit rows readable after the
# session that loaded them is closed. The evaluator and dispatcher hold on
# to detached instances between store calls.

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# =============================================================================
# BASE MODEL CLASS
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def create_tables() -> None:
    """Create missing tables for every model registered on Base."""
    # Import models so they register on Base.metadata
    import alerting.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
