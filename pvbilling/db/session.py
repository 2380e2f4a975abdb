"""
Async engine and sessions for the billing database.

The API opens one engine per process, lazily, from ``DATABASE_URL``
(asyncpg against PostgreSQL in production, aiosqlite in tests). Route
handlers receive a session per request through :func:`get_async_session`;
the lifespan handler disposes the engine on shutdown.

CHANGELOG:
- 2026-03-09: Dispose the engine from the API lifespan (STORY-015)
- 2026-03-02: Read DATABASE_URL through ServiceSettings (STORY-003)
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pvbilling.config import get_settings

# Process-wide engine and factory, created on first use.
async_engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create the async engine for a billing database URL.

    Args:
        url: SQLAlchemy async URL; ``DATABASE_URL`` from the settings when
            omitted.

    Returns:
        AsyncEngine: Engine with connection liveness checks on checkout for
        server databases (PostgreSQL drops idle connections).
    """
    url = url or get_settings().database_url
    return create_async_engine(url, echo=False, pool_pre_ping=not url.startswith("sqlite"))


def create_session_factory(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by routes, services and tests.

    Objects stay loaded after commit so repository functions can convert
    freshly written rows (bills, settings) without another round trip.
    """
    return async_sessionmaker(
        engine or create_engine(), class_=AsyncSession, expire_on_commit=False
    )


def init_engine() -> None:
    """Create the process-wide engine and factory if not done yet."""
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is None:
        async_engine = create_engine()
        async_session_factory = create_session_factory(async_engine)


async def dispose_engine() -> None:
    """Close every pooled connection and forget the engine."""
    global async_engine, async_session_factory  # noqa: PLW0603
    if async_engine is not None:
        await async_engine.dispose()
    async_engine = None
    async_session_factory = None


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one billing database session per request."""
    init_engine()
    assert async_session_factory is not None, "Session factory not initialized"
    async with async_session_factory() as session:
        yield session
