"""Process-wide async engine for ``DatabaseGateway``.

Built on first use from :func:`intake_db.config.get_async_url` and
:func:`intake_db.config.pool_options`.  The server lifespan calls
``dispose_engine()`` on shutdown so a reload starts from a fresh pool.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from intake_db.config import get_async_url, pool_options

_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_async_url(), **pool_options())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded rows usable after commit; gateway results outlive the session."""
    global _sessions
    if _sessions is None:
        _sessions = async_sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _sessions


async def dispose_engine() -> None:
    global _engine, _sessions
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _sessions = None
