import json
from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from mathprereq.core.config import get_settings
from mathprereq.core.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(
        database_url,
        # Keep concept names readable inside JSON columns so they can be
        # matched with LIKE
        json_serializer=lambda obj: json.dumps(obj, ensure_ascii=False),
        pool_pre_ping=not database_url.startswith("sqlite"),
    )


# ── Singleton: engine + session factory ──────────────────────────────────────

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine(get_settings().database_url)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create tables that do not exist yet."""
    # Registers the mapped classes on Base.metadata
    import mathprereq.models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def check_database() -> bool:
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("database_health_check_failed", error=str(e))
        return False
