import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    """Driver-specific engine options."""
    if url.startswith("sqlite"):
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": 10,
        "max_overflow": 5,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "connect_args": {"command_timeout": 30},
    }


def build_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, echo=settings.DEBUG, **_engine_kwargs(url))


engine = build_engine(settings.DATABASE_URL)

# Single session factory using modern async_sessionmaker (SQLAlchemy 2.0+)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def dialect_name(session: AsyncSession) -> str:
    """Name of the backing database dialect ("postgresql", "sqlite")."""
    return session.get_bind().dialect.name


async def check_db_health(session_factory=None) -> bool:
    """Verify database connectivity."""
    factory = session_factory or async_session_factory
    try:
        async with factory() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return False


async def close_engine() -> None:
    """Dispose the connection pool on shutdown."""
    await engine.dispose()
