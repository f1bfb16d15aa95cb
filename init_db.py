import asyncio
import logging
import sys
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.config import settings
from core.constants import AUTH_PROVIDER_MANUAL, BOOTSTRAP_API_KEY_NAME
from core.services.api_key_service import hash_api_key
from models import ApiKey, Base, User

logger = logging.getLogger(__name__)


async def init_models(engine: Optional[AsyncEngine] = None, reset: bool = False, retries: int = 5) -> bool:
    """Create all tables, retrying while the database comes up."""
    if engine is None:
        from core.database import engine

    while retries > 0:
        try:
            async with engine.begin() as conn:
                if reset:
                    logger.warning("Dropping all tables before recreating")
                    await conn.run_sync(Base.metadata.drop_all)
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database initialization complete")
            return True
        except OperationalError as e:
            retries -= 1
            logger.warning("Database not ready yet (%s), retrying in 2 seconds...", e)
            if retries:
                await asyncio.sleep(2)

    logger.error("Could not connect to database after retries")
    return False


async def bootstrap_legacy_token(
    session_factory: async_sessionmaker[AsyncSession],
    token: Optional[str] = None,
    user_id: Optional[str] = None,
    email: Optional[str] = None,
) -> bool:
    """
    Carry a single-tenant MCP_AUTH_TOKEN deployment over to per-user keys.

    Idempotent: creates the bootstrap admin user if missing and stores the
    token's hash as its "primary" key if that hash is not stored yet.

    Returns:
        True if a key was added on this run
    """
    token = token if token is not None else settings.MCP_AUTH_TOKEN
    if not token:
        logger.info("No MCP_AUTH_TOKEN - skipping token migration")
        return False

    user_id = user_id or settings.BOOTSTRAP_USER_ID
    email = email or settings.BOOTSTRAP_USER_EMAIL
    key_hash = hash_api_key(token)

    async with session_factory() as session:
        if await session.get(User, user_id) is None:
            session.add(User(id=user_id, email=email, is_admin=True, auth_provider=AUTH_PROVIDER_MANUAL))
            await session.flush()
            logger.info("Created bootstrap user %s", user_id)

        existing = await session.scalar(select(ApiKey.key_hash).where(ApiKey.key_hash == key_hash))
        if existing is not None:
            await session.commit()
            return False

        session.add(ApiKey(key_hash=key_hash, user_id=user_id, name=BOOTSTRAP_API_KEY_NAME))
        try:
            await session.commit()
        except IntegrityError as e:
            # Another worker migrated it first, or "primary" is already taken by a different key
            await session.rollback()
            logger.warning("Legacy token migration skipped: %s", e.orig)
            return False

    logger.info("Migrated MCP_AUTH_TOKEN to api_keys for user %s", user_id)
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    reset = "--reset" in sys.argv
    asyncio.run(init_models(reset=reset))
