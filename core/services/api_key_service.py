"""
API Key Service - the credential store for long-lived API keys.

Security Note:
- Plaintext keys are returned exactly once, at creation
- Only SHA-256 digests are stored; keys are 256-bit random tokens so no salt
- Key material is never logged
"""
import asyncio
import hashlib
import logging
import secrets
from typing import List, Optional, Set

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import API_KEY_BYTES
from core.errors import ConflictError
from core.principal import ResolvedPrincipal
from models.api_key import ApiKey
from models.base import utcnow
from models.user import User

logger = logging.getLogger(__name__)


def hash_api_key(secret: str) -> str:
    """Deterministic one-way digest used for both storage and lookup."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    """32 random bytes, URL-safe base64."""
    return secrets.token_urlsafe(API_KEY_BYTES)


class ApiKeyService:
    """
    Service for creating, resolving and revoking API keys.

    The per-user key cap is enforced by the REST boundary, not here.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._pending: Set[asyncio.Task] = set()

    async def lookup_by_key(self, secret: str) -> Optional[ResolvedPrincipal]:
        """
        Resolve a presented key to its owner.

        On a hit, last_used_at is stamped by a detached task; the caller does
        not wait for it and a failure there never fails authentication.
        """
        if not secret:
            return None

        key_hash = hash_api_key(secret)
        async with self.session_factory() as session:
            result = await session.execute(
                select(User.id, User.is_admin)
                .join(ApiKey, ApiKey.user_id == User.id)
                .where(ApiKey.key_hash == key_hash)
            )
            row = result.first()

        if row is None:
            return None

        task = asyncio.create_task(self.touch_last_used(key_hash))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        return ResolvedPrincipal(user_id=row.id, is_admin=bool(row.is_admin))

    async def touch_last_used(self, key_hash: str) -> None:
        """Record last use. Telemetry only: failures are logged, not raised."""
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(ApiKey).where(ApiKey.key_hash == key_hash).values(last_used_at=utcnow())
                )
                await session.commit()
        except Exception as e:
            logger.warning("Failed to record API key last use: %s", e)

    async def drain(self) -> None:
        """Wait for outstanding last-used updates (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def create(self, user_id: str, name: str) -> str:
        """
        Create a key for a user.

        Returns:
            The plaintext key. It cannot be retrieved again.

        Raises:
            ConflictError: if the user already has a key with this name
        """
        plain_key = generate_api_key()
        async with self.session_factory() as session:
            session.add(ApiKey(key_hash=hash_api_key(plain_key), user_id=user_id, name=name))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConflictError(f"An API key named '{name}' already exists")

        logger.info("Created API key '%s' for user %s", name, user_id)
        return plain_key

    async def revoke(self, user_id: str, name: str) -> bool:
        """Delete a key by name. Idempotent: False when there was nothing to delete."""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(ApiKey).where(ApiKey.user_id == user_id, ApiKey.name == name)
            )
            await session.commit()

        revoked = result.rowcount > 0
        if revoked:
            logger.info("Revoked API key '%s' for user %s", name, user_id)
        return revoked

    async def list_for_user(self, user_id: str) -> List[ApiKey]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at, ApiKey.name)
            )
            return list(result.scalars().all())

    async def count_for_user(self, user_id: str) -> int:
        async with self.session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(ApiKey).where(ApiKey.user_id == user_id)
            )
            return count or 0
