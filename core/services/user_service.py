"""
User Service - provisioning, admin user management and the admin audit log.

Security Note:
- User deletion removes every entry, history row and API key in one transaction
- Admin actions are written to admin_audit_log; only list_users logs detached
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import AUTH_PROVIDER_CLERK, AUTH_PROVIDER_MANUAL
from core.errors import InvalidInputError
from core.services.api_key_service import generate_api_key, hash_api_key
from models.admin_audit_log import AdminAction, AdminAuditLog
from models.api_key import ApiKey
from models.context_entry import ContextEntry
from models.context_history import ContextHistory
from models.user import User

logger = logging.getLogger(__name__)


class UserServiceError(Exception):
    """Base exception for user service errors."""
    pass


class ProvisioningConflictError(UserServiceError):
    """OAuth user could not be created or reselected (email owned by another principal)."""
    pass


@dataclass(frozen=True)
class UserSummary:
    """User row plus ownership counts for admin listings."""

    user: User
    api_key_count: int
    context_entry_count: int

    def to_api_response(self) -> dict:
        data = self.user.to_api_response()
        data["api_key_count"] = self.api_key_count
        data["context_entry_count"] = self.context_entry_count
        return data


class UserService:
    """Service for user rows and admin-level user operations."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._pending: Set[asyncio.Task] = set()

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get(self, user_id: str) -> Optional[User]:
        async with self.session_factory() as session:
            return await session.get(User, user_id)

    async def get_by_external_id(self, subject: str) -> Optional[User]:
        async with self.session_factory() as session:
            return await self._select_by_external_id(session, subject)

    async def exists(self, user_id: str) -> bool:
        return await self.get(user_id) is not None

    # =========================================================================
    # OAuth provisioning
    # =========================================================================

    async def provision_oauth_user(self, subject: str, email: str, is_admin: bool) -> User:
        """
        Find or create the user for a Clerk subject.

        Idempotent under concurrent first logins: the unique constraint on
        external_principal_id picks a winner and the loser reselects its row.
        A manual user with the same email (and no linked subject) is linked
        instead of duplicated.
        """
        async with self.session_factory() as session:
            existing = await self._select_by_external_id(session, subject)
            if existing:
                return existing

            result = await session.execute(
                select(User).where(func.lower(User.email) == email.lower())
            )
            by_email = result.scalar_one_or_none()

            if by_email is not None and by_email.external_principal_id is None:
                by_email.external_principal_id = subject
                by_email.is_admin = bool(by_email.is_admin or is_admin)
                user = by_email
                outcome = "linked"
            else:
                user = User(
                    id=uuid4().hex,
                    email=email,
                    is_admin=is_admin,
                    external_principal_id=subject,
                    auth_provider=AUTH_PROVIDER_CLERK,
                )
                session.add(user)
                outcome = "created"

            try:
                await session.commit()
            except IntegrityError:
                # Race condition: another request provisioned this subject first.
                # Rollback is required before the session can be reused.
                await session.rollback()
                winner = await self._select_by_external_id(session, subject)
                if winner is None:
                    raise ProvisioningConflictError(
                        f"Could not provision Clerk user {subject}: email already in use"
                    )
                logger.debug("User provisioning race handled for %s", subject)
                return winner

        logger.info("Provisioned Clerk user %s (%s)%s", user.id, outcome, " as admin" if user.is_admin else "")
        return user

    # =========================================================================
    # Admin operations
    # =========================================================================

    async def create_user(
        self,
        user_id: str,
        email: str,
        api_key_name: Optional[str] = None,
        is_admin: bool = False,
        auth_provider: str = AUTH_PROVIDER_MANUAL,
    ) -> Tuple[User, Optional[str]]:
        """
        Create a user and, optionally, its first API key in one transaction.

        Returns:
            (user, plaintext_key) - plaintext_key is None when no key was requested

        Raises:
            InvalidInputError: if the id or email is already taken
        """
        plain_key = generate_api_key() if api_key_name else None

        async with self.session_factory() as session:
            if await session.get(User, user_id) is not None:
                raise InvalidInputError(f"User '{user_id}' already exists")

            user = User(id=user_id, email=email, is_admin=is_admin, auth_provider=auth_provider)
            session.add(user)

            try:
                if plain_key:
                    # Flush the user first so the key's foreign key has a target
                    await session.flush()
                    session.add(ApiKey(key_hash=hash_api_key(plain_key), user_id=user_id, name=api_key_name))
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise InvalidInputError("A user with this id or email already exists")

        logger.info("Created user %s", user_id)
        return user, plain_key

    async def list_users(self) -> List[UserSummary]:
        """All users with their API key and context entry counts."""
        key_counts = (
            select(ApiKey.user_id, func.count().label("n"))
            .group_by(ApiKey.user_id)
            .subquery()
        )
        entry_counts = (
            select(ContextEntry.user_id, func.count().label("n"))
            .group_by(ContextEntry.user_id)
            .subquery()
        )
        stmt = (
            select(
                User,
                func.coalesce(key_counts.c.n, 0),
                func.coalesce(entry_counts.c.n, 0),
            )
            .outerjoin(key_counts, key_counts.c.user_id == User.id)
            .outerjoin(entry_counts, entry_counts.c.user_id == User.id)
            .order_by(User.created_at, User.id)
        )

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [
                UserSummary(user=user, api_key_count=int(keys), context_entry_count=int(entries))
                for user, keys, entries in result.all()
            ]

    async def delete_user(self, user_id: str) -> bool:
        """
        Delete a user and everything they own.

        WARNING: Irreversible. Entries, history and API keys go with the user.
        """
        async with self.session_factory() as session:
            async with session.begin():
                user = await session.get(User, user_id)
                if user is None:
                    return False

                await session.execute(delete(ContextHistory).where(ContextHistory.user_id == user_id))
                await session.execute(delete(ContextEntry).where(ContextEntry.user_id == user_id))
                await session.execute(delete(ApiKey).where(ApiKey.user_id == user_id))
                await session.execute(delete(User).where(User.id == user_id))

        logger.warning("Deleted user %s and all their data", user_id)
        return True

    # =========================================================================
    # Admin audit log
    # =========================================================================

    async def log_admin_action(
        self,
        admin_user_id: str,
        action: AdminAction,
        target_user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        async with self.session_factory() as session:
            session.add(AdminAuditLog.create(admin_user_id, action, target_user_id, details))
            await session.commit()

    def log_admin_action_detached(
        self,
        admin_user_id: str,
        action: AdminAction,
        target_user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Fire-and-forget audit write for read-only admin actions; failures are logged only."""

        async def _write() -> None:
            try:
                await self.log_admin_action(admin_user_id, action, target_user_id, details)
            except Exception as e:
                logger.error("Failed to log admin action %s: %s", action.value, e)

        task = asyncio.create_task(_write())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    async def _select_by_external_id(session: AsyncSession, subject: str) -> Optional[User]:
        result = await session.execute(select(User).where(User.external_principal_id == subject))
        return result.scalar_one_or_none()
