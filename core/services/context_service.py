"""
Context Service - transactional CRUD for context entries with audit history.

Every operation takes the owning user id explicitly; there is no ambient
"current user". Each mutation and its history row are written in the same
transaction, so a failure leaves neither behind.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import (
    HISTORY_DEFAULT_LIMIT,
    LIST_DEFAULT_LIMIT,
    LIST_MAX_LIMIT,
    READ_ALL_DEFAULT_LIMIT,
    READ_ALL_MAX_LIMIT,
)
from core.database import dialect_name
from core.validators import LIKE_ESCAPE_CHAR, clamp_limit, escape_like
from models.base import utcnow
from models.context_entry import ContextEntry
from models.context_history import ContextHistory, HistoryAction

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class ContextKeyInfo:
    """Metadata-only listing row."""

    key: str
    updated_at: datetime

    def to_api_response(self) -> dict:
        return {"key": self.key, "updated_at": self.updated_at.isoformat()}


@dataclass(frozen=True)
class WriteResult:
    """Post-write entry plus whether the write created or updated it."""

    entry: ContextEntry
    action: str  # "created" | "updated"

    @property
    def created(self) -> bool:
        return self.action == "created"


class ContextService:
    """
    Service for per-user context entries.

    Opens one session per call from the injected factory. Concurrent writers
    to the same (user, key) are serialised by the database: the upsert is a
    single INSERT ... ON CONFLICT statement, never check-then-insert.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, user_id: str, key: str) -> Optional[ContextEntry]:
        """Get a single entry, or None if this user has no such key."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ContextEntry).where(
                    ContextEntry.user_id == user_id,
                    ContextEntry.key == key,
                )
            )
            return result.scalar_one_or_none()

    async def list(
        self,
        user_id: str,
        limit: Optional[int] = LIST_DEFAULT_LIMIT,
        search: Optional[str] = None,
    ) -> List[ContextKeyInfo]:
        """
        List key metadata, most recently updated first.

        Args:
            user_id: Owner of the entries
            limit: Clamped to [1, 200], default 50
            search: Case-insensitive substring of the key; wildcards match literally
        """
        safe_limit = clamp_limit(limit, LIST_MAX_LIMIT, LIST_DEFAULT_LIMIT)

        stmt = select(ContextEntry.key, ContextEntry.updated_at).where(ContextEntry.user_id == user_id)
        if search:
            pattern = f"%{escape_like(search)}%"
            stmt = stmt.where(ContextEntry.key.ilike(pattern, escape=LIKE_ESCAPE_CHAR))
        stmt = stmt.order_by(ContextEntry.updated_at.desc(), ContextEntry.key).limit(safe_limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [ContextKeyInfo(key=row.key, updated_at=row.updated_at) for row in result]

    async def list_all(self, user_id: str, limit: Optional[int] = READ_ALL_DEFAULT_LIMIT) -> List[ContextEntry]:
        """List full entries, most recently updated first. Limit clamped to [1, 50], default 20."""
        safe_limit = clamp_limit(limit, READ_ALL_MAX_LIMIT, READ_ALL_DEFAULT_LIMIT)

        async with self.session_factory() as session:
            result = await session.execute(
                select(ContextEntry)
                .where(ContextEntry.user_id == user_id)
                .order_by(ContextEntry.updated_at.desc(), ContextEntry.key)
                .limit(safe_limit)
            )
            return list(result.scalars().all())

    async def history(self, user_id: str, key: str, limit: int = HISTORY_DEFAULT_LIMIT) -> List[ContextHistory]:
        """Audit rows for one key, newest first. Not used by the CRUD paths."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ContextHistory)
                .where(ContextHistory.user_id == user_id, ContextHistory.key == key)
                .order_by(ContextHistory.changed_at.desc(), ContextHistory.id.desc())
                .limit(max(1, limit))
            )
            return list(result.scalars().all())

    # =========================================================================
    # Mutations
    # =========================================================================

    async def set(self, user_id: str, key: str, content: str) -> WriteResult:
        """
        Create or replace an entry and append a history row atomically.

        Returns:
            WriteResult with the post-write entry and "created" or "updated"

        Raises:
            SQLAlchemyError: on storage failure, after rollback
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    existing = await session.scalar(
                        select(ContextEntry.key).where(
                            ContextEntry.user_id == user_id,
                            ContextEntry.key == key,
                        )
                    )
                    action = HistoryAction.UPDATE if existing is not None else HistoryAction.CREATE

                    entry = await self._upsert(session, user_id, key, content)
                    await self._record_history(session, user_id, key, content, action)
            except SQLAlchemyError as e:
                logger.error("Context write failed for user %s key %s: %s", user_id, key, e)
                raise

        logger.debug("Context %s for user %s key %s", action.value, user_id, key)
        return WriteResult(entry=entry, action="updated" if action is HistoryAction.UPDATE else "created")

    async def delete(self, user_id: str, key: str) -> bool:
        """
        Delete an entry and record its last content in history.

        Returns:
            True if deleted, False if this user had no such key (no history row)
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    # Row lock keeps a concurrent delete from stealing the snapshot
                    content = await session.scalar(
                        select(ContextEntry.content)
                        .where(ContextEntry.user_id == user_id, ContextEntry.key == key)
                        .with_for_update()
                    )
                    if content is None:
                        return False

                    await session.execute(
                        delete(ContextEntry).where(
                            ContextEntry.user_id == user_id,
                            ContextEntry.key == key,
                        )
                    )
                    await self._record_history(session, user_id, key, content, HistoryAction.DELETE)
            except SQLAlchemyError as e:
                logger.error("Context delete failed for user %s key %s: %s", user_id, key, e)
                raise

        logger.debug("Context deleted for user %s key %s", user_id, key)
        return True

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _upsert(self, session: AsyncSession, user_id: str, key: str, content: str) -> ContextEntry:
        """Single-statement insert-or-replace keyed on (user_id, key)."""
        insert = _UPSERT_INSERTS.get(dialect_name(session))
        if insert is None:
            raise NotImplementedError(f"Upsert not supported for dialect {dialect_name(session)}")

        now = utcnow()
        stmt = insert(ContextEntry).values(
            user_id=user_id,
            key=key,
            content=content,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "key"],
            set_={"content": stmt.excluded.content, "updated_at": stmt.excluded.updated_at},
        )
        result = await session.scalars(
            stmt.returning(ContextEntry),
            execution_options={"populate_existing": True},
        )
        return result.one()

    async def _record_history(
        self,
        session: AsyncSession,
        user_id: str,
        key: str,
        content: str,
        action: HistoryAction,
    ) -> None:
        session.add(
            ContextHistory(
                user_id=user_id,
                key=key,
                content=content,
                action=action.value,
                changed_at=utcnow(),
            )
        )
        await session.flush()
