"""
Context history model.

Append-only audit trail: one row per create/update/delete of a context
entry. Never read by the normal CRUD paths and never updated; rows only
disappear when their owning user is deleted.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from .base import Base, utcnow


class HistoryAction(str, PyEnum):
    """Mutation recorded by a history row."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ContextHistory(Base):
    """Immutable snapshot written alongside every entry mutation."""

    __tablename__ = "context_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    key = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    action = Column(String(16), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_context_history_user_key", "user_id", "key"),
        Index("ix_context_history_changed_at", "changed_at"),
    )

    def to_api_response(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "content": self.content,
            "action": self.action,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }
