"""
Admin audit log model.

Security Note:
- Logs are append-only (never updated or deleted in normal operation)
- Contains NO API keys or context content - only metadata
- target_user_id is deliberately not a foreign key so that a delete_user
  record survives the deletion of its target
"""
from enum import Enum as PyEnum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String

from .base import Base, utcnow


class AdminAction(str, PyEnum):
    """Administrative operations that are recorded."""

    LIST_USERS = "list_users"
    CREATE_USER = "create_user"
    CREATE_API_KEY = "create_api_key"
    REVOKE_API_KEY = "revoke_api_key"
    DELETE_USER = "delete_user"


class AdminAuditLog(Base):
    """
    Immutable audit record of an admin action.

    Fields:
        admin_user_id: Who did it
        action: What happened
        target_user_id: Who was affected (if applicable)
        details: Additional context (JSON)
    """

    __tablename__ = "admin_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    admin_user_id = Column(String(64), nullable=False)
    action = Column(String(32), nullable=False)
    target_user_id = Column(String(64), nullable=True)

    # Examples:
    # - {"email": "bob@example.com"} for delete_user
    # - {"api_key_name": "laptop"} for key operations
    # - {"user_count": 12} for list_users
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_admin_audit_log_admin", "admin_user_id"),
        Index("ix_admin_audit_log_created_at", "created_at"),
    )

    @classmethod
    def create(
        cls,
        admin_user_id: str,
        action: AdminAction,
        target_user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> "AdminAuditLog":
        """Create an audit log entry."""
        return cls(
            admin_user_id=admin_user_id,
            action=action.value,
            target_user_id=target_user_id,
            details=details,
        )

    def to_api_response(self) -> dict:
        """Convert to API response format."""
        return {
            "id": self.id,
            "admin_user_id": self.admin_user_id,
            "action": self.action,
            "target_user_id": self.target_user_id,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
