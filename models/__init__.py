"""Database models for the shared context store."""

from .base import Base
from .user import User
from .api_key import ApiKey
from .context_entry import ContextEntry
from .context_history import ContextHistory, HistoryAction
from .admin_audit_log import AdminAuditLog, AdminAction

__all__ = [
    "Base",
    "User",
    "ApiKey",
    "ContextEntry",
    "ContextHistory",
    "HistoryAction",
    "AdminAuditLog",
    "AdminAction",
]
