"""
User model.

Users come from two places:
- Clerk OAuth logins, auto-provisioned on first sight (auth_provider="clerk")
- Admin or CLI creation for API-key-only access (auth_provider="manual")
"""

from sqlalchemy import Boolean, Column, DateTime, Index, String
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class User(Base):
    """
    Tenant identity that owns context entries and API keys.

    Fields:
        id: Stable internal identifier used as the owner of all data
        email: Unique, compared case-insensitively for admin promotion
        is_admin: Only mutable field besides updated_at
        external_principal_id: Clerk subject (user_xxx), unique when present
    """

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(254), nullable=False, unique=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    external_principal_id = Column(String(255), nullable=True, unique=True)
    auth_provider = Column(String(32), nullable=False, default="manual")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # =========================================================================
    # Relationships
    # =========================================================================

    api_keys = relationship("ApiKey", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    entries = relationship("ContextEntry", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (Index("ix_users_created_at", "created_at"),)

    def to_api_response(self) -> dict:
        """Convert to API response format."""
        return {
            "id": self.id,
            "email": self.email,
            "auth_provider": self.auth_provider,
            "is_admin": bool(self.is_admin),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, admin={self.is_admin})>"
