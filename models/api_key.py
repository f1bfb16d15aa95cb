"""
API key model.

Security Note:
- Only the SHA-256 hash of a key is stored; the plaintext is shown once
- Keys are 32 random bytes, so no per-key salt is needed
"""

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class ApiKey(Base):
    """Hashed bearer secret owned by a user, labelled by a per-user unique name."""

    __tablename__ = "api_keys"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_api_keys_user_name"),
    )

    key_hash = Column(String(64), primary_key=True)
    user_id = Column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="api_keys")

    def to_api_response(self) -> dict:
        """Key metadata only; the hash never leaves the server."""
        return {
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }
