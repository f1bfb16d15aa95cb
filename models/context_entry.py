"""ContextEntry model: one user-owned key -> text record."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class ContextEntry(Base):
    """Context entry keyed by (user_id, key).

    The same key string may exist independently for every user. Content is
    opaque text (markdown or JSON); rendering is decided client-side.
    """

    __tablename__ = "shared_context"
    __table_args__ = (
        CheckConstraint("length(key) <= 255", name="ck_shared_context_key_length"),
        Index("ix_shared_context_user_updated", "user_id", "updated_at"),
    )

    user_id = Column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    key = Column(String(255), primary_key=True)
    content = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="entries")

    def to_api_response(self) -> dict:
        return {
            "key": self.key,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<ContextEntry(user_id={self.user_id}, key={self.key})>"
