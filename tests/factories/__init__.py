"""Test factories for creating model instances."""

from .context_factory import ApiKeyFactory, ContextEntryFactory
from .user_factory import AdminUserFactory, UserFactory

__all__ = ["AdminUserFactory", "ApiKeyFactory", "ContextEntryFactory", "UserFactory"]
