"""
Core services for the shared context store.

Services encapsulate business logic for context entries, API keys,
user provisioning and admin operations.
"""

from .context_service import ContextService
from .api_key_service import ApiKeyService
from .user_service import UserService, UserServiceError, ProvisioningConflictError
from .admin_service import AdminService

__all__ = [
    "ContextService",
    "ApiKeyService",
    "UserService",
    "UserServiceError",
    "ProvisioningConflictError",
    "AdminService",
]
