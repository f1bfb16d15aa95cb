"""
Admin Service - user and API key administration shared by MCP tools and REST.

Callers must have already checked that the acting principal is an admin;
this service enforces the rules that depend on the target (no self-delete,
no deleting other admins) and writes the audit log.
"""
import logging
from typing import List, Optional

from core.constants import DEFAULT_API_KEY_NAME
from core.errors import ForbiddenError, InvalidInputError, NotFoundError
from core.services.api_key_service import ApiKeyService
from core.services.user_service import UserService, UserSummary
from core.validators import validate_api_key_name, validate_email, validate_user_id
from models.admin_audit_log import AdminAction

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, users: UserService, api_keys: ApiKeyService):
        self.users = users
        self.api_keys = api_keys

    async def list_users(self, admin_user_id: str) -> List[UserSummary]:
        users = await self.users.list_users()
        # Read-only action: audit write is detached from the response
        self.users.log_admin_action_detached(
            admin_user_id, AdminAction.LIST_USERS, details={"user_count": len(users)}
        )
        return users

    async def create_user(
        self,
        admin_user_id: str,
        user_id: str,
        email: str,
        api_key_name: Optional[str] = None,
    ) -> dict:
        user_id = validate_user_id(user_id)
        email = validate_email(email)
        key_name = validate_api_key_name(api_key_name if api_key_name is not None else DEFAULT_API_KEY_NAME)

        _, plain_key = await self.users.create_user(user_id, email, api_key_name=key_name)
        await self.users.log_admin_action(
            admin_user_id, AdminAction.CREATE_USER, user_id, {"email": email, "api_key_name": key_name}
        )
        return {
            "user_id": user_id,
            "email": email,
            "api_key": plain_key,
            "api_key_name": key_name,
            "message": "User created successfully. Save the API key - it will not be shown again.",
        }

    async def create_api_key(self, admin_user_id: str, user_id: str, name: str) -> dict:
        user_id = validate_user_id(user_id)
        name = validate_api_key_name(name)

        if not await self.users.exists(user_id):
            raise NotFoundError(f"User '{user_id}' not found")

        plain_key = await self.api_keys.create(user_id, name)
        await self.users.log_admin_action(admin_user_id, AdminAction.CREATE_API_KEY, user_id, {"api_key_name": name})
        return {
            "user_id": user_id,
            "api_key": plain_key,
            "api_key_name": name,
            "message": "API key created successfully. Save it - it will not be shown again.",
        }

    async def revoke_api_key(self, admin_user_id: str, user_id: str, name: str) -> dict:
        user_id = validate_user_id(user_id)
        name = validate_api_key_name(name)

        if not await self.users.exists(user_id):
            raise NotFoundError(f"User '{user_id}' not found")

        if not await self.api_keys.revoke(user_id, name):
            keys = await self.api_keys.list_for_user(user_id)
            available = ", ".join(key.name for key in keys) or "none"
            raise NotFoundError(f"API key '{name}' not found for user '{user_id}'. Available keys: {available}")

        await self.users.log_admin_action(admin_user_id, AdminAction.REVOKE_API_KEY, user_id, {"api_key_name": name})
        return {
            "user_id": user_id,
            "api_key_name": name,
            "message": "API key revoked successfully. It will no longer work for authentication.",
        }

    async def delete_user(self, admin_user_id: str, user_id: str, confirm: Optional[bool]) -> dict:
        """
        Delete a non-admin user and all of their data.

        Raises:
            InvalidInputError: confirm is not exactly True, or bad user id
            ForbiddenError: target is the caller or another admin
            NotFoundError: no such user
        """
        if confirm is not True:
            raise InvalidInputError("Deletion requires confirm=true. This action permanently deletes all user data.")
        user_id = validate_user_id(user_id)

        if user_id == admin_user_id:
            raise ForbiddenError("Cannot delete your own admin account")

        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User '{user_id}' not found")
        if user.is_admin:
            raise ForbiddenError("Cannot delete admin users")

        if not await self.users.delete_user(user_id):
            raise NotFoundError(f"User '{user_id}' not found")

        await self.users.log_admin_action(admin_user_id, AdminAction.DELETE_USER, user_id, {"email": user.email})
        logger.warning("Admin %s deleted user %s", admin_user_id, user_id)
        return {
            "user_id": user_id,
            "email": user.email,
            "message": "User and all associated data have been permanently deleted.",
        }
