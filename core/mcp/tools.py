"""
MCP tool registry.

Every tool result is a single text content block holding a JSON envelope:
    {"success": true, "data": ..., "timestamp"?: ...}
    {"success": false, "error": "...", "code": "..."}

Handlers raise ContextStoreError subclasses; the error boundary in
ToolRegistry.call turns those (and storage failures) into envelopes. The
owning user id always comes from the session binding, never from arguments.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from core.constants import (
    LIST_DEFAULT_LIMIT,
    LIST_MAX_LIMIT,
    READ_ALL_DEFAULT_LIMIT,
    READ_ALL_MAX_LIMIT,
)
from core.errors import (
    ContextStoreError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)
from core.mcp.session_bindings import SessionBindingStore
from core.services.admin_service import AdminService
from core.services.context_service import ContextService
from core.validators import (
    clamp_limit,
    validate_content,
    validate_key,
    validate_search,
)
from models.base import utcnow
from schemas.mcp import (
    AdminCreateApiKeyArgs,
    AdminCreateUserArgs,
    AdminDeleteUserArgs,
    AdminListUsersArgs,
    AdminRevokeApiKeyArgs,
    DeleteContextArgs,
    ListContextArgs,
    ReadAllContextArgs,
    ReadContextArgs,
    ToolArguments,
    WriteContextArgs,
)

logger = logging.getLogger(__name__)


class UnknownToolError(Exception):
    """tools/call named a tool that is not registered (a protocol error, not a tool error)."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


@dataclass
class ToolOutcome:
    """What a handler returns: payload plus optional envelope timestamp."""

    data: Any
    timestamp: Optional[datetime] = None


Handler = Callable[[Any, Optional[str]], Awaitable[ToolOutcome]]


@dataclass
class ToolDefinition:
    name: str
    title: str
    description: str
    arguments: Type[ToolArguments]
    handler: Handler
    failure_message: str

    def to_mcp(self) -> dict:
        schema = self.arguments.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": schema,
        }


# =============================================================================
# Envelope helpers
# =============================================================================


def format_success(data: Any, timestamp: Optional[datetime] = None) -> dict:
    envelope = {"success": True, "data": data}
    if timestamp is not None:
        envelope["timestamp"] = timestamp.isoformat()
    return envelope


def format_error(message: str, code: ErrorCode) -> dict:
    return {"success": False, "error": message, "code": code.value}


def tool_result(envelope: dict) -> dict:
    return {
        "content": [{"type": "text", "text": json.dumps(envelope, indent=2)}],
        "isError": not envelope["success"],
    }


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "arguments"
    return f"Invalid argument '{location}': {first.get('msg', 'invalid value')}"


# =============================================================================
# Registry
# =============================================================================


class ToolRegistry:
    def __init__(
        self,
        bindings: SessionBindingStore,
        context_service: ContextService,
        admin_service: AdminService,
    ):
        self.bindings = bindings
        self.context = context_service
        self.admin = admin_service
        self._tools: Dict[str, ToolDefinition] = {}
        self._register_context_tools()
        self._register_admin_tools()
        logger.info("Registered %d MCP tools", len(self._tools))

    def list_tools(self) -> List[dict]:
        return [tool.to_mcp() for tool in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    async def call(self, name: str, arguments: Optional[dict], session_id: Optional[str]) -> dict:
        """Run a tool behind the error boundary and return an MCP CallToolResult."""
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)

        try:
            args = tool.arguments.model_validate(arguments or {})
            outcome = await tool.handler(args, session_id)
            envelope = format_success(outcome.data, outcome.timestamp)
        except ValidationError as e:
            envelope = format_error(_validation_message(e), ErrorCode.INVALID_INPUT)
        except ContextStoreError as e:
            envelope = format_error(e.message, e.code)
        except SQLAlchemyError as e:
            logger.error("[%s] Database error: %s", name, e)
            envelope = format_error(tool.failure_message, ErrorCode.DATABASE_ERROR)
        except Exception:
            logger.exception("[%s] Unexpected error", name)
            envelope = format_error("An unexpected error occurred", ErrorCode.INTERNAL_ERROR)

        return tool_result(envelope)

    def _add(self, tool: ToolDefinition) -> None:
        self._tools[tool.name] = tool

    # =========================================================================
    # Guards
    # =========================================================================

    def _require_user(self, session_id: Optional[str]) -> str:
        user_id = self.bindings.resolve_user_id(session_id)
        if user_id is None:
            raise UnauthorizedError("Not authenticated")
        return user_id

    def _require_admin(self, session_id: Optional[str]) -> str:
        user_id = self._require_user(session_id)
        if not self.bindings.resolve_is_admin(session_id):
            raise ForbiddenError("Admin access required")
        return user_id

    # =========================================================================
    # Context tools
    # =========================================================================

    def _register_context_tools(self) -> None:
        self._add(ToolDefinition(
            name="read_context",
            title="Read Context",
            description="Read a single context entry by its key",
            arguments=ReadContextArgs,
            handler=self._read_context,
            failure_message="Failed to read context entry",
        ))
        self._add(ToolDefinition(
            name="write_context",
            title="Write Context",
            description="Create or update a context entry. If the key exists, it will be updated.",
            arguments=WriteContextArgs,
            handler=self._write_context,
            failure_message="Failed to write context entry",
        ))
        self._add(ToolDefinition(
            name="delete_context",
            title="Delete Context",
            description="Delete a context entry by its key",
            arguments=DeleteContextArgs,
            handler=self._delete_context,
            failure_message="Failed to delete context entry",
        ))
        self._add(ToolDefinition(
            name="list_context",
            title="List Context",
            description="List all context keys with metadata, optionally filtered by search pattern",
            arguments=ListContextArgs,
            handler=self._list_context,
            failure_message="Failed to list context entries",
        ))
        self._add(ToolDefinition(
            name="read_all_context",
            title="Read All Context",
            description="Read all context entries with their content, ordered by most recently updated",
            arguments=ReadAllContextArgs,
            handler=self._read_all_context,
            failure_message="Failed to read context entries",
        ))

    async def _read_context(self, args: ReadContextArgs, session_id: Optional[str]) -> ToolOutcome:
        user_id = self._require_user(session_id)
        key = validate_key(args.key)

        entry = await self.context.get(user_id, key)
        if entry is None:
            raise NotFoundError(f"Context entry '{key}' not found")
        return ToolOutcome(entry.to_api_response())

    async def _write_context(self, args: WriteContextArgs, session_id: Optional[str]) -> ToolOutcome:
        user_id = self._require_user(session_id)
        key = validate_key(args.key)
        content = validate_content(args.content)

        result = await self.context.set(user_id, key, content)
        entry = result.entry
        data = {
            "key": entry.key,
            "created_at": entry.created_at.isoformat(),
            "updated_at": entry.updated_at.isoformat(),
            "action": result.action,
        }
        return ToolOutcome(data, timestamp=entry.updated_at)

    async def _delete_context(self, args: DeleteContextArgs, session_id: Optional[str]) -> ToolOutcome:
        user_id = self._require_user(session_id)
        key = validate_key(args.key)

        if not await self.context.delete(user_id, key):
            raise NotFoundError(f"Context entry '{key}' not found")
        return ToolOutcome({"key": key, "deleted": True}, timestamp=utcnow())

    async def _list_context(self, args: ListContextArgs, session_id: Optional[str]) -> ToolOutcome:
        user_id = self._require_user(session_id)
        safe_limit = clamp_limit(args.limit, LIST_MAX_LIMIT, LIST_DEFAULT_LIMIT)
        search = validate_search(args.search)

        entries = await self.context.list(user_id, limit=safe_limit, search=search)
        data = {
            "entries": [entry.to_api_response() for entry in entries],
            "count": len(entries),
            "limit": safe_limit,
        }
        if search:
            data["search"] = search
        return ToolOutcome(data)

    async def _read_all_context(self, args: ReadAllContextArgs, session_id: Optional[str]) -> ToolOutcome:
        user_id = self._require_user(session_id)
        safe_limit = clamp_limit(args.limit, READ_ALL_MAX_LIMIT, READ_ALL_DEFAULT_LIMIT)

        entries = await self.context.list_all(user_id, limit=safe_limit)
        return ToolOutcome({
            "entries": [entry.to_api_response() for entry in entries],
            "count": len(entries),
            "limit": safe_limit,
        })

    # =========================================================================
    # Admin tools
    # =========================================================================

    def _register_admin_tools(self) -> None:
        self._add(ToolDefinition(
            name="admin_list_users",
            title="List Users (Admin)",
            description="List all users with their metadata, API key counts, and context entry counts. Admin only.",
            arguments=AdminListUsersArgs,
            handler=self._admin_list_users,
            failure_message="Failed to list users",
        ))
        self._add(ToolDefinition(
            name="admin_create_user",
            title="Create User (Admin)",
            description=(
                "Create a new user and generate their initial API key. "
                "The API key is shown only once. Admin only."
            ),
            arguments=AdminCreateUserArgs,
            handler=self._admin_create_user,
            failure_message="Failed to create user",
        ))
        self._add(ToolDefinition(
            name="admin_create_api_key",
            title="Create API Key (Admin)",
            description="Create a new API key for an existing user. The API key is shown only once. Admin only.",
            arguments=AdminCreateApiKeyArgs,
            handler=self._admin_create_api_key,
            failure_message="Failed to create API key",
        ))
        self._add(ToolDefinition(
            name="admin_revoke_api_key",
            title="Revoke API Key (Admin)",
            description="Revoke/delete an API key by name for a user. The key will immediately stop working. Admin only.",
            arguments=AdminRevokeApiKeyArgs,
            handler=self._admin_revoke_api_key,
            failure_message="Failed to revoke API key",
        ))
        self._add(ToolDefinition(
            name="admin_delete_user",
            title="Delete User (Admin)",
            description=(
                "Permanently delete a user and all their data (API keys, context entries, history). "
                "This cannot be undone. Admin only."
            ),
            arguments=AdminDeleteUserArgs,
            handler=self._admin_delete_user,
            failure_message="Failed to delete user",
        ))

    async def _admin_list_users(self, args: AdminListUsersArgs, session_id: Optional[str]) -> ToolOutcome:
        admin_id = self._require_admin(session_id)
        users = await self.admin.list_users(admin_id)
        return ToolOutcome({
            "users": [summary.to_api_response() for summary in users],
            "count": len(users),
        })

    async def _admin_create_user(self, args: AdminCreateUserArgs, session_id: Optional[str]) -> ToolOutcome:
        admin_id = self._require_admin(session_id)
        return ToolOutcome(
            await self.admin.create_user(admin_id, args.user_id, args.email, args.api_key_name)
        )

    async def _admin_create_api_key(self, args: AdminCreateApiKeyArgs, session_id: Optional[str]) -> ToolOutcome:
        admin_id = self._require_admin(session_id)
        return ToolOutcome(await self.admin.create_api_key(admin_id, args.user_id, args.name))

    async def _admin_revoke_api_key(self, args: AdminRevokeApiKeyArgs, session_id: Optional[str]) -> ToolOutcome:
        admin_id = self._require_admin(session_id)
        return ToolOutcome(await self.admin.revoke_api_key(admin_id, args.user_id, args.api_key_name))

    async def _admin_delete_user(self, args: AdminDeleteUserArgs, session_id: Optional[str]) -> ToolOutcome:
        admin_id = self._require_admin(session_id)
        return ToolOutcome(await self.admin.delete_user(admin_id, args.user_id, args.confirm))
