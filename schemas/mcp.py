"""Pydantic schemas for MCP JSON-RPC messages and tool arguments."""
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# JSON-RPC envelope
# =============================================================================


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request or notification (no id)."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: str = Field(..., pattern=r"^2\.0$")
    method: str
    params: Optional[Dict[str, Any]] = None
    id: Optional[Union[int, str]] = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class InitializeParams(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    protocol_version: Optional[str] = Field(None, alias="protocolVersion")
    capabilities: Dict[str, Any] = Field(default_factory=dict)
    client_info: Dict[str, Any] = Field(default_factory=dict, alias="clientInfo")


class ToolCallParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Tool arguments
#
# Types are checked here; key/content/user-id rules live in core.validators so
# MCP and REST report identical messages.
# =============================================================================


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ReadContextArgs(ToolArguments):
    key: str = Field(..., description="The unique key identifying the context entry to read")


class WriteContextArgs(ToolArguments):
    key: str = Field(..., description="The unique key for the context entry (alphanumeric, dash, underscore, dot)")
    content: str = Field(..., description="The content to store (max 100KB)")


class DeleteContextArgs(ToolArguments):
    key: str = Field(..., description="The unique key identifying the context entry to delete")


class ListContextArgs(ToolArguments):
    limit: Optional[float] = Field(None, description="Maximum number of entries to return (default: 50, max: 200)")
    search: Optional[str] = Field(None, description="Optional search pattern to filter keys (case-insensitive)")


class ReadAllContextArgs(ToolArguments):
    limit: Optional[float] = Field(None, description="Maximum number of entries to return (default: 20, max: 50)")


class AdminListUsersArgs(ToolArguments):
    pass


class AdminCreateUserArgs(ToolArguments):
    user_id: str = Field(..., description="Unique user ID (alphanumeric with dashes/underscores, max 50 chars)")
    email: str = Field(..., description="User email address")
    api_key_name: Optional[str] = Field(None, description='Name for the initial API key (default: "default")')


class AdminCreateApiKeyArgs(ToolArguments):
    user_id: str = Field(..., description="The user ID to create an API key for")
    name: str = Field(..., description='A name/label for this API key (e.g., "laptop", "work-machine")')


class AdminRevokeApiKeyArgs(ToolArguments):
    user_id: str = Field(..., description="The user ID whose API key should be revoked")
    api_key_name: str = Field(..., description="The name of the API key to revoke")


class AdminDeleteUserArgs(ToolArguments):
    user_id: str = Field(..., description="The user ID to delete")
    confirm: Optional[bool] = Field(
        None, strict=True, description="Must be true to confirm deletion. This action cannot be undone."
    )
