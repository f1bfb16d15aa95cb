"""
JSON-RPC 2.0 handling for the MCP methods this server speaks.

`initialize` is special: it creates the session, so the HTTP layer runs it
(after authenticating the caller) and only then hands later messages to
McpProtocol.dispatch together with the session they belong to.
"""
import logging
from typing import Any, List, Optional, Tuple, Union

from pydantic import ValidationError

from core.constants import MCP_PROTOCOL_VERSION, SERVER_VERSION, SUPPORTED_PROTOCOL_VERSIONS
from core.mcp.session_manager import ProtocolSession
from core.mcp.tools import ToolRegistry, UnknownToolError
from schemas.mcp import InitializeParams, JsonRpcRequest, ToolCallParams

logger = logging.getLogger(__name__)

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# Server-defined range
SESSION_ERROR = -32000
AUTH_REQUIRED = -32001
AUTH_REJECTED = -32002

SERVER_NAME = "mcp-shared-context"

INSTRUCTIONS = (
    "Persistent key/value context shared across conversations. "
    "Use list_context to discover keys, read_context to fetch one entry "
    "and write_context to save or update an entry."
)


def jsonrpc_result(request_id: Any, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def jsonrpc_error(request_id: Any, code: int, message: str, data: Any = None) -> dict:
    error = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


ParsedMessage = Union[JsonRpcRequest, dict]


def parse_messages(payload: Any) -> Tuple[List[ParsedMessage], bool]:
    """
    Split a POST body into messages.

    Returns:
        (messages, is_batch). Entries that fail validation are replaced by
        ready-made JSON-RPC error responses.
    """
    is_batch = isinstance(payload, list)
    raw_messages = payload if is_batch else [payload]
    if is_batch and not raw_messages:
        return [jsonrpc_error(None, INVALID_REQUEST, "Invalid Request: empty batch")], False

    messages: List[ParsedMessage] = []
    for raw in raw_messages:
        if not isinstance(raw, dict):
            messages.append(jsonrpc_error(None, INVALID_REQUEST, "Invalid Request"))
            continue
        if "method" not in raw:
            # Client responses to server requests; nothing is ever sent that expects one
            continue
        try:
            messages.append(JsonRpcRequest.model_validate(raw))
        except ValidationError:
            messages.append(jsonrpc_error(raw.get("id"), INVALID_REQUEST, "Invalid Request"))
    return messages, is_batch


def is_initialize(message: ParsedMessage) -> bool:
    return isinstance(message, JsonRpcRequest) and message.method == "initialize" and not message.is_notification


def negotiate_version(requested: Optional[str]) -> str:
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return MCP_PROTOCOL_VERSION


class McpProtocol:
    def __init__(self, tools: ToolRegistry):
        self.tools = tools

    def initialize_result(self, params: InitializeParams) -> dict:
        return {
            "protocolVersion": negotiate_version(params.protocol_version),
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            "instructions": INSTRUCTIONS,
        }

    async def dispatch(self, message: JsonRpcRequest, session: ProtocolSession) -> Optional[dict]:
        """Handle one message on an established session. Returns None for notifications."""
        try:
            result = await self._handle(message, session)
        except _RpcError as e:
            if message.is_notification:
                return None
            return jsonrpc_error(message.id, e.code, e.message)
        except Exception:
            logger.exception("Unhandled error in MCP method %s", message.method)
            if message.is_notification:
                return None
            return jsonrpc_error(message.id, INTERNAL_ERROR, "Internal error")

        if message.is_notification:
            return None
        return jsonrpc_result(message.id, result)

    async def _handle(self, message: JsonRpcRequest, session: ProtocolSession) -> dict:
        method = message.method
        params = message.params or {}

        if not session.is_open:
            raise _RpcError(SESSION_ERROR, "Session is not active")
        if method.startswith("notifications/"):
            return {}
        if method == "initialize":
            raise _RpcError(INVALID_REQUEST, "Session already initialized")
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": self.tools.list_tools()}
        if method == "tools/call":
            try:
                call = ToolCallParams.model_validate(params)
            except ValidationError:
                raise _RpcError(INVALID_PARAMS, "Invalid params: expected {name, arguments}")
            try:
                return await self.tools.call(call.name, call.arguments, session.session_id)
            except UnknownToolError as e:
                raise _RpcError(INVALID_PARAMS, str(e))

        raise _RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")


class _RpcError(Exception):
    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message
