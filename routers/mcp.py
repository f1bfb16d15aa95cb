"""MCP streamable HTTP endpoint.

POST carries client JSON-RPC messages, GET opens a server-sent event stream,
DELETE ends the session. No server-initiated messages are produced today, so
the GET stream is a keepalive channel that ends when the session closes.
A session is created only by an authenticated `initialize`; every later
request is routed by its `mcp-session-id` header.
"""
import asyncio
import json
import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security.utils import get_authorization_scheme_param
from pydantic import ValidationError

from core.auth import PrincipalResolver, authenticate_bearer, get_resolver
from core.config import settings
from core.constants import MCP_SESSION_HEADER
from core.dependencies import get_protocol, get_session_manager
from core.errors import AuthenticationError, InvalidCredentialError, UnauthorizedError
from core.mcp.protocol import (
    AUTH_REJECTED,
    AUTH_REQUIRED,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    PARSE_ERROR,
    SESSION_ERROR,
    McpProtocol,
    is_initialize,
    jsonrpc_error,
    jsonrpc_result,
    negotiate_version,
    parse_messages,
)
from core.mcp.session_bindings import short_id
from core.mcp.session_manager import STREAM_CLOSED, ProtocolSession, SessionManager
from schemas.mcp import InitializeParams, JsonRpcRequest

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 15.0

MISSING_SESSION = "Missing session ID. Send an initialize request first."
UNKNOWN_SESSION = "Invalid or expired session"


def _rpc_error_response(status_code: int, code: int, message: str, request_id=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonrpc_error(request_id, code, message))


def _bearer_token(request: Request) -> Optional[str]:
    scheme, token = get_authorization_scheme_param(request.headers.get("authorization"))
    if scheme.lower() != "bearer" or not token:
        return None
    return token


@router.post(
    "/mcp",
    summary="MCP JSON-RPC",
    description="Send one JSON-RPC message or a batch. Without a session header the body must be `initialize`.",
    operation_id="mcp_post",
    responses={
        202: {"description": "Notifications accepted"},
        400: {"description": "Malformed body or missing session id"},
        401: {"description": "No credential on initialize"},
        403: {"description": "Credential rejected"},
        404: {"description": "Unknown or closed session"},
        413: {"description": "Body exceeds the size cap"},
    },
)
async def mcp_post(
    request: Request,
    resolver: PrincipalResolver = Depends(get_resolver),
    sessions: SessionManager = Depends(get_session_manager),
    protocol: McpProtocol = Depends(get_protocol),
):
    body = await request.body()
    if len(body) > settings.MAX_REQUEST_BYTES:
        return _rpc_error_response(413, INVALID_REQUEST, "Request body too large")

    try:
        payload = json.loads(body)
    except ValueError:
        return _rpc_error_response(400, PARSE_ERROR, "Parse error")

    messages, is_batch = parse_messages(payload)
    session_id = request.headers.get(MCP_SESSION_HEADER)

    if not session_id:
        if is_batch or len(messages) != 1 or not is_initialize(messages[0]):
            return _rpc_error_response(400, SESSION_ERROR, MISSING_SESSION)
        return await _initialize(request, messages[0], resolver, sessions, protocol)

    session = sessions.get(session_id)
    if session is None:
        return _rpc_error_response(404, SESSION_ERROR, UNKNOWN_SESSION)

    responses = []
    for message in messages:
        if isinstance(message, dict):
            responses.append(message)
            continue
        response = await protocol.dispatch(message, session)
        if response is not None:
            responses.append(response)

    if not responses:
        return Response(status_code=202, headers={MCP_SESSION_HEADER: session.session_id})

    return JSONResponse(
        content=responses if is_batch else responses[0],
        headers={MCP_SESSION_HEADER: session.session_id},
    )


async def _initialize(
    request: Request,
    message: JsonRpcRequest,
    resolver: PrincipalResolver,
    sessions: SessionManager,
    protocol: McpProtocol,
) -> JSONResponse:
    """Authenticate, then create and bind a new session."""
    try:
        principal = await authenticate_bearer(_bearer_token(request), resolver)
    except UnauthorizedError as e:
        logger.warning("MCP initialize without credentials from %s", request.client.host if request.client else "-")
        return _rpc_error_response(401, AUTH_REQUIRED, e.message, message.id)
    except InvalidCredentialError as e:
        logger.warning("MCP initialize with rejected credential")
        return _rpc_error_response(e.status_code, AUTH_REJECTED, e.message, message.id)
    except AuthenticationError as e:
        return _rpc_error_response(500, INTERNAL_ERROR, e.message, message.id)

    try:
        params = InitializeParams.model_validate(message.params or {})
    except ValidationError:
        return _rpc_error_response(400, INVALID_PARAMS, "Invalid initialize params", message.id)

    session = sessions.create_session(
        principal,
        protocol_version=negotiate_version(params.protocol_version),
        client_info=params.client_info,
    )
    return JSONResponse(
        content=jsonrpc_result(message.id, protocol.initialize_result(params)),
        headers={MCP_SESSION_HEADER: session.session_id},
    )


async def session_event_stream(
    session: ProtocolSession,
    request: Optional[Request] = None,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """
    SSE frames until the session closes or the client leaves.

    Emits keepalive comments while idle. Anything queued with
    ProtocolSession.send is forwarded, though no server path queues messages yet.
    """
    while True:
        if request is not None and await request.is_disconnected():
            break
        try:
            message = await asyncio.wait_for(session.outbound.get(), timeout=keepalive)
        except asyncio.TimeoutError:
            if not session.is_open:
                break
            yield ": keepalive\n\n"
            continue
        # Messages queued before close are still delivered; the sentinel comes last
        if message is STREAM_CLOSED:
            break
        yield f"event: message\ndata: {json.dumps(message)}\n\n"
    logger.debug("SSE stream ended for session %s", short_id(session.session_id))


@router.get(
    "/mcp",
    summary="MCP server-sent events",
    description="Open the server-to-client event stream for an existing session.",
    operation_id="mcp_stream",
    responses={400: {"description": "Missing session id"}, 404: {"description": "Unknown or closed session"}},
)
async def mcp_get(request: Request, sessions: SessionManager = Depends(get_session_manager)):
    session_id = request.headers.get(MCP_SESSION_HEADER)
    if not session_id:
        return _rpc_error_response(400, SESSION_ERROR, MISSING_SESSION)

    session = sessions.get(session_id)
    if session is None:
        return _rpc_error_response(404, SESSION_ERROR, UNKNOWN_SESSION)

    return StreamingResponse(
        session_event_stream(session, request),
        media_type="text/event-stream",
        headers={
            MCP_SESSION_HEADER: session.session_id,
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@router.delete(
    "/mcp",
    summary="End MCP session",
    description="Close the session and drop its principal binding.",
    operation_id="mcp_delete",
    status_code=204,
    responses={400: {"description": "Missing session id"}, 404: {"description": "Unknown or closed session"}},
)
async def mcp_delete(request: Request, sessions: SessionManager = Depends(get_session_manager)):
    session_id = request.headers.get(MCP_SESSION_HEADER)
    if not session_id:
        return _rpc_error_response(400, SESSION_ERROR, MISSING_SESSION)

    if not sessions.close(session_id):
        return _rpc_error_response(404, SESSION_ERROR, UNKNOWN_SESSION)

    return Response(status_code=204)
