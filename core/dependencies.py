"""FastAPI dependencies for app-scoped services.

Everything here is constructed once in create_app() and hung on app.state,
so each app instance (and each test app) owns its own registries.
"""
from fastapi import Request

from core.mcp.protocol import McpProtocol
from core.mcp.session_manager import SessionManager
from core.services.admin_service import AdminService
from core.services.api_key_service import ApiKeyService
from core.services.context_service import ContextService
from core.services.user_service import UserService


def get_context_service(request: Request) -> ContextService:
    return request.app.state.context_service


def get_api_key_service(request: Request) -> ApiKeyService:
    return request.app.state.api_key_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin_service


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_protocol(request: Request) -> McpProtocol:
    return request.app.state.mcp_protocol
