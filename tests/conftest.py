"""
Shared test fixtures for the shared context backend.

Tests run against TEST_DATABASE_URL when set (e.g. a throwaway Postgres),
otherwise against a per-test SQLite file through aiosqlite. A file rather
than :memory: so concurrent sessions see each other's commits.
"""
import json
import os
from typing import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.constants import MCP_SESSION_HEADER
from core.services.admin_service import AdminService
from core.services.api_key_service import ApiKeyService
from core.services.clerk_profile import ExternalProfile
from core.services.context_service import ContextService
from core.services.user_service import UserService
from models.admin_audit_log import AdminAuditLog
from models.base import Base

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


def parse_tool_envelope(rpc_response: dict) -> dict:
    """Decode the JSON envelope carried in a tools/call result."""
    return json.loads(rpc_response["result"]["content"][0]["text"])


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh schema per test."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    connect_args = {"timeout": 30} if url.startswith("sqlite") else {}
    test_engine = create_async_engine(url, echo=False, connect_args=connect_args)

    if test_engine.dialect.name == "sqlite":
        @event.listens_for(test_engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging and inspecting rows directly."""
    async with session_factory() as session:
        yield session


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def context_service(session_factory) -> ContextService:
    return ContextService(session_factory)


@pytest.fixture
async def api_key_service(session_factory) -> AsyncGenerator[ApiKeyService, None]:
    service = ApiKeyService(session_factory)
    yield service
    await service.drain()


@pytest.fixture
async def user_service(session_factory) -> AsyncGenerator[UserService, None]:
    service = UserService(session_factory)
    yield service
    await service.drain()


@pytest.fixture
def admin_service(user_service, api_key_service) -> AdminService:
    return AdminService(user_service, api_key_service)


@pytest.fixture
def profile_fetcher() -> MagicMock:
    """Clerk profile lookup that returns <subject>@example.com."""
    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(side_effect=lambda subject: ExternalProfile(subject, f"{subject}@example.com"))
    return fetcher


@pytest.fixture
def audit_entries(session_factory) -> Callable:
    """Admin audit log rows, newest first."""

    async def _audit_entries():
        async with session_factory() as session:
            result = await session.execute(select(AdminAuditLog).order_by(AdminAuditLog.id.desc()))
            return list(result.scalars().all())

    return _audit_entries


@pytest.fixture
def make_user(user_service) -> Callable:
    """Create a manual user with one API key; returns (user, plaintext_key)."""

    async def _make_user(user_id: str, email: str = None, is_admin: bool = False, key_name: str = "default"):
        return await user_service.create_user(
            user_id, email or f"{user_id}@example.com", api_key_name=key_name, is_admin=is_admin
        )

    return _make_user


# =============================================================================
# App and clients
# =============================================================================


@pytest.fixture
def app(session_factory, profile_fetcher):
    """A fresh app per test with its own registries and rate limiter."""
    from main import create_app

    return create_app(session_factory=session_factory, profile_fetcher=profile_fetcher, init_database=False)


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await app.state.api_key_service.drain()
    await app.state.user_service.drain()


@pytest.fixture
def auth_headers() -> Callable[[str], dict]:
    def _auth_headers(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


class McpClient:
    """Minimal streamable HTTP client: initialize once, then reuse the session id."""

    def __init__(self, http: AsyncClient, token: str):
        self.http = http
        self.token = token
        self.session_id = None
        self._next_id = 0

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def initialize(self):
        response = await self.http.post(
            "/mcp",
            json={
                "jsonrpc": "2.0",
                "id": self._id(),
                "method": "initialize",
                "params": {
                    "protocolVersion": "2025-03-26",
                    "capabilities": {},
                    "clientInfo": {"name": "pytest", "version": "1.0"},
                },
            },
            headers={"Authorization": f"Bearer {self.token}"},
        )
        if response.status_code == 200:
            self.session_id = response.headers[MCP_SESSION_HEADER]
            await self.notify("notifications/initialized")
        return response

    async def request(self, method: str, params: dict = None):
        body = {"jsonrpc": "2.0", "id": self._id(), "method": method}
        if params is not None:
            body["params"] = params
        return await self.http.post("/mcp", json=body, headers={MCP_SESSION_HEADER: self.session_id})

    async def notify(self, method: str):
        return await self.http.post(
            "/mcp", json={"jsonrpc": "2.0", "method": method}, headers={MCP_SESSION_HEADER: self.session_id}
        )

    async def call_tool(self, name: str, arguments: dict = None) -> dict:
        response = await self.request("tools/call", {"name": name, "arguments": arguments or {}})
        assert response.status_code == 200, response.text
        return parse_tool_envelope(response.json())

    async def close(self):
        return await self.http.delete("/mcp", headers={MCP_SESSION_HEADER: self.session_id})


@pytest.fixture
def mcp_client(async_client) -> Callable[[str], McpClient]:
    def _mcp_client(token: str) -> McpClient:
        return McpClient(async_client, token)

    return _mcp_client
