# Load environment variables FIRST, before any other imports
from dotenv import load_dotenv

load_dotenv()

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.auth import PrincipalResolver
from core.constants import MCP_SESSION_HEADER, SERVER_VERSION
from core.database import async_session_factory, check_db_health, close_engine
from core.errors import ContextStoreError, ErrorCode
from core.mcp.protocol import McpProtocol
from core.mcp.session_bindings import SessionBindingStore
from core.mcp.session_manager import SessionManager
from core.mcp.tools import ToolRegistry
from core.rate_limit import RateLimiter, rate_limit_middleware
from core.services.admin_service import AdminService
from core.services.api_key_service import ApiKeyService
from core.services.clerk_profile import ClerkProfileFetcher
from core.services.context_service import ContextService
from core.services.user_service import UserService
from init_db import bootstrap_legacy_token, init_models
from routers import admin, auth, context, keys, mcp
from models.base import utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting application...")
    if app.state.init_database:
        await init_models()
    await bootstrap_legacy_token(app.state.session_factory)

    yield

    logger.info("Shutting down application...")
    app.state.session_manager.close_all()
    app.state.session_bindings.clear_all()
    await app.state.api_key_service.drain()
    await app.state.user_service.drain()
    if app.state.dispose_engine:
        await close_engine()


openapi_tags = [
    {
        "name": "mcp",
        "description": "Model Context Protocol over streamable HTTP (JSON-RPC 2.0).",
    },
    {
        "name": "context",
        "description": "REST mirror of the context tools: list, read, write and delete entries.",
    },
    {
        "name": "keys",
        "description": "Self-service API key management.",
    },
    {
        "name": "admin",
        "description": "User administration. Admin principals only.",
    },
    {
        "name": "auth",
        "description": "Credential verification.",
    },
    {
        "name": "health",
        "description": "Root and health check endpoints for verifying API availability.",
    },
]


async def request_logging_middleware(request: Request, call_next):
    """Method, path, status and duration. Headers and bodies are never logged."""
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000
    level = logging.WARNING if response.status_code >= 400 else logging.INFO
    logger.log(
        level, "%s %s %d %.1fms", request.method, request.url.path, response.status_code, duration_ms
    )
    return response


def _error_body(message: str, code: ErrorCode) -> dict:
    return {"success": False, "error": message, "code": code.value}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ContextStoreError)
    async def context_store_error_handler(request: Request, exc: ContextStoreError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.code))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "request"
        message = f"Invalid {location}: {first.get('msg', 'invalid value')}"
        return JSONResponse(status_code=400, content=_error_body(message, ErrorCode.INVALID_INPUT))

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content=_error_body("Database operation failed", ErrorCode.DATABASE_ERROR))


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    profile_fetcher: Optional[ClerkProfileFetcher] = None,
    rate_limiter: Optional[RateLimiter] = None,
    init_database: bool = True,
) -> FastAPI:
    """
    Build the application and its app-scoped state.

    Services, the session registry, the binding store and the rate limiter
    all live on app.state; nothing request-scoped is a module global.
    """
    app = FastAPI(
        title="Shared Context API",
        description=(
            "Multi-tenant persistent context store. AI clients read and write keyed "
            "context entries over MCP; the same operations are mirrored as a REST API."
        ),
        version=SERVER_VERSION,
        docs_url=None if settings.ENVIRONMENT == "prod" else "/docs",
        redoc_url=None if settings.ENVIRONMENT == "prod" else "/redoc",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )

    factory = session_factory or async_session_factory
    app.state.session_factory = factory
    app.state.init_database = init_database
    app.state.dispose_engine = session_factory is None

    app.state.context_service = ContextService(factory)
    app.state.api_key_service = ApiKeyService(factory)
    app.state.user_service = UserService(factory)
    app.state.admin_service = AdminService(app.state.user_service, app.state.api_key_service)
    app.state.resolver = PrincipalResolver(
        users=app.state.user_service,
        api_keys=app.state.api_key_service,
        profiles=profile_fetcher or ClerkProfileFetcher(),
        admin_email=settings.ADMIN_EMAIL,
    )

    app.state.session_bindings = SessionBindingStore()
    app.state.session_manager = SessionManager(app.state.session_bindings)
    app.state.tool_registry = ToolRegistry(
        app.state.session_bindings,
        app.state.context_service,
        app.state.admin_service,
    )
    app.state.mcp_protocol = McpProtocol(app.state.tool_registry)
    app.state.rate_limiter = rate_limiter or RateLimiter(
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )

    # Middleware order: the last added runs first, so CORS answers preflights
    # before rate limiting or logging see them.
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_logging_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", MCP_SESSION_HEADER, "mcp-protocol-version"],
        expose_headers=[MCP_SESSION_HEADER],
        max_age=86400,
    )

    register_exception_handlers(app)

    app.include_router(mcp.router, tags=["mcp"])
    app.include_router(context.router, prefix="/api/context", tags=["context"])
    app.include_router(keys.router, prefix="/api/keys", tags=["keys"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])

    @app.get(
        "/",
        summary="API root",
        description="Returns a banner. Useful for verifying the API is reachable.",
        operation_id="root",
        tags=["health"],
    )
    async def root():
        return {"name": "mcp-shared-context", "version": SERVER_VERSION, "mcp_endpoint": "/mcp"}

    @app.get(
        "/health",
        summary="Health check",
        description="Validates database connectivity. Returns HTTP 200 when healthy, HTTP 503 when unhealthy.",
        operation_id="health_check",
        tags=["health"],
        responses={503: {"description": "Database connection failed"}},
    )
    async def health_check():
        timestamp = utcnow().isoformat()
        if await check_db_health(app.state.session_factory):
            return {"status": "healthy", "database": "connected", "timestamp": timestamp, "version": SERVER_VERSION}
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "timestamp": timestamp},
        )

    def custom_openapi():
        """Override OpenAPI schema generation to inject BearerAuth security scheme."""
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
            tags=app.openapi_tags,
        )
        schema["components"] = schema.get("components", {})
        schema["components"]["securitySchemes"] = {
            "BearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "description": "Clerk session JWT or API key",
            }
        }
        schema["security"] = [{"BearerAuth": []}]
        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi
    return app


app = create_app()
