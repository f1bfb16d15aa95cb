"""Context router: REST mirror of the context MCP tools.

Every route resolves the caller from the bearer token and only ever touches
that caller's entries.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from core.auth import get_current_user
from core.constants import LIST_DEFAULT_LIMIT, LIST_MAX_LIMIT, READ_ALL_DEFAULT_LIMIT, READ_ALL_MAX_LIMIT
from core.dependencies import get_context_service
from core.errors import NotFoundError
from core.principal import ResolvedPrincipal
from core.services.context_service import ContextService
from core.validators import clamp_limit, validate_content, validate_key, validate_search
from models.base import utcnow
from schemas.common import ErrorResponse, SuccessResponse
from schemas.context import (
    ContextAllResponse,
    ContextDeleteResponse,
    ContextEntryResponse,
    ContextListResponse,
    ContextWriteResponse,
    PutContextRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid key, content or parameters"},
    401: {"model": ErrorResponse, "description": "Missing bearer token"},
    403: {"model": ErrorResponse, "description": "Invalid API key or token"},
}


@router.get(
    "",
    response_model=SuccessResponse[ContextListResponse],
    summary="List context keys",
    description="Key metadata, most recently updated first. `search` is a case-insensitive substring match.",
    operation_id="list_context",
    responses=_ERRORS,
)
async def list_context(
    limit: Optional[int] = Query(None, description="Default 50, max 200"),
    search: Optional[str] = Query(None, description="Substring of the key"),
    principal: ResolvedPrincipal = Depends(get_current_user),
    context: ContextService = Depends(get_context_service),
):
    safe_limit = clamp_limit(limit, LIST_MAX_LIMIT, LIST_DEFAULT_LIMIT)
    search = validate_search(search)

    entries = await context.list(principal.user_id, limit=safe_limit, search=search)
    return SuccessResponse(
        data=ContextListResponse(
            entries=[entry.to_api_response() for entry in entries],
            count=len(entries),
            limit=safe_limit,
            search=search,
        )
    )


@router.get(
    "/all",
    response_model=SuccessResponse[ContextAllResponse],
    summary="Read all context",
    description="Full entries with content, most recently updated first.",
    operation_id="read_all_context",
    responses=_ERRORS,
)
async def read_all_context(
    limit: Optional[int] = Query(None, description="Default 20, max 50"),
    principal: ResolvedPrincipal = Depends(get_current_user),
    context: ContextService = Depends(get_context_service),
):
    safe_limit = clamp_limit(limit, READ_ALL_MAX_LIMIT, READ_ALL_DEFAULT_LIMIT)

    entries = await context.list_all(principal.user_id, limit=safe_limit)
    return SuccessResponse(
        data=ContextAllResponse(
            entries=[entry.to_api_response() for entry in entries],
            count=len(entries),
            limit=safe_limit,
        )
    )


@router.get(
    "/{key}",
    response_model=SuccessResponse[ContextEntryResponse],
    summary="Read one context entry",
    operation_id="read_context",
    responses={**_ERRORS, 404: {"model": ErrorResponse, "description": "No entry with this key"}},
)
async def read_context(
    key: str,
    principal: ResolvedPrincipal = Depends(get_current_user),
    context: ContextService = Depends(get_context_service),
):
    key = validate_key(key)
    entry = await context.get(principal.user_id, key)
    if entry is None:
        raise NotFoundError(f"Context entry '{key}' not found")
    return SuccessResponse(data=entry.to_api_response())


@router.put(
    "/{key}",
    response_model=SuccessResponse[ContextWriteResponse],
    summary="Create or replace a context entry",
    description="Returns 201 when the key was created and 200 when an existing entry was replaced.",
    operation_id="write_context",
    responses={**_ERRORS, 201: {"description": "Entry created"}},
)
async def write_context(
    key: str,
    body: PutContextRequest,
    response: Response,
    principal: ResolvedPrincipal = Depends(get_current_user),
    context: ContextService = Depends(get_context_service),
):
    key = validate_key(key)
    content = validate_content(body.content)

    result = await context.set(principal.user_id, key, content)
    entry = result.entry
    response.status_code = 201 if result.created else 200

    return SuccessResponse(
        data=ContextWriteResponse(
            key=entry.key,
            created_at=entry.created_at.isoformat(),
            updated_at=entry.updated_at.isoformat(),
            action=result.action,
        ),
        timestamp=entry.updated_at.isoformat(),
    )


@router.delete(
    "/{key}",
    response_model=SuccessResponse[ContextDeleteResponse],
    summary="Delete a context entry",
    operation_id="delete_context",
    responses={**_ERRORS, 404: {"model": ErrorResponse, "description": "No entry with this key"}},
)
async def delete_context(
    key: str,
    principal: ResolvedPrincipal = Depends(get_current_user),
    context: ContextService = Depends(get_context_service),
):
    key = validate_key(key)
    if not await context.delete(principal.user_id, key):
        raise NotFoundError(f"Context entry '{key}' not found")
    return SuccessResponse(
        data=ContextDeleteResponse(key=key, deleted=True),
        timestamp=utcnow().isoformat(),
    )
