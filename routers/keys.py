"""Self-service API key management for the authenticated user."""
import logging

from fastapi import APIRouter, Depends

from core.auth import get_current_user
from core.constants import MAX_API_KEYS_PER_USER
from core.dependencies import get_api_key_service
from core.errors import ConflictError, NotFoundError
from core.principal import ResolvedPrincipal
from core.services.api_key_service import ApiKeyService
from core.validators import validate_api_key_name
from schemas.common import ErrorResponse, SuccessResponse
from schemas.keys import CreatedKeyResponse, CreateKeyRequest, KeyListResponse, RevokedKeyResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=SuccessResponse[KeyListResponse],
    summary="List my API keys",
    description="Key names and usage timestamps. Key material is never returned.",
    operation_id="list_api_keys",
    responses={401: {"model": ErrorResponse, "description": "Missing bearer token"}},
)
async def list_keys(
    principal: ResolvedPrincipal = Depends(get_current_user),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    keys = await api_keys.list_for_user(principal.user_id)
    return SuccessResponse(
        data=KeyListResponse(keys=[key.to_api_response() for key in keys], count=len(keys))
    )


@router.post(
    "",
    response_model=SuccessResponse[CreatedKeyResponse],
    status_code=201,
    summary="Create an API key",
    description=f"Returns the plaintext key once. At most {MAX_API_KEYS_PER_USER} keys per user.",
    operation_id="create_api_key",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid key name"},
        409: {"model": ErrorResponse, "description": "Duplicate name or key limit reached"},
    },
)
async def create_key(
    body: CreateKeyRequest,
    principal: ResolvedPrincipal = Depends(get_current_user),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    name = validate_api_key_name(body.name)

    if await api_keys.count_for_user(principal.user_id) >= MAX_API_KEYS_PER_USER:
        raise ConflictError(f"Maximum of {MAX_API_KEYS_PER_USER} API keys per user reached. Revoke one first.")

    plain_key = await api_keys.create(principal.user_id, name)
    return SuccessResponse(
        data=CreatedKeyResponse(
            api_key=plain_key,
            key_name=name,
            message="API key created successfully. Save it - it will not be shown again.",
        )
    )


@router.delete(
    "/{name}",
    response_model=SuccessResponse[RevokedKeyResponse],
    summary="Revoke an API key",
    operation_id="revoke_api_key",
    responses={404: {"model": ErrorResponse, "description": "No key with this name"}},
)
async def revoke_key(
    name: str,
    principal: ResolvedPrincipal = Depends(get_current_user),
    api_keys: ApiKeyService = Depends(get_api_key_service),
):
    name = validate_api_key_name(name)
    if not await api_keys.revoke(principal.user_id, name):
        raise NotFoundError(f"API key '{name}' not found")
    return SuccessResponse(data=RevokedKeyResponse(key_name=name, revoked=True))
