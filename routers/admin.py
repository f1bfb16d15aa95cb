"""Admin router: user management over REST. Every route requires an admin principal."""
import logging

from fastapi import APIRouter, Depends

from core.auth import require_admin
from core.dependencies import get_admin_service
from core.principal import ResolvedPrincipal
from core.services.admin_service import AdminService
from schemas.admin import (
    AdminCreateUserRequest,
    AdminCreateUserResponse,
    AdminDeleteUserResponse,
    AdminUserListResponse,
)
from schemas.common import ErrorResponse, SuccessResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_ERRORS = {
    401: {"model": ErrorResponse, "description": "Missing bearer token"},
    403: {"model": ErrorResponse, "description": "Not an admin, or target may not be modified"},
}


@router.get(
    "/users",
    response_model=SuccessResponse[AdminUserListResponse],
    summary="List users",
    description="All users with API key and context entry counts.",
    operation_id="admin_list_users",
    responses=_ERRORS,
)
async def list_users(
    admin: ResolvedPrincipal = Depends(require_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    users = await admin_service.list_users(admin.user_id)
    return SuccessResponse(
        data=AdminUserListResponse(users=[summary.to_api_response() for summary in users], count=len(users))
    )


@router.post(
    "/users",
    response_model=SuccessResponse[AdminCreateUserResponse],
    status_code=201,
    summary="Create user",
    description="Create a user with an initial API key. The key is shown only once.",
    operation_id="admin_create_user",
    responses={**_ERRORS, 400: {"model": ErrorResponse, "description": "Invalid input or user already exists"}},
)
async def create_user(
    body: AdminCreateUserRequest,
    admin: ResolvedPrincipal = Depends(require_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    data = await admin_service.create_user(admin.user_id, body.user_id, body.email, body.api_key_name)
    return SuccessResponse(data=data)


@router.delete(
    "/users/{user_id}",
    response_model=SuccessResponse[AdminDeleteUserResponse],
    summary="Delete user",
    description="Permanently delete a non-admin user with all API keys, context entries and history.",
    operation_id="admin_delete_user",
    responses={**_ERRORS, 404: {"model": ErrorResponse, "description": "No such user"}},
)
async def delete_user(
    user_id: str,
    admin: ResolvedPrincipal = Depends(require_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    # The DELETE verb is the confirmation on this surface
    data = await admin_service.delete_user(admin.user_id, user_id, confirm=True)
    return SuccessResponse(data=data)
