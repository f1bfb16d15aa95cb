"""Auth router: lets a client check what its bearer token resolves to."""
from fastapi import APIRouter, Depends

from core.auth import get_current_user
from core.dependencies import get_user_service
from core.errors import NotFoundError
from core.principal import ResolvedPrincipal
from core.services.user_service import UserService
from schemas.auth import VerifyResponse
from schemas.common import ErrorResponse, SuccessResponse

router = APIRouter()


@router.post(
    "/verify",
    response_model=SuccessResponse[VerifyResponse],
    summary="Verify credentials",
    description="Resolve the bearer token (Clerk JWT or API key) and return the caller's identity.",
    operation_id="verify_auth",
    responses={
        401: {"model": ErrorResponse, "description": "Missing or expired token"},
        403: {"model": ErrorResponse, "description": "Invalid API key"},
    },
)
async def verify(
    principal: ResolvedPrincipal = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    user = await users.get(principal.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return SuccessResponse(
        data=VerifyResponse(user_id=user.id, email=user.email, is_admin=bool(user.is_admin))
    )
