"""Pydantic schemas for API request/response validation."""

from .common import ErrorResponse, SuccessResponse
from .context import (
    ContextAllResponse,
    ContextDeleteResponse,
    ContextEntryResponse,
    ContextKeyResponse,
    ContextListResponse,
    ContextWriteResponse,
    PutContextRequest,
)
from .keys import ApiKeyInfo, CreatedKeyResponse, CreateKeyRequest, KeyListResponse, RevokedKeyResponse
from .admin import (
    AdminCreateUserRequest,
    AdminCreateUserResponse,
    AdminDeleteUserResponse,
    AdminUserListResponse,
    AdminUserResponse,
)
from .auth import VerifyResponse

__all__ = [
    "ErrorResponse",
    "SuccessResponse",
    # Context
    "ContextAllResponse",
    "ContextDeleteResponse",
    "ContextEntryResponse",
    "ContextKeyResponse",
    "ContextListResponse",
    "ContextWriteResponse",
    "PutContextRequest",
    # Keys
    "ApiKeyInfo",
    "CreatedKeyResponse",
    "CreateKeyRequest",
    "KeyListResponse",
    "RevokedKeyResponse",
    # Admin
    "AdminCreateUserRequest",
    "AdminCreateUserResponse",
    "AdminDeleteUserResponse",
    "AdminUserListResponse",
    "AdminUserResponse",
    # Auth
    "VerifyResponse",
]
