"""Pydantic schemas for admin endpoints."""
from typing import List, Optional

from pydantic import BaseModel, Field


class AdminUserResponse(BaseModel):
    id: str
    email: str
    auth_provider: str
    is_admin: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    api_key_count: int
    context_entry_count: int


class AdminUserListResponse(BaseModel):
    users: List[AdminUserResponse]
    count: int


class AdminCreateUserRequest(BaseModel):
    """Request body for POST /api/admin/users."""
    user_id: str = Field(..., description="Unique user ID (alphanumeric with dashes/underscores, max 50 chars)")
    email: str = Field(..., description="User email address")
    api_key_name: Optional[str] = Field(None, description="Name for the initial API key (default: 'default')")


class AdminCreateUserResponse(BaseModel):
    user_id: str
    email: str
    api_key: str
    api_key_name: str
    message: str


class AdminDeleteUserResponse(BaseModel):
    user_id: str
    email: str
    message: str
