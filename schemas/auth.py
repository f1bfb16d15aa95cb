"""Pydantic schemas for auth endpoints."""
from pydantic import BaseModel, Field


class VerifyResponse(BaseModel):
    """Response from POST /api/auth/verify."""
    user_id: str = Field(..., description="Internal user ID")
    email: str
    is_admin: bool
    authenticated: bool = True
