"""Pydantic schemas for self-service API key endpoints."""
from typing import List, Optional

from pydantic import BaseModel, Field


class CreateKeyRequest(BaseModel):
    """Request body for POST /api/keys."""
    name: str = Field(..., description="Label for the key, e.g. 'laptop'")


class ApiKeyInfo(BaseModel):
    name: str
    created_at: Optional[str] = None
    last_used_at: Optional[str] = None


class KeyListResponse(BaseModel):
    keys: List[ApiKeyInfo]
    count: int


class CreatedKeyResponse(BaseModel):
    """Response from POST /api/keys. The plaintext key is shown only here."""
    api_key: str
    key_name: str
    message: str


class RevokedKeyResponse(BaseModel):
    key_name: str
    revoked: bool
