"""Pydantic schemas for the context REST endpoints."""
from typing import List, Optional

from pydantic import BaseModel, Field


class PutContextRequest(BaseModel):
    """Request body for PUT /api/context/{key}."""
    content: str = Field(..., description="The content to store (max 100KB of UTF-8)")


class ContextEntryResponse(BaseModel):
    key: str
    content: str
    created_at: str
    updated_at: str


class ContextKeyResponse(BaseModel):
    key: str
    updated_at: str


class ContextListResponse(BaseModel):
    """Response from GET /api/context."""
    entries: List[ContextKeyResponse]
    count: int
    limit: int
    search: Optional[str] = None


class ContextAllResponse(BaseModel):
    """Response from GET /api/context/all."""
    entries: List[ContextEntryResponse]
    count: int
    limit: int


class ContextWriteResponse(BaseModel):
    """Response from PUT /api/context/{key}."""
    key: str
    created_at: str
    updated_at: str
    action: str = Field(..., description="'created' or 'updated'")


class ContextDeleteResponse(BaseModel):
    key: str
    deleted: bool
