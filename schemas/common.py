"""Response envelope shared by every REST endpoint."""
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class SuccessResponse(BaseModel, Generic[DataT]):
    success: bool = Field(True, description="Always true")
    data: DataT
    timestamp: Optional[str] = Field(None, description="ISO 8601 time of the mutation, when there was one")


class ErrorResponse(BaseModel):
    success: bool = Field(False, description="Always false")
    error: str = Field(..., description="Human-readable message")
    code: str = Field(..., description="Error code, e.g. INVALID_INPUT or NOT_FOUND")
