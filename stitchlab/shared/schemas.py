"""Shared Pydantic schemas for API responses."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class OffsetPagination(BaseModel):
    """Offset pagination metadata (limit/skip)."""

    total: int = Field(..., ge=0, description="Total number of matching rows")
    limit: int = Field(..., ge=1, description="Maximum rows in this page")
    skip: int = Field(..., ge=0, description="Rows skipped before this page")
    has_more: bool = Field(..., description="Whether rows exist beyond this page")


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic limit/skip paginated response wrapper."""

    data: list[T] = Field(..., description="Page of rows")
    pagination: OffsetPagination
