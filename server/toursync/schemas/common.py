"""Common Pydantic schemas."""

import math
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    success: bool = Field(False, description="Always false for problems")
    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


class PaginationMeta(BaseModel):
    """Page position of a list response."""

    current_page: int = Field(..., ge=1, description="Current page number")
    last_page: int = Field(..., ge=1, description="Last page number")
    per_page: int = Field(..., ge=1, description="Items per page")
    total: int = Field(..., ge=0, description="Total matching items")

    @classmethod
    def build(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        return cls(
            current_page=page,
            last_page=max(1, math.ceil(total / per_page)),
            per_page=per_page,
            total=total,
        )


class ApiResponse(BaseModel, Generic[DataT]):
    """The ``{success, data, meta}`` envelope shared by every endpoint."""

    success: bool = Field(True, description="Whether the request succeeded")
    data: DataT = Field(..., description="Response payload")
    meta: Optional[PaginationMeta] = Field(None, description="Pagination for list responses")
    message: Optional[str] = Field(None, description="Human-readable outcome")
