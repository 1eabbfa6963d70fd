"""Common Pydantic schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


class PageMeta(BaseModel):
    """Offset pagination metadata."""

    page: int = Field(..., ge=0, description="Zero-based page index")
    size: int = Field(..., ge=1, description="Requested page size")
    total: int = Field(..., ge=0, description="Total matching items")

    @property
    def has_next(self) -> bool:
        return (self.page + 1) * self.size < self.total


class CountResponse(BaseModel):
    """A single count."""

    count: int = Field(..., ge=0)
