"""Common Pydantic schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.clock import to_naive_utc


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
    trace_id: Optional[str] = Field(None, description="Trace ID for debugging")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


class PaginatedResponse(BaseModel):
    """Base class for paginated responses."""

    next_cursor: Optional[str] = Field(None, description="Cursor for next page")


def normalize_datetime(value: datetime | None) -> datetime | None:
    """Field validator body: store every incoming timestamp as naive UTC."""
    if value is None:
        return None
    return to_naive_utc(value)


# OpenAPI documentation of the problem+json error bodies shared by the RPC routers
PROBLEM_RESPONSES = {
    400: {"model": Problem, "description": "Business rule rejected the request"},
    401: {"model": Problem, "description": "Missing or invalid bearer token"},
    403: {"model": Problem, "description": "Member lacks the required role"},
    404: {"model": Problem, "description": "Referenced resource not found"},
    409: {"model": Problem, "description": "Conflict with current state"},
    422: {"model": Problem, "description": "Request body failed validation"},
    500: {"model": Problem, "description": "Unexpected server error"},
}
