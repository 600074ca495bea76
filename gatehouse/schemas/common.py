"""
Response envelope.

Every response carries a success flag, data or an error, and an ISO 8601
timestamp:

    {"success": true, "data": {...}, "timestamp": "2024-01-15T14:30:00Z"}
    {"success": false, "error": {"code": "FORBIDDEN", "message": "..."}, ...}
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from gatehouse.utils.timezone import iso_now

T = TypeVar("T")


class ErrorBody(BaseModel):
    """Stable machine-readable code plus a human message."""
    code: str
    message: str
    details: Any | None = None


class Pagination(BaseModel):
    total: int
    page: int
    per_page: int
    last_page: int

    @classmethod
    def build(cls, total: int, page: int, per_page: int) -> "Pagination":
        last_page = max(1, -(-total // per_page))
        return cls(total=total, page=page, per_page=per_page, last_page=last_page)


class Envelope(BaseModel, Generic[T]):
    """Successful response."""
    success: bool = True
    data: T | None = None
    message: str | None = None
    pagination: Pagination | None = None
    timestamp: str = Field(default_factory=iso_now)


class ErrorEnvelope(BaseModel):
    """Failed response."""
    success: bool = False
    error: ErrorBody
    timestamp: str = Field(default_factory=iso_now)


class MessageData(BaseModel):
    message: str
