"""
Common schema types used across the API.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx produced by the kernel's error handlers."""

    detail: str
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of results; ``total`` counts the whole visible set."""

    items: List[T]
    total: int
    page: int = 1
    page_size: int = 50
    has_more: bool = False

    @classmethod
    def create(cls, items: List[T], total: int, page: int = 1, page_size: int = 50) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            has_more=(page * page_size) < total,
        )


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    database: str = "connected"
    capability_table_version: str
