"""
API request/response schemas.
"""

from src.schemas.common import ErrorResponse, HealthResponse, PaginatedResponse
from src.schemas.access import AccessCheckRequest, AccessCheckResponse
from src.schemas.impersonation import (
    ImpersonationCreateRequest,
    ImpersonationCreatedResponse,
    ImpersonationSessionListResponse,
    ImpersonationSessionResponse,
)
from src.schemas.audit import AuditLogResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "PaginatedResponse",
    "AccessCheckRequest",
    "AccessCheckResponse",
    "ImpersonationCreateRequest",
    "ImpersonationCreatedResponse",
    "ImpersonationSessionListResponse",
    "ImpersonationSessionResponse",
    "AuditLogResponse",
]
