"""
API v1 routes.
"""

from fastapi import APIRouter

from src.api.v1 import access, audit, impersonation
from src.schemas.common import ErrorResponse

# Kernel errors share one body shape
_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}

router = APIRouter(responses=_ERROR_RESPONSES)

router.include_router(access.router, prefix="/access", tags=["Access"])
router.include_router(impersonation.router, prefix="/impersonation", tags=["Impersonation"])
router.include_router(audit.router, prefix="/audit-logs", tags=["Audit"])
