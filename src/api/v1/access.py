"""
Access check endpoint.
"""

from fastapi import APIRouter

from src.api.deps import CurrentPrincipal, Kernel
from src.kernel.permissions.resources import ResourceRef
from src.schemas.access import AccessCheckRequest, AccessCheckResponse

router = APIRouter()


@router.post("/check", response_model=AccessCheckResponse)
async def check_access(
    data: AccessCheckRequest,
    principal: CurrentPrincipal,
    kernel: Kernel,
):
    """Evaluate whether the current (effective) principal may act on a resource."""
    verdict = await kernel.check_access(
        principal,
        ResourceRef(data.resource_type, data.resource_id),
        data.action,
    )
    return AccessCheckResponse(
        allowed=verdict.allowed,
        reason=verdict.reason.value if verdict.allowed else None,
        scope=verdict.scope_applied.kind.value,
        institution_id=verdict.institution_id,
    )
