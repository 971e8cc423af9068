"""
Impersonation ("view as") session endpoints.

These always act as the real caller: an impersonation token sent along is
ignored, so a session cannot be used to open or end other sessions.
"""

from fastapi import APIRouter, Request, status

from src.api.deps import Kernel, RealPrincipal, get_client_ip, get_user_agent
from src.schemas.impersonation import (
    ImpersonationCreateRequest,
    ImpersonationCreatedResponse,
    ImpersonationSessionListResponse,
    ImpersonationSessionResponse,
)

router = APIRouter()


@router.post("/sessions", response_model=ImpersonationCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: Request,
    data: ImpersonationCreateRequest,
    caller: RealPrincipal,
    kernel: Kernel,
):
    """Start viewing as another user. The token is returned only here."""
    created = await kernel.create_impersonation_session(
        caller,
        data.target_user_id,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return ImpersonationCreatedResponse.model_validate(created.model_dump())


@router.get("/sessions", response_model=ImpersonationSessionListResponse)
async def list_sessions(caller: RealPrincipal, kernel: Kernel):
    """Active sessions opened by the caller."""
    sessions = await kernel.list_impersonation_sessions(caller)
    return ImpersonationSessionListResponse(
        sessions=[ImpersonationSessionResponse.model_validate(s.model_dump()) for s in sessions],
        max_active_sessions=kernel.settings.impersonation_max_active_sessions,
    )


@router.post("/sessions/{session_id}/complete", response_model=ImpersonationSessionResponse)
async def complete_session(session_id: str, caller: RealPrincipal, kernel: Kernel):
    """Stop viewing as (normal end of session)."""
    info = await kernel.complete_impersonation_session(session_id, caller)
    return ImpersonationSessionResponse.model_validate(info.model_dump())


@router.post("/sessions/{session_id}/revoke", response_model=ImpersonationSessionResponse)
async def revoke_session(session_id: str, caller: RealPrincipal, kernel: Kernel):
    """Force-end a session (impersonator or platform admin)."""
    info = await kernel.revoke_impersonation_session(session_id, caller)
    return ImpersonationSessionResponse.model_validate(info.model_dump())
