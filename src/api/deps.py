"""
FastAPI dependencies for authentication, impersonation and the kernel.
"""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import async_session_maker, get_db
from src.kernel.errors import ForbiddenError
from src.kernel.facade import ComplianceKernel
from src.kernel.identity.claims import ClaimsVerifier
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.principal import Principal

IMPERSONATION_HEADER = "X-Impersonation-Token"

# Security scheme
security = HTTPBearer(auto_error=False)


DbSession = Annotated[AsyncSession, Depends(get_db)]


@lru_cache
def get_kernel() -> ComplianceKernel:
    """Process-wide kernel bound to the application's session factory."""
    return ComplianceKernel(async_session_maker)


@lru_cache
def get_claims_verifier() -> ClaimsVerifier:
    return ClaimsVerifier()


Kernel = Annotated[ComplianceKernel, Depends(get_kernel)]


async def get_authenticated_principal(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    verifier: Annotated[ClaimsVerifier, Depends(get_claims_verifier)],
    db: DbSession,
) -> Principal:
    """
    The real caller, from the bearer token.

    The token identifies the user; role, tenancy and provinces are read from
    the user row so that deleted users and role changes take effect at once.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claimed = verifier.principal_from_token(credentials.credentials)
    except ForbiddenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = await IdentityService(db).load_principal(claimed.id)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


RealPrincipal = Annotated[Principal, Depends(get_authenticated_principal)]


async def get_current_principal(
    caller: RealPrincipal,
    kernel: Kernel,
    impersonation_token: Annotated[Optional[str], Header(alias=IMPERSONATION_HEADER)] = None,
) -> Principal:
    """
    The effective principal: the caller, or the user they are viewing as.

    Errors from an unusable impersonation session propagate to the
    AppError handler (400 with the specific expiry cause, 403 otherwise).
    """
    if not impersonation_token:
        return caller
    principal, _ = await kernel.resolve_effective_principal(impersonation_token, caller)
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """Extract user agent from request."""
    return request.headers.get("User-Agent")
