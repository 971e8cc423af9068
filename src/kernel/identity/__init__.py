"""
Identity Core - principals and upstream token verification.
"""

from src.kernel.identity.principal import Principal
from src.kernel.identity.claims import ClaimsVerifier, IdentityClaims
from src.kernel.identity.identity_service import IdentityService, principal_from_user

__all__ = [
    "Principal",
    "ClaimsVerifier",
    "IdentityClaims",
    "IdentityService",
    "principal_from_user",
]
