"""
Compliance Authorization Kernel

Foundational components of the multi-tenant compliance platform:
- Role/Capability table (static, versioned)
- Scope resolution and access decisions (deny by default)
- Audited mutations (change + audit trail in one transaction)
- Impersonation sessions (bounded "view as")

Architectural invariants:
- The acting principal is always an explicit argument
- Audit records are append-only and written in the mutation's transaction
- Session status changes are compare-and-swap, never resurrected
"""

from src.kernel.errors import (
    AccessStoreUnavailable,
    AppError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    ImpersonationSessionError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from src.kernel.identity.principal import Principal
from src.kernel.permissions.resources import Action, ResourceRef, ResourceType
from src.kernel.permissions.access_engine import AccessVerdict, ReasonCode
from src.kernel.audit.executor import MutationResult, MutationSpec
from src.kernel.facade import ComplianceKernel

__all__ = [
    "AccessStoreUnavailable",
    "AppError",
    "ConflictError",
    "ErrorCode",
    "ForbiddenError",
    "ImpersonationSessionError",
    "InternalError",
    "NotFoundError",
    "ValidationError",
    "Principal",
    "Action",
    "ResourceRef",
    "ResourceType",
    "AccessVerdict",
    "ReasonCode",
    "MutationResult",
    "MutationSpec",
    "ComplianceKernel",
]
