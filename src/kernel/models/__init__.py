"""
Kernel Data Models

SQLAlchemy models for the authorization kernel: identities, tenant-owned
resources, regulator review links, the audit log and impersonation sessions.
"""

from src.kernel.models.base import Base, TimestampMixin, SoftDeleteMixin, generate_uuid
from src.kernel.models.user import User, UserRole, REGULATOR_ROLES, INSTITUTION_ROLES
from src.kernel.models.institution import (
    Institution,
    Readiness,
    Facilitator,
    Learner,
    Enrolment,
    Document,
)
from src.kernel.models.review import (
    Submission,
    SubmissionStatus,
    SubmissionResource,
    RegulatorRequest,
    RequestStatus,
    RequestResource,
)
from src.kernel.models.audit_log import (
    AuditLog,
    AuditEntityType,
    AuditChangeType,
    AuditLogImmutableError,
)
from src.kernel.models.impersonation import (
    ImpersonationSession,
    ImpersonationStatus,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "generate_uuid",
    # User
    "User",
    "UserRole",
    "REGULATOR_ROLES",
    "INSTITUTION_ROLES",
    # Tenant resources
    "Institution",
    "Readiness",
    "Facilitator",
    "Learner",
    "Enrolment",
    "Document",
    # Review links
    "Submission",
    "SubmissionStatus",
    "SubmissionResource",
    "RegulatorRequest",
    "RequestStatus",
    "RequestResource",
    # Audit
    "AuditLog",
    "AuditEntityType",
    "AuditChangeType",
    "AuditLogImmutableError",
    # Impersonation
    "ImpersonationSession",
    "ImpersonationStatus",
]
