"""
Static role -> capability table.

This table is the only place a role is granted a capability. It is built once
at import time, read-only afterwards, and versioned so that audit consumers
can tell which grants were in force.
"""

from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Union

from src.kernel.models.user import UserRole

CAPABILITY_TABLE_VERSION = "2026.10.1"


class Capability(str, Enum):
    """Named permissions. Opaque to everything except this table."""

    INSTITUTION_PROFILE_EDIT = "INSTITUTION_PROFILE_EDIT"
    STAFF_INVITE = "STAFF_INVITE"
    STAFF_ASSIGN_ROLES = "STAFF_ASSIGN_ROLES"
    STAFF_DEACTIVATE = "STAFF_DEACTIVATE"
    FORM5_VIEW = "FORM5_VIEW"
    FORM5_EDIT = "FORM5_EDIT"
    FORM5_SUBMIT = "FORM5_SUBMIT"
    QCTO_REVIEW_FLAG = "QCTO_REVIEW_FLAG"
    QCTO_RECORD_RECOMMENDATION = "QCTO_RECORD_RECOMMENDATION"
    EVIDENCE_VIEW = "EVIDENCE_VIEW"
    EVIDENCE_UPLOAD = "EVIDENCE_UPLOAD"
    EVIDENCE_REPLACE = "EVIDENCE_REPLACE"
    LEARNER_VIEW = "LEARNER_VIEW"
    LEARNER_CREATE = "LEARNER_CREATE"
    LEARNER_EDIT = "LEARNER_EDIT"
    LEARNER_ARCHIVE = "LEARNER_ARCHIVE"
    ENROLMENT_CREATE = "ENROLMENT_CREATE"
    ENROLMENT_EDIT_STATUS = "ENROLMENT_EDIT_STATUS"
    ATTENDANCE_CAPTURE = "ATTENDANCE_CAPTURE"
    ATTENDANCE_VIEW = "ATTENDANCE_VIEW"
    AUDIT_VIEW = "AUDIT_VIEW"
    AUDIT_EXPORT = "AUDIT_EXPORT"
    REPORTS_VIEW = "REPORTS_VIEW"
    REPORTS_EXPORT = "REPORTS_EXPORT"
    FEATURE_APPROVE = "FEATURE_APPROVE"
    FEATURE_ALERTS = "FEATURE_ALERTS"

    # Regulator
    QCTO_TEAM_MANAGE = "QCTO_TEAM_MANAGE"
    QCTO_REVIEW = "QCTO_REVIEW"
    QCTO_ASSIGN = "QCTO_ASSIGN"
    QCTO_AUDIT_READ = "QCTO_AUDIT_READ"
    QCTO_EXPORT = "QCTO_EXPORT"
    QCTO_SETTINGS = "QCTO_SETTINGS"

    # Institution staff sub-roles
    CAN_FACILITATE = "CAN_FACILITATE"
    CAN_ASSESS = "CAN_ASSESS"
    CAN_MODERATE = "CAN_MODERATE"
    CAN_VIEW_LEADS = "CAN_VIEW_LEADS"
    CAN_MANAGE_PUBLIC_PROFILE = "CAN_MANAGE_PUBLIC_PROFILE"

    # Service requests
    SERVICE_REQUESTS_VIEW = "SERVICE_REQUESTS_VIEW"
    SERVICE_REQUESTS_EDIT = "SERVICE_REQUESTS_EDIT"

    # Kernel-level grants
    GLOBAL_OVERRIDE = "GLOBAL_OVERRIDE"
    REGULATOR_NATIONAL_SCOPE = "REGULATOR_NATIONAL_SCOPE"
    USER_IMPERSONATE = "USER_IMPERSONATE"


C = Capability

_REGULATOR_REVIEW_BASE = frozenset({
    C.FORM5_VIEW,
    C.EVIDENCE_VIEW,
    C.QCTO_REVIEW_FLAG,
    C.QCTO_RECORD_RECOMMENDATION,
    C.LEARNER_VIEW,
    C.ATTENDANCE_VIEW,
    C.AUDIT_VIEW,
    C.REPORTS_VIEW,
})

_TABLE = {
    UserRole.PLATFORM_ADMIN: frozenset({
        C.INSTITUTION_PROFILE_EDIT,
        C.STAFF_INVITE,
        C.STAFF_ASSIGN_ROLES,
        C.STAFF_DEACTIVATE,
        C.FORM5_VIEW,
        C.FORM5_EDIT,
        C.FORM5_SUBMIT,
        C.EVIDENCE_VIEW,
        C.EVIDENCE_UPLOAD,
        C.EVIDENCE_REPLACE,
        C.LEARNER_VIEW,
        C.LEARNER_CREATE,
        C.LEARNER_EDIT,
        C.LEARNER_ARCHIVE,
        C.ENROLMENT_CREATE,
        C.ENROLMENT_EDIT_STATUS,
        C.ATTENDANCE_CAPTURE,
        C.ATTENDANCE_VIEW,
        C.AUDIT_VIEW,
        C.AUDIT_EXPORT,
        C.REPORTS_VIEW,
        C.REPORTS_EXPORT,
        C.FEATURE_APPROVE,
        C.FEATURE_ALERTS,
        C.QCTO_TEAM_MANAGE,
        C.CAN_FACILITATE,
        C.CAN_ASSESS,
        C.CAN_MODERATE,
        C.CAN_VIEW_LEADS,
        C.CAN_MANAGE_PUBLIC_PROFILE,
        C.SERVICE_REQUESTS_VIEW,
        C.SERVICE_REQUESTS_EDIT,
        C.GLOBAL_OVERRIDE,
        C.USER_IMPERSONATE,
    }),
    UserRole.QCTO_SUPER_ADMIN: _REGULATOR_REVIEW_BASE | {
        C.QCTO_TEAM_MANAGE,
        C.QCTO_REVIEW,
        C.QCTO_ASSIGN,
        C.QCTO_AUDIT_READ,
        C.QCTO_EXPORT,
        C.QCTO_SETTINGS,
        C.AUDIT_EXPORT,
        C.REPORTS_EXPORT,
        C.REGULATOR_NATIONAL_SCOPE,
        C.USER_IMPERSONATE,
    },
    UserRole.QCTO_ADMIN: _REGULATOR_REVIEW_BASE | {
        C.QCTO_TEAM_MANAGE,
        C.QCTO_REVIEW,
        C.QCTO_ASSIGN,
        C.QCTO_AUDIT_READ,
        C.QCTO_EXPORT,
        C.AUDIT_EXPORT,
        C.REPORTS_EXPORT,
        C.USER_IMPERSONATE,
    },
    UserRole.QCTO_USER: _REGULATOR_REVIEW_BASE | {
        C.QCTO_REVIEW,
        C.QCTO_AUDIT_READ,
        C.QCTO_EXPORT,
        C.AUDIT_EXPORT,
        C.REPORTS_EXPORT,
    },
    UserRole.QCTO_REVIEWER: _REGULATOR_REVIEW_BASE | {
        C.QCTO_REVIEW,
    },
    UserRole.QCTO_AUDITOR: frozenset({
        C.QCTO_AUDIT_READ,
        C.QCTO_EXPORT,
        C.AUDIT_VIEW,
        C.AUDIT_EXPORT,
        C.REPORTS_VIEW,
        C.REPORTS_EXPORT,
    }),
    UserRole.QCTO_VIEWER: frozenset({
        C.FORM5_VIEW,
        C.EVIDENCE_VIEW,
        C.LEARNER_VIEW,
        C.ATTENDANCE_VIEW,
        C.AUDIT_VIEW,
        C.REPORTS_VIEW,
    }),
    UserRole.INSTITUTION_ADMIN: frozenset({
        C.INSTITUTION_PROFILE_EDIT,
        C.STAFF_INVITE,
        C.STAFF_ASSIGN_ROLES,
        C.STAFF_DEACTIVATE,
        C.FORM5_VIEW,
        C.FORM5_EDIT,
        C.FORM5_SUBMIT,
        C.EVIDENCE_VIEW,
        C.EVIDENCE_UPLOAD,
        C.EVIDENCE_REPLACE,
        C.LEARNER_VIEW,
        C.LEARNER_CREATE,
        C.LEARNER_EDIT,
        C.LEARNER_ARCHIVE,
        C.ENROLMENT_CREATE,
        C.ENROLMENT_EDIT_STATUS,
        C.ATTENDANCE_CAPTURE,
        C.ATTENDANCE_VIEW,
        C.AUDIT_VIEW,
        C.REPORTS_VIEW,
        C.REPORTS_EXPORT,
        C.CAN_VIEW_LEADS,
        C.CAN_MANAGE_PUBLIC_PROFILE,
        C.USER_IMPERSONATE,
    }),
    UserRole.INSTITUTION_STAFF: frozenset({
        C.FORM5_VIEW,
        C.FORM5_EDIT,
        C.EVIDENCE_VIEW,
        C.EVIDENCE_UPLOAD,
        C.EVIDENCE_REPLACE,
        C.LEARNER_VIEW,
        C.LEARNER_CREATE,
        C.LEARNER_EDIT,
        C.ENROLMENT_CREATE,
        C.ATTENDANCE_CAPTURE,
        C.ATTENDANCE_VIEW,
        C.AUDIT_VIEW,  # own actions only, narrowed by the scope resolver
        C.REPORTS_VIEW,
        C.CAN_VIEW_LEADS,
    }),
    UserRole.STUDENT: frozenset({
        C.LEARNER_VIEW,
        C.ATTENDANCE_VIEW,
    }),
    UserRole.ADVISOR: frozenset({
        C.SERVICE_REQUESTS_VIEW,
        C.SERVICE_REQUESTS_EDIT,
        C.ATTENDANCE_VIEW,
        C.REPORTS_VIEW,
    }),
}

_missing = set(UserRole) - set(_TABLE)
if _missing:
    raise RuntimeError(f"Capability table has no entry for roles: {sorted(r.value for r in _missing)}")

ROLE_CAPABILITIES: Mapping[UserRole, FrozenSet[Capability]] = MappingProxyType(
    {role: frozenset(caps) for role, caps in _TABLE.items()}
)

del _TABLE, _missing, C


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        return None


def has_capability(role: Union[UserRole, str], capability: Union[Capability, str]) -> bool:
    """
    Check whether a role holds a capability.

    Total over its inputs: an unknown role or capability name is simply
    ``False``.
    """
    role_key = _coerce(UserRole, role)
    cap_key = _coerce(Capability, capability)
    if role_key is None or cap_key is None:
        return False
    return cap_key in ROLE_CAPABILITIES[role_key]


def capabilities_for(role: Union[UserRole, str]) -> FrozenSet[Capability]:
    """All capabilities of a role (empty for unknown roles)."""
    role_key = _coerce(UserRole, role)
    if role_key is None:
        return frozenset()
    return ROLE_CAPABILITIES[role_key]
