"""
Permission Core - capabilities, scope resolution and access decisions.
"""

from src.kernel.permissions.capabilities import (
    CAPABILITY_TABLE_VERSION,
    Capability,
    capabilities_for,
    has_capability,
)
from src.kernel.permissions.resources import (
    Action,
    Active,
    Deleted,
    ResourceRecord,
    ResourceRef,
    ResourceType,
    UserSnapshot,
)
from src.kernel.permissions.resource_store import ResourceStore, SqlResourceStore
from src.kernel.permissions.query_spec import (
    ActorScope,
    ApprovalLinkScope,
    InstitutionScope,
    NoAccess,
    ProvinceScope,
    QuerySpec,
    ScopeColumns,
)
from src.kernel.permissions.scope_resolver import Scope, ScopeKind, ScopeResolver
from src.kernel.permissions.access_engine import (
    AccessDecisionEngine,
    AccessVerdict,
    ReasonCode,
    delegation_verdict,
)

__all__ = [
    "CAPABILITY_TABLE_VERSION",
    "Capability",
    "capabilities_for",
    "has_capability",
    "Action",
    "Active",
    "Deleted",
    "ResourceRecord",
    "ResourceRef",
    "ResourceType",
    "UserSnapshot",
    "ResourceStore",
    "SqlResourceStore",
    "ActorScope",
    "ApprovalLinkScope",
    "InstitutionScope",
    "NoAccess",
    "ProvinceScope",
    "QuerySpec",
    "ScopeColumns",
    "Scope",
    "ScopeKind",
    "ScopeResolver",
    "AccessDecisionEngine",
    "AccessVerdict",
    "ReasonCode",
    "delegation_verdict",
]
