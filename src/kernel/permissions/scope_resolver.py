"""
Scope resolution: who owns a resource, and what a principal may see.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from src.kernel.clock import Clock, SystemClock
from src.kernel.identity.principal import Principal
from src.kernel.models.user import UserRole
from src.kernel.permissions.capabilities import Capability, has_capability
from src.kernel.permissions.query_spec import (
    DENY_ALL,
    ActorScope,
    ApprovalLinkScope,
    InstitutionScope,
    ProvinceScope,
    QuerySpec,
)
from src.kernel.permissions.resource_store import ResourceStore
from src.kernel.permissions.resources import ResourceRecord, ResourceRef
from src.logging_config import get_logger

logger = get_logger(__name__)

# facilitator -> readiness -> institution is the longest real chain (document adds one)
MAX_OWNERSHIP_HOPS = 4


class ScopeKind(str, Enum):
    GLOBAL = "GLOBAL"
    INSTITUTION = "INSTITUTION"
    PROVINCES = "PROVINCES"
    APPROVAL_LINK = "APPROVAL_LINK"
    SELF = "SELF"
    NONE = "NONE"


@dataclass(frozen=True)
class Scope:
    """The visibility boundary a decision or query was evaluated under."""

    kind: ScopeKind
    institution_id: Optional[str] = None
    provinces: Tuple[str, ...] = ()
    user_id: Optional[str] = None


GLOBAL_SCOPE = Scope(ScopeKind.GLOBAL)
NO_SCOPE = Scope(ScopeKind.NONE)


@dataclass(frozen=True)
class Resolution:
    """A resource whose ownership chain resolved to a live institution owner."""

    record: ResourceRecord
    institution_id: str
    hops: int


class ScopeResolver:
    """
    Resolves resource ownership and principal visibility.

    Ownership walks parent links until a row names its institution. Every hop
    must exist and be live; anything else is unresolved and callers deny.
    """

    def __init__(self, store: ResourceStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or SystemClock()

    async def resolve(self, ref: ResourceRef) -> Optional[Resolution]:
        """
        Find the owning institution of a resource.

        Args:
            ref: The resource to resolve

        Returns:
            Resolution for the starting record, or None if the record or any
            hop is missing, soft-deleted, cyclic or deeper than the hop limit
        """
        origin: Optional[ResourceRecord] = None
        seen = set()
        current = ref

        for hop in range(MAX_OWNERSHIP_HOPS + 1):
            if current in seen:
                logger.warning("Ownership cycle detected", extra={"resource": str(ref)})
                return None
            seen.add(current)

            record = await self.store.get_record(current)
            if record is None or not record.is_live:
                return None
            if origin is None:
                origin = record

            if record.institution_id is not None:
                return Resolution(record=origin, institution_id=record.institution_id, hops=hop)
            if record.parent is None:
                return None
            current = record.parent

        logger.warning("Ownership chain exceeds hop limit", extra={"resource": str(ref)})
        return None

    def visibility_for(self, principal: Principal) -> Scope:
        """Resource visibility of a principal, independent of any one resource."""
        if has_capability(principal.role, Capability.GLOBAL_OVERRIDE):
            return GLOBAL_SCOPE
        if has_capability(principal.role, Capability.REGULATOR_NATIONAL_SCOPE):
            return GLOBAL_SCOPE
        if principal.is_regulator:
            return Scope(ScopeKind.APPROVAL_LINK, provinces=principal.assigned_provinces)
        if principal.is_institution_role:
            if not principal.institution_id:
                return NO_SCOPE
            return Scope(ScopeKind.INSTITUTION, institution_id=principal.institution_id)
        if principal.role == UserRole.STUDENT:
            return Scope(ScopeKind.SELF, user_id=principal.id)
        return NO_SCOPE

    def audit_visibility_for(self, principal: Principal) -> Scope:
        """Which audit records a principal may list."""
        if not has_capability(principal.role, Capability.AUDIT_VIEW):
            return NO_SCOPE
        if has_capability(principal.role, Capability.GLOBAL_OVERRIDE):
            return GLOBAL_SCOPE
        if has_capability(principal.role, Capability.REGULATOR_NATIONAL_SCOPE):
            return GLOBAL_SCOPE
        if principal.is_regulator:
            if not principal.assigned_provinces:
                return NO_SCOPE
            return Scope(ScopeKind.PROVINCES, provinces=principal.assigned_provinces)
        if principal.is_institution_role and principal.institution_id:
            # Staff only see their own actions inside their institution
            own_only = principal.role == UserRole.INSTITUTION_STAFF
            return Scope(
                ScopeKind.INSTITUTION,
                institution_id=principal.institution_id,
                user_id=principal.id if own_only else None,
            )
        return NO_SCOPE

    def query_spec_for(self, principal: Principal, *, audit: bool = False) -> QuerySpec:
        """Compile a principal's visibility into a list-query specification."""
        scope = self.audit_visibility_for(principal) if audit else self.visibility_for(principal)
        return self.scope_to_query_spec(scope)

    def scope_to_query_spec(self, scope: Scope) -> QuerySpec:
        spec = QuerySpec()
        if scope.kind == ScopeKind.GLOBAL:
            return spec
        if scope.kind == ScopeKind.INSTITUTION:
            spec = spec.with_(InstitutionScope(scope.institution_id))
            if scope.user_id:
                spec = spec.with_(ActorScope(scope.user_id))
            return spec
        if scope.kind == ScopeKind.PROVINCES:
            return spec.with_(ProvinceScope(scope.provinces))
        if scope.kind == ScopeKind.APPROVAL_LINK:
            return spec.with_(ApprovalLinkScope(at=self.clock.now()))
        if scope.kind == ScopeKind.SELF:
            return spec.with_(ActorScope(scope.user_id))
        return DENY_ALL
