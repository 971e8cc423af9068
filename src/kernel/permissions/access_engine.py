"""
Access Decision Engine.

Answers "may principal P perform action A on resource R" with a structured
verdict. Denials are values, never exceptions; only infrastructure failures
raise. Anything not explicitly allowed below is denied.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from src.kernel.clock import Clock, SystemClock
from src.kernel.errors import AccessStoreUnavailable, ForbiddenError
from src.kernel.identity.principal import Principal
from src.kernel.models.user import REGULATOR_ROLES, UserRole
from src.kernel.permissions.capabilities import Capability, has_capability
from src.kernel.permissions.resource_store import ResourceStore
from src.kernel.permissions.resources import Action, ResourceRef, ResourceType, UserSnapshot
from src.kernel.permissions.scope_resolver import (
    GLOBAL_SCOPE,
    NO_SCOPE,
    Scope,
    ScopeKind,
    ScopeResolver,
)
from src.logging_config import get_logger

logger = get_logger(__name__)


class ReasonCode(str, Enum):
    """Why a verdict came out the way it did."""

    # Deny
    NOT_FOUND = "NOT_FOUND"
    WRONG_INSTITUTION = "WRONG_INSTITUTION"
    NO_APPROVED_LINK = "NO_APPROVED_LINK"
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"
    SCOPE_EMPTY = "SCOPE_EMPTY"
    OUT_OF_SCOPE = "OUT_OF_SCOPE"

    # Allow
    GLOBAL_OVERRIDE = "GLOBAL_OVERRIDE"
    NATIONAL_SCOPE = "NATIONAL_SCOPE"
    INSTITUTION_MATCH = "INSTITUTION_MATCH"
    APPROVED_SUBMISSION = "APPROVED_SUBMISSION"
    APPROVED_REQUEST = "APPROVED_REQUEST"
    SELF = "SELF"
    DELEGATION_PERMITTED = "DELEGATION_PERMITTED"


@dataclass(frozen=True)
class AccessVerdict:
    allowed: bool
    reason: ReasonCode
    scope_applied: Scope
    institution_id: Optional[str] = None

    @classmethod
    def allow(cls, reason: ReasonCode, scope: Scope, institution_id: Optional[str] = None) -> "AccessVerdict":
        return cls(True, reason, scope, institution_id)

    @classmethod
    def deny(cls, reason: ReasonCode, scope: Scope = NO_SCOPE) -> "AccessVerdict":
        return cls(False, reason, scope, None)


# Role pairs a scoped delegator may act on
_REGULATOR_SUBORDINATES = frozenset(REGULATOR_ROLES - {UserRole.QCTO_SUPER_ADMIN})
_INSTITUTION_SUBORDINATES = frozenset({UserRole.INSTITUTION_STAFF, UserRole.STUDENT})


class AccessDecisionEngine:
    """
    Combines the capability table, the scope resolver and resource rules.

    Usage:
        engine = AccessDecisionEngine(SqlResourceStore(session), clock)
        verdict = await engine.check_access(principal, ResourceRef(ResourceType.LEARNER, lid), Action.READ)
    """

    def __init__(
        self,
        store: ResourceStore,
        clock: Optional[Clock] = None,
        resolver: Optional[ScopeResolver] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.resolver = resolver or ScopeResolver(store, self.clock)

    async def check_access(
        self,
        principal: Principal,
        ref: ResourceRef,
        action: Union[Action, str] = Action.READ,
    ) -> AccessVerdict:
        """
        Decide whether ``principal`` may perform ``action`` on ``ref``.

        Args:
            principal: The (effective) acting principal
            ref: The target resource
            action: READ, WRITE or REVIEW

        Returns:
            An AccessVerdict; never raises for "not authorized"

        Raises:
            AccessStoreUnavailable: If the resource store fails
        """
        try:
            action = Action(action)
        except ValueError:
            return self._log(principal, ref, action, AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED))

        try:
            verdict = await self._decide(principal, ref, action)
        except SQLAlchemyError as e:
            logger.error(
                "Resource store failed during access check",
                extra={"alert": True, "principal_id": principal.id, "resource": str(ref), "action": action.value},
                exc_info=True,
            )
            raise AccessStoreUnavailable("Authorization store unavailable") from e

        return self._log(principal, ref, action, verdict)

    async def assert_access(
        self,
        principal: Principal,
        ref: ResourceRef,
        action: Union[Action, str] = Action.READ,
    ) -> AccessVerdict:
        """
        Like ``check_access`` but raises ``ForbiddenError`` on any deny.

        NOT_FOUND is reported as FORBIDDEN so callers cannot probe for
        existence; the real reason stays on the exception for logging.
        """
        verdict = await self.check_access(principal, ref, action)
        if not verdict.allowed:
            raise ForbiddenError(reason=verdict.reason.value)
        return verdict

    def assert_capability(self, principal: Principal, capability: Capability) -> None:
        if not has_capability(principal.role, capability):
            logger.info(
                "Capability denied",
                extra={"principal_id": principal.id, "role": principal.role.value, "capability": capability.value},
            )
            raise ForbiddenError(reason=ReasonCode.ROLE_NOT_PERMITTED.value)

    async def _decide(self, principal: Principal, ref: ResourceRef, action: Action) -> AccessVerdict:
        if has_capability(principal.role, Capability.GLOBAL_OVERRIDE):
            return AccessVerdict.allow(ReasonCode.GLOBAL_OVERRIDE, GLOBAL_SCOPE)

        if principal.is_regulator:
            return await self._decide_regulator(principal, ref, action)
        if principal.is_institution_role:
            return await self._decide_institution(principal, ref, action)
        if principal.role == UserRole.STUDENT:
            return await self._decide_student(principal, ref, action)

        return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)

    async def _decide_institution(self, principal: Principal, ref: ResourceRef, action: Action) -> AccessVerdict:
        if action == Action.REVIEW:
            return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)
        if not principal.institution_id:
            return AccessVerdict.deny(ReasonCode.SCOPE_EMPTY)

        scope = Scope(ScopeKind.INSTITUTION, institution_id=principal.institution_id)
        resolution = await self.resolver.resolve(ref)
        if resolution is None:
            return AccessVerdict.deny(ReasonCode.NOT_FOUND, scope)
        if resolution.institution_id != principal.institution_id:
            return AccessVerdict.deny(ReasonCode.WRONG_INSTITUTION, scope)
        return AccessVerdict.allow(ReasonCode.INSTITUTION_MATCH, scope, resolution.institution_id)

    async def _decide_regulator(self, principal: Principal, ref: ResourceRef, action: Action) -> AccessVerdict:
        # Regulators are read-only
        if action == Action.WRITE:
            return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)
        if action == Action.REVIEW and not has_capability(principal.role, Capability.QCTO_REVIEW):
            return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)

        resolution = await self.resolver.resolve(ref)
        if resolution is None:
            return AccessVerdict.deny(ReasonCode.NOT_FOUND)

        if has_capability(principal.role, Capability.REGULATOR_NATIONAL_SCOPE):
            return AccessVerdict.allow(ReasonCode.NATIONAL_SCOPE, GLOBAL_SCOPE, resolution.institution_id)

        scope = Scope(ScopeKind.APPROVAL_LINK, provinces=principal.assigned_provinces)
        # Submission links first; a hit never queries requests
        if await self.store.has_approved_submission_link(ref.type, ref.id):
            return AccessVerdict.allow(ReasonCode.APPROVED_SUBMISSION, scope, resolution.institution_id)
        if await self.store.has_approved_request_link(ref.type, ref.id, self.clock.now()):
            return AccessVerdict.allow(ReasonCode.APPROVED_REQUEST, scope, resolution.institution_id)
        return AccessVerdict.deny(ReasonCode.NO_APPROVED_LINK, scope)

    async def _decide_student(self, principal: Principal, ref: ResourceRef, action: Action) -> AccessVerdict:
        if action != Action.READ or ref.type != ResourceType.LEARNER:
            return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)

        scope = Scope(ScopeKind.SELF, user_id=principal.id)
        resolution = await self.resolver.resolve(ref)
        if resolution is None:
            return AccessVerdict.deny(ReasonCode.NOT_FOUND, scope)
        if resolution.record.owner_user_id != principal.id:
            return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED, scope)
        return AccessVerdict.allow(ReasonCode.SELF, scope, resolution.institution_id)

    # Delegation ---------------------------------------------------------

    async def check_delegation(self, actor: Principal, target_user_id: str) -> AccessVerdict:
        """
        Decide whether ``actor`` may act on behalf of another user.

        Loads the target from the store, then applies ``delegation_verdict``.
        """
        try:
            target = await self.store.get_user(target_user_id)
        except SQLAlchemyError as e:
            logger.error(
                "Resource store failed during delegation check",
                extra={"alert": True, "principal_id": actor.id, "target_user_id": target_user_id},
                exc_info=True,
            )
            raise AccessStoreUnavailable("Authorization store unavailable") from e

        verdict = delegation_verdict(actor, target)
        if not verdict.allowed:
            logger.info(
                "Delegation denied",
                extra={"principal_id": actor.id, "target_user_id": target_user_id, "reason": verdict.reason.value},
            )
        return verdict

    def _log(self, principal: Principal, ref: ResourceRef, action, verdict: AccessVerdict) -> AccessVerdict:
        if not verdict.allowed:
            logger.info(
                "Access denied",
                extra={
                    "principal_id": principal.id,
                    "role": principal.role.value,
                    "resource": str(ref),
                    "action": getattr(action, "value", str(action)),
                    "reason": verdict.reason.value,
                    "impersonator_id": principal.impersonator_id,
                },
            )
        return verdict


def delegation_verdict(actor: Principal, target: Optional[UserSnapshot]) -> AccessVerdict:
    """
    Role-pair rules for acting on another user.

    - global override: any live user
    - national regulator: any other regulator role
    - scoped regulator admin: non-top-level regulators sharing a province
    - institution admin: staff or students of the same institution
    """
    if target is None or not target.is_live:
        return AccessVerdict.deny(ReasonCode.NOT_FOUND)

    t = target.principal

    if has_capability(actor.role, Capability.GLOBAL_OVERRIDE):
        return AccessVerdict.allow(ReasonCode.DELEGATION_PERMITTED, GLOBAL_SCOPE, t.institution_id)

    if actor.role == UserRole.QCTO_SUPER_ADMIN:
        if t.role in _REGULATOR_SUBORDINATES:
            return AccessVerdict.allow(ReasonCode.DELEGATION_PERMITTED, GLOBAL_SCOPE)
        return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)

    if actor.role == UserRole.QCTO_ADMIN:
        if t.role not in _REGULATOR_SUBORDINATES:
            return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)
        scope = Scope(ScopeKind.PROVINCES, provinces=actor.assigned_provinces)
        # Empty province sets never match anything
        if not actor.assigned_provinces or not t.assigned_provinces:
            return AccessVerdict.deny(ReasonCode.SCOPE_EMPTY, scope)
        if not set(actor.assigned_provinces) & set(t.assigned_provinces):
            return AccessVerdict.deny(ReasonCode.OUT_OF_SCOPE, scope)
        return AccessVerdict.allow(ReasonCode.DELEGATION_PERMITTED, scope)

    if actor.role == UserRole.INSTITUTION_ADMIN:
        if t.role not in _INSTITUTION_SUBORDINATES:
            return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)
        if not actor.institution_id:
            return AccessVerdict.deny(ReasonCode.SCOPE_EMPTY)
        scope = Scope(ScopeKind.INSTITUTION, institution_id=actor.institution_id)
        if t.institution_id != actor.institution_id:
            return AccessVerdict.deny(ReasonCode.WRONG_INSTITUTION, scope)
        return AccessVerdict.allow(ReasonCode.DELEGATION_PERMITTED, scope, actor.institution_id)

    return AccessVerdict.deny(ReasonCode.ROLE_NOT_PERMITTED)
