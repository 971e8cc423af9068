"""
ComplianceKernel: the operations the rest of the platform calls.

Every operation takes the acting principal explicitly. The kernel holds no
per-request state; one instance is shared by the whole process.
"""

from typing import List, Optional, Tuple, TypeVar, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import Settings, get_settings
from src.kernel.audit.audit_store import AuditFilters, AuditStore
from src.kernel.audit.executor import AuditedMutationExecutor, MutationResult, MutationSpec
from src.kernel.clock import Clock, SystemClock
from src.kernel.identity.principal import Principal
from src.kernel.impersonation.session_manager import CreatedSession, ImpersonationManager, SessionInfo
from src.kernel.models.audit_log import AuditLog
from src.kernel.permissions.access_engine import AccessDecisionEngine, AccessVerdict
from src.kernel.permissions.capabilities import Capability
from src.kernel.permissions.resource_store import SqlResourceStore
from src.kernel.permissions.resources import Action, ResourceRef

T = TypeVar("T")


class ComplianceKernel:
    """
    Facade over access decisions, audited mutations and impersonation.

    Usage:
        kernel = ComplianceKernel(async_session_maker)
        verdict = await kernel.check_access(principal, ResourceRef(ResourceType.DOCUMENT, doc_id))
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.sessions = sessions
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.executor = AuditedMutationExecutor(sessions, self.clock)
        self.impersonation = ImpersonationManager(sessions, self.clock, self.settings)

    def _engine(self, session: AsyncSession) -> AccessDecisionEngine:
        return AccessDecisionEngine(SqlResourceStore(session), self.clock)

    # Access ---------------------------------------------------------------

    async def check_access(
        self,
        principal: Principal,
        ref: ResourceRef,
        action: Union[Action, str] = Action.READ,
    ) -> AccessVerdict:
        async with self.sessions() as session:
            return await self._engine(session).check_access(principal, ref, action)

    async def assert_access(
        self,
        principal: Principal,
        ref: ResourceRef,
        action: Union[Action, str] = Action.READ,
    ) -> AccessVerdict:
        """Raises ForbiddenError on any deny."""
        async with self.sessions() as session:
            return await self._engine(session).assert_access(principal, ref, action)

    # Mutations ------------------------------------------------------------

    async def run_audited_mutation(self, principal: Principal, spec: MutationSpec[T]) -> MutationResult[T]:
        return await self.executor.execute(principal, spec)

    # Impersonation ---------------------------------------------------------

    async def create_impersonation_session(
        self,
        impersonator: Principal,
        target_user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> CreatedSession:
        return await self.impersonation.create_session(impersonator, target_user_id, ip_address, user_agent)

    async def validate_impersonation_token(self, token: str) -> SessionInfo:
        return await self.impersonation.validate_token(token)

    async def revoke_impersonation_session(self, session_id: str, requester: Principal) -> SessionInfo:
        return await self.impersonation.revoke(session_id, requester)

    async def complete_impersonation_session(self, session_id: str, requester: Principal) -> SessionInfo:
        return await self.impersonation.complete(session_id, requester)

    async def list_impersonation_sessions(self, impersonator: Principal) -> List[SessionInfo]:
        return await self.impersonation.list_active_sessions(impersonator.id)

    async def resolve_effective_principal(self, token: str, caller: Principal) -> Tuple[Principal, SessionInfo]:
        return await self.impersonation.resolve_effective_principal(token, caller)

    # Audit log -------------------------------------------------------------

    async def search_audit_log(
        self,
        principal: Principal,
        filters: Optional[AuditFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AuditLog], int]:
        """
        Audit records visible to ``principal``.

        Raises:
            ForbiddenError: Principal lacks AUDIT_VIEW
        """
        async with self.sessions() as session:
            engine = self._engine(session)
            engine.assert_capability(principal, Capability.AUDIT_VIEW)
            spec = engine.resolver.query_spec_for(principal, audit=True)
            return await AuditStore(session, self.clock).search(spec, filters, limit=limit, offset=offset)
