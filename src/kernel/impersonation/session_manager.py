"""
Impersonation ("view as") session manager.

Sessions move ACTIVE -> EXPIRED | REVOKED | COMPLETED and never back. Every
status change is a compare-and-swap on ``status = 'ACTIVE'`` so a racing
request cannot resurrect a terminal session. Activity touches are best
effort and last-write-wins.
"""

import secrets
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import Settings, get_settings
from src.kernel.audit.audit_store import AuditEntry, AuditStore
from src.kernel.clock import Clock, SystemClock, as_utc
from src.kernel.errors import (
    ConflictError,
    ForbiddenError,
    ImpersonationSessionError,
    NotFoundError,
    ValidationError,
)
from src.kernel.identity.identity_service import principal_from_user
from src.kernel.identity.principal import Principal
from src.kernel.models.audit_log import AuditChangeType, AuditEntityType
from src.kernel.models.impersonation import ImpersonationSession, ImpersonationStatus
from src.kernel.models.user import User
from src.kernel.permissions.access_engine import AccessDecisionEngine
from src.kernel.permissions.capabilities import Capability, has_capability
from src.kernel.permissions.resource_store import SqlResourceStore
from src.logging_config import get_logger

logger = get_logger(__name__)

TOKEN_BYTES = 32  # 256 bits


class RejectionCause(str, Enum):
    EXPIRED = "EXPIRED"
    INACTIVE = "INACTIVE"
    REVOKED = "REVOKED"
    COMPLETED = "COMPLETED"


class SessionInfo(BaseModel):
    """Detached view of a session. Never carries the token."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    impersonator_id: str
    target_user_id: str
    status: ImpersonationStatus
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime
    ended_at: Optional[datetime] = None
    ended_by: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("created_at", "expires_at", "last_activity_at", "ended_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class CreatedSession(SessionInfo):
    """Returned once, at creation: the only time the token is exposed."""

    token: str


def generate_token() -> str:
    """Opaque session token, 64 hex characters."""
    return secrets.token_hex(TOKEN_BYTES)


def _ended_rejection(status: ImpersonationStatus) -> ImpersonationSessionError:
    """Rejection for a session already in a terminal state; names that state."""
    if status == ImpersonationStatus.EXPIRED:
        message = "Impersonation session has expired"
    else:
        message = f"Impersonation session is {status.value.lower()}"
    return ImpersonationSessionError(message, status=status.value, cause=status.value)


class ImpersonationManager:
    """
    Creates, validates and ends impersonation sessions.

    Each public operation is its own transaction.

    Usage:
        manager = ImpersonationManager(async_session_maker, clock)
        created = await manager.create_session(admin, target_user_id, ip_address=ip)
        principal, info = await manager.resolve_effective_principal(created.token, admin)
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.sessions = sessions
        self.clock = clock or SystemClock()
        settings = settings or get_settings()
        self.absolute_ttl = timedelta(seconds=settings.impersonation_token_expiry_seconds)
        self.inactivity_ttl = timedelta(seconds=settings.impersonation_inactivity_timeout_seconds)
        self.max_active_sessions = settings.impersonation_max_active_sessions

        if settings.inactivity_exceeds_expiry:
            logger.warning(
                "Impersonation inactivity timeout is not shorter than the absolute expiry; "
                "sessions will only ever end by absolute expiry",
                extra={
                    "inactivity_seconds": settings.impersonation_inactivity_timeout_seconds,
                    "expiry_seconds": settings.impersonation_token_expiry_seconds,
                },
            )

    async def create_session(
        self,
        impersonator: Principal,
        target_user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> CreatedSession:
        """
        Open a session in which ``impersonator`` views as ``target_user_id``.

        Args:
            impersonator: The real (not impersonated) acting principal
            target_user_id: The user to view as
            ip_address: Client IP for the session record
            user_agent: Client user agent for the session record

        Returns:
            The created session including its token

        Raises:
            ValidationError: Self-impersonation, nested impersonation, or
                the active-session limit is reached
            ForbiddenError: Target missing/deleted or delegation not permitted
        """
        if impersonator.id == target_user_id:
            raise ValidationError("You cannot impersonate yourself")
        if impersonator.is_impersonated:
            raise ValidationError("Cannot start an impersonation session while impersonating")

        async with self.sessions() as session:
            async with session.begin():
                now = self.clock.now()

                # Row lock on the impersonator serializes concurrent creates for the limit check
                locked = await session.execute(
                    select(User.id)
                    .where(User.id == impersonator.id, User.deleted_at.is_(None))
                    .with_for_update()
                )
                if locked.scalar_one_or_none() is None or not has_capability(
                    impersonator.role, Capability.USER_IMPERSONATE
                ):
                    raise ForbiddenError("You do not have permission to impersonate this user")

                engine = AccessDecisionEngine(SqlResourceStore(session), self.clock)
                verdict = await engine.check_delegation(impersonator, target_user_id)
                if not verdict.allowed:
                    raise ForbiddenError(
                        "You do not have permission to impersonate this user",
                        reason=verdict.reason.value,
                    )

                active = await self._count_active(session, impersonator.id, now)
                if active >= self.max_active_sessions:
                    raise ValidationError(
                        f"Maximum {self.max_active_sessions} active impersonation sessions allowed"
                    )

                row = ImpersonationSession(
                    token=generate_token(),
                    impersonator_id=impersonator.id,
                    target_user_id=target_user_id,
                    status=ImpersonationStatus.ACTIVE,
                    created_at=now,
                    expires_at=now + self.absolute_ttl,
                    last_activity_at=now,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
                session.add(row)
                await session.flush()

                AuditStore(session, self.clock).append(AuditEntry(
                    entity_type=AuditEntityType.IMPERSONATION_SESSION,
                    entity_id=row.id,
                    field_name="target_user_id",
                    new_value=target_user_id,
                    changed_by=impersonator.id,
                    role_at_time=impersonator.role.value,
                    change_type=AuditChangeType.CREATE,
                    institution_id=verdict.institution_id,
                    reason="Impersonation session started",
                ))

        logger.info(
            "Impersonation session created",
            extra={"session_id": row.id, "impersonator_id": impersonator.id, "target_user_id": target_user_id},
        )
        return CreatedSession.model_validate(row)

    async def validate_token(self, token: str) -> SessionInfo:
        """
        Look up a session by token and check it is still usable.

        Checks run in a fixed order: absolute expiry, status, inactivity.
        Expiry checks flip the session to EXPIRED (compare-and-swap) before
        rejecting.

        Raises:
            NotFoundError: No session has this token
            ImpersonationSessionError: Session expired, inactive, revoked or completed
        """
        rejection: Optional[ImpersonationSessionError] = None

        async with self.sessions() as session:
            async with session.begin():
                result = await session.execute(
                    select(ImpersonationSession).where(ImpersonationSession.token == token)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise NotFoundError("Impersonation session not found")

                now = self.clock.now()
                if now > as_utc(row.expires_at):
                    rejection = await self._expire(session, row, now, RejectionCause.EXPIRED)
                elif row.status != ImpersonationStatus.ACTIVE:
                    rejection = _ended_rejection(ImpersonationStatus(row.status))
                elif now - as_utc(row.last_activity_at) > self.inactivity_ttl:
                    rejection = await self._expire(session, row, now, RejectionCause.INACTIVE)
                info = SessionInfo.model_validate(row)

        # Raised after commit so the EXPIRED flip persists
        if rejection is not None:
            logger.info(
                "Impersonation token rejected",
                extra={"session_id": info.id, "cause": rejection.cause},
            )
            raise rejection
        return info

    async def touch(self, session_id: str) -> bool:
        """Record activity on an ACTIVE session. Returns False if it is no longer active."""
        async with self.sessions() as session:
            async with session.begin():
                result = await session.execute(
                    update(ImpersonationSession)
                    .where(
                        ImpersonationSession.id == session_id,
                        ImpersonationSession.status == ImpersonationStatus.ACTIVE,
                    )
                    .values(last_activity_at=self.clock.now())
                )
        return result.rowcount == 1

    async def revoke(self, session_id: str, requester: Principal) -> SessionInfo:
        """
        Force-end a session.

        Raises:
            NotFoundError: Unknown session
            ForbiddenError: Requester is neither the impersonator nor a platform admin
            ConflictError: Session already ended
        """
        return await self._end(
            session_id,
            requester,
            ImpersonationStatus.REVOKED,
            forbidden_message="Only the impersonator or a platform administrator can revoke this session",
        )

    async def complete(self, session_id: str, requester: Principal) -> SessionInfo:
        """Normal "stop viewing as". Same permissions and errors as ``revoke``."""
        return await self._end(
            session_id,
            requester,
            ImpersonationStatus.COMPLETED,
            forbidden_message="Only the impersonator or a platform administrator can end this session",
        )

    async def list_active_sessions(self, impersonator_id: str) -> List[SessionInfo]:
        """Sessions of an impersonator that are ACTIVE and not past absolute expiry, newest first."""
        async with self.sessions() as session:
            result = await session.execute(
                select(ImpersonationSession)
                .where(
                    ImpersonationSession.impersonator_id == impersonator_id,
                    ImpersonationSession.status == ImpersonationStatus.ACTIVE,
                    ImpersonationSession.expires_at > self.clock.now(),
                )
                .order_by(ImpersonationSession.created_at.desc())
            )
            return [SessionInfo.model_validate(row) for row in result.scalars().all()]

    async def resolve_effective_principal(self, token: str, caller: Principal) -> Tuple[Principal, SessionInfo]:
        """
        Validate a token presented by ``caller`` and return who to act as.

        The effective principal is the target user's principal with
        ``impersonator_id`` set to the caller. Delegation is re-checked
        against the target's current state on every use.

        Raises:
            NotFoundError, ImpersonationSessionError: From ``validate_token``
            ForbiddenError: Token belongs to someone else or delegation no longer holds
        """
        info = await self.validate_token(token)
        if info.impersonator_id != caller.id:
            logger.warning(
                "Impersonation token presented by another user",
                extra={"session_id": info.id, "caller_id": caller.id},
            )
            raise ForbiddenError("Invalid impersonation session", reason="TOKEN_NOT_OWNED")

        async with self.sessions() as session:
            engine = AccessDecisionEngine(SqlResourceStore(session), self.clock)
            verdict = await engine.check_delegation(caller, info.target_user_id)
            if not verdict.allowed:
                raise ForbiddenError("Invalid impersonation session", reason=verdict.reason.value)
            target = await session.get(User, info.target_user_id)
            effective = principal_from_user(target).as_impersonated_by(caller.id)

        await self.touch(info.id)
        return effective, info

    async def _end(
        self,
        session_id: str,
        requester: Principal,
        to_status: ImpersonationStatus,
        forbidden_message: str,
    ) -> SessionInfo:
        async with self.sessions() as session:
            async with session.begin():
                row = await session.get(ImpersonationSession, session_id)
                if row is None:
                    raise NotFoundError("Impersonation session not found")

                is_owner = requester.id == row.impersonator_id
                if not is_owner and not has_capability(requester.role, Capability.GLOBAL_OVERRIDE):
                    raise ForbiddenError(forbidden_message, reason="NOT_SESSION_OWNER")

                now = self.clock.now()
                if not await self._transition(session, row.id, to_status, now, ended_by=requester.id):
                    await session.refresh(row)
                    raise ConflictError(f"Impersonation session is already {ImpersonationStatus(row.status).value.lower()}")

                await session.refresh(row)
                AuditStore(session, self.clock).append(AuditEntry(
                    entity_type=AuditEntityType.IMPERSONATION_SESSION,
                    entity_id=row.id,
                    field_name="status",
                    old_value=ImpersonationStatus.ACTIVE.value,
                    new_value=to_status.value,
                    changed_by=requester.id,
                    role_at_time=requester.role.value,
                    change_type=AuditChangeType.STATUS_CHANGE,
                    reason=None if is_owner else "Ended by platform administrator",
                ))
                info = SessionInfo.model_validate(row)

        logger.info(
            "Impersonation session ended",
            extra={"session_id": session_id, "status": to_status.value, "ended_by": requester.id},
        )
        return info

    async def _expire(
        self,
        session: AsyncSession,
        row: ImpersonationSession,
        now: datetime,
        cause: RejectionCause,
    ) -> ImpersonationSessionError:
        """
        Flip an ACTIVE session to EXPIRED and build the rejection.

        A session that already ended (or was ended concurrently) keeps its
        status, and the rejection reports that status instead.
        """
        won = await self._transition(session, row.id, ImpersonationStatus.EXPIRED, now)
        await session.refresh(row)
        if not won:
            return _ended_rejection(ImpersonationStatus(row.status))
        message = (
            "Impersonation session expired due to inactivity"
            if cause == RejectionCause.INACTIVE
            else "Impersonation session has expired"
        )
        return ImpersonationSessionError(message, status=ImpersonationStatus.EXPIRED.value, cause=cause.value)

    async def _count_active(self, session: AsyncSession, impersonator_id: str, now: datetime) -> int:
        result = await session.execute(
            select(func.count(ImpersonationSession.id)).where(
                ImpersonationSession.impersonator_id == impersonator_id,
                ImpersonationSession.status == ImpersonationStatus.ACTIVE,
                ImpersonationSession.expires_at > now,
            )
        )
        return result.scalar() or 0

    async def _transition(
        self,
        session: AsyncSession,
        session_id: str,
        to_status: ImpersonationStatus,
        now: datetime,
        ended_by: Optional[str] = None,
    ) -> bool:
        """Compare-and-swap ACTIVE -> ``to_status``. True if this call won."""
        result = await session.execute(
            update(ImpersonationSession)
            .where(
                ImpersonationSession.id == session_id,
                ImpersonationSession.status == ImpersonationStatus.ACTIVE,
            )
            .values(status=to_status, ended_at=now, ended_by=ended_by)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
