"""
Audited Mutation Executor.

Runs a caller-supplied state change inside one transaction together with an
authorization re-check and the audit records it produces. The order inside
the transaction is fixed: lock, re-check, mutate, audit. Any failure rolls
the whole unit back.
"""

import asyncio
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
)

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.kernel.audit.audit_store import AuditEntry, AuditStore
from src.kernel.audit.diffing import FieldChange, diff_fields, present_fields, serialize_value, snapshot
from src.kernel.clock import Clock, SystemClock
from src.kernel.errors import (
    AppError,
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from src.kernel.identity.principal import Principal
from src.kernel.models.audit_log import AuditChangeType, AuditEntityType, AuditLog
from src.kernel.permissions.access_engine import AccessDecisionEngine
from src.kernel.permissions.resource_store import SqlResourceStore, model_for
from src.kernel.permissions.resources import Action, ResourceRef
from src.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MutationCallback = Callable[[AsyncSession], Awaitable[T]]
AuthorizePredicate = Callable[[AsyncSession, Principal], Awaitable[bool]]
EngineFactory = Callable[[AsyncSession], AccessDecisionEngine]

_FIELD_CHANGES = (AuditChangeType.UPDATE, AuditChangeType.STATUS_CHANGE)

# Maintained by the ORM, never audited
_BOOKKEEPING_COLUMNS = frozenset({"created_at", "updated_at"})


@dataclass
class MutationSpec(Generic[T]):
    """
    Everything the executor needs to run one audited change.

    Authorization comes from ``resource`` (re-derived through the access
    engine), from ``authorize``, or both; at least one is required. The
    audited entity id comes from ``entity_id``, ``result_id(value)`` or
    ``resource.id``, in that order.
    """

    entity_type: AuditEntityType
    change_type: AuditChangeType
    mutation: MutationCallback

    resource: Optional[ResourceRef] = None
    action: Action = Action.WRITE
    authorize: Optional[AuthorizePredicate] = None

    entity_id: Optional[str] = None
    result_id: Optional[Callable[[Any], str]] = None

    # Attributes read off the locked row (or the created object) before and after.
    # On UPDATE/STATUS_CHANGE any other column of the locked row that changes
    # is audited as well.
    tracked_fields: Sequence[str] = ()
    old_values: Optional[Mapping[str, Any]] = None
    new_values: Optional[Mapping[str, Any]] = None

    institution_id: Optional[str] = None
    reason: Optional[str] = None
    related_submission_id: Optional[str] = None


@dataclass
class MutationResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[AppError] = None
    audit_records: List[AuditLog] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """The value, or raise the error."""
        if self.error is not None:
            raise self.error
        return self.value


class AuditedMutationExecutor:
    """
    Executes mutations with in-transaction authorization and audit.

    Usage:
        executor = AuditedMutationExecutor(async_session_maker, clock)
        result = await executor.execute(principal, MutationSpec(
            entity_type=AuditEntityType.READINESS,
            change_type=AuditChangeType.UPDATE,
            resource=ResourceRef(ResourceType.READINESS, readiness_id),
            tracked_fields=("qualification_title",),
            mutation=rename,
        ))
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        engine_factory: Optional[EngineFactory] = None,
    ):
        self.sessions = sessions
        self.clock = clock or SystemClock()
        self.engine_factory = engine_factory or (
            lambda session: AccessDecisionEngine(SqlResourceStore(session), self.clock)
        )

    async def execute(self, principal: Principal, spec: MutationSpec[T]) -> MutationResult[T]:
        """
        Run ``spec.mutation`` as an audited unit of work.

        Args:
            principal: The effective acting principal
            spec: The mutation and its audit metadata

        Returns:
            MutationResult with the callback's value and the written audit
            records, or with an AppError (FORBIDDEN, VALIDATION_ERROR,
            NOT_FOUND, CONFLICT, INTERNAL). Nothing is persisted on error.

        Raises:
            asyncio.CancelledError: Propagated after rollback
        """
        log_extra = {
            "principal_id": principal.id,
            "impersonator_id": principal.impersonator_id,
            "entity_type": spec.entity_type.value,
            "change_type": spec.change_type.value,
            "resource": str(spec.resource) if spec.resource else None,
        }
        try:
            self._validate(spec)
            async with self.sessions() as session:
                async with session.begin():
                    value, records = await self._run(session, principal, spec)
        except asyncio.CancelledError:
            logger.warning("Audited mutation cancelled; transaction rolled back", extra=log_extra)
            raise
        except ForbiddenError as e:
            logger.info("Audited mutation denied", extra={**log_extra, "reason": e.reason})
            return MutationResult(error=e)
        except AppError as e:
            logger.info("Audited mutation rejected", extra={**log_extra, "code": e.code.value})
            return MutationResult(error=e)
        except IntegrityError as e:
            logger.info("Audited mutation conflicted", extra={**log_extra, "cause": type(e.orig).__name__})
            return MutationResult(error=ConflictError("The change conflicts with existing data"))
        except Exception:
            logger.exception("Audited mutation failed; transaction rolled back", extra=log_extra)
            return MutationResult(error=InternalError("The change could not be applied"))

        logger.info("Audited mutation committed", extra={**log_extra, "audit_records": len(records)})
        return MutationResult(value=value, audit_records=records)

    def _validate(self, spec: MutationSpec) -> None:
        if not callable(spec.mutation):
            raise ValidationError("Mutation callback is required")
        if spec.resource is None and spec.authorize is None:
            raise ValidationError("Mutation needs a resource or an authorization predicate")
        if spec.entity_id is None and spec.result_id is None and spec.resource is None:
            raise ValidationError("Mutation needs an entity id, a result id extractor or a resource")
        if spec.tracked_fields and spec.resource is None and spec.change_type != AuditChangeType.CREATE:
            raise ValidationError("Tracked fields need a resource to read them from")
        if (
            spec.change_type in _FIELD_CHANGES
            and spec.resource is None
            and not spec.old_values
            and not spec.new_values
        ):
            raise ValidationError("Field changes need a resource to diff or explicit old/new values")

    async def _run(self, session: AsyncSession, principal: Principal, spec: MutationSpec[T]):
        engine = self.engine_factory(session)
        row = None
        verdict_institution: Optional[str] = None

        # 1. Lock
        if spec.resource is not None:
            record = await engine.store.lock_for_update(spec.resource)
            if record is None:
                raise NotFoundError(f"{spec.resource.type.value.title()} not found")
            row = await session.get(model_for(spec.resource.type), spec.resource.id)

        # 2. Re-check authorization against the locked state
        if spec.resource is not None:
            verdict = await engine.check_access(principal, spec.resource, spec.action)
            if not verdict.allowed:
                raise ForbiddenError(reason=verdict.reason.value)
            verdict_institution = verdict.institution_id
            if verdict_institution is None:
                # Owner as of the locked state; the mutation may delete or re-parent the row
                resolution = await engine.resolver.resolve(spec.resource)
                verdict_institution = resolution.institution_id if resolution else None
        if spec.authorize is not None and not await spec.authorize(session, principal):
            raise ForbiddenError(reason="PREDICATE_DENIED")

        # 3. Mutate
        fields = list(spec.tracked_fields)
        before: Dict[str, Any] = {}
        if row is not None and spec.change_type != AuditChangeType.CREATE:
            before = snapshot(row, fields)
        columns_before = self._column_state(row) if row is not None and spec.change_type in _FIELD_CHANGES else {}

        value = await spec.mutation(session)
        await session.flush()

        after: Dict[str, Any] = {}
        if spec.change_type == AuditChangeType.CREATE:
            after = snapshot(value, fields)
        elif row is not None and spec.change_type != AuditChangeType.DELETE:
            await session.refresh(row)
            after = snapshot(row, fields)

        if columns_before:
            explicit = set(spec.old_values or {}) | set(spec.new_values or {})
            columns_after = self._column_state(row)
            for name, old in columns_before.items():
                if name in fields or name in explicit:
                    continue
                before[name] = old
                after[name] = columns_after.get(name)

        before.update(spec.old_values or {})
        after.update(spec.new_values or {})

        # 4. Audit
        entity_id = self._entity_id(spec, value)
        institution_id = spec.institution_id or verdict_institution

        changes = self._changes(spec.change_type, before, after, fields)
        entries = [
            AuditEntry(
                entity_type=spec.entity_type,
                entity_id=entity_id,
                field_name=change.field_name,
                old_value=change.old_value,
                new_value=change.new_value,
                changed_by=principal.id,
                role_at_time=principal.role.value,
                change_type=spec.change_type,
                institution_id=institution_id,
                reason=spec.reason,
                impersonated_by=principal.impersonator_id,
                related_submission_id=spec.related_submission_id,
            )
            for change in changes
        ]
        records = AuditStore(session, self.clock).append_many(entries)
        await session.flush()
        return value, records

    @staticmethod
    def _column_state(row: Any) -> Dict[str, Optional[str]]:
        """Serialized column values of an ORM row, bookkeeping columns excluded."""
        return {
            attr.key: serialize_value(getattr(row, attr.key))
            for attr in inspect(row).mapper.column_attrs
            if attr.key not in _BOOKKEEPING_COLUMNS
        }

    @staticmethod
    def _entity_id(spec: MutationSpec, value: Any) -> str:
        if spec.entity_id is not None:
            return spec.entity_id
        if spec.result_id is not None:
            return spec.result_id(value)
        return spec.resource.id

    @staticmethod
    def _changes(
        change_type: AuditChangeType,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
        fields: List[str],
    ) -> List[FieldChange]:
        if change_type in _FIELD_CHANGES:
            ordered = fields + [k for k in list(before) + list(after) if k not in fields]
            return diff_fields(before, after, list(dict.fromkeys(ordered)))

        if change_type == AuditChangeType.CREATE:
            changes = present_fields(after, as_new=True)
        else:
            changes = present_fields(before, as_new=False)
        # Creates and deletes always leave a trace
        return changes or [FieldChange(field_name=None, old_value=None, new_value=None)]
