"""
Resource store port and its SQLAlchemy adapter.

The access engine depends only on the ``ResourceStore`` protocol. The SQL
adapter is the single place where ``deleted_at`` columns become domain
lifecycle values.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol, Type

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.identity.identity_service import principal_from_user
from src.kernel.models.base import Base
from src.kernel.models.institution import (
    Document,
    Enrolment,
    Facilitator,
    Institution,
    Learner,
    Readiness,
)
from src.kernel.models.review import (
    RegulatorRequest,
    RequestResource,
    RequestStatus,
    Submission,
    SubmissionResource,
    SubmissionStatus,
)
from src.kernel.models.user import User
from src.kernel.permissions.resources import (
    ResourceRecord,
    ResourceRef,
    ResourceType,
    UserSnapshot,
    lifecycle_from,
)


class ResourceStore(Protocol):
    """Read port used by the scope resolver and access engine."""

    async def get_record(self, ref: ResourceRef) -> Optional[ResourceRecord]:
        ...

    async def has_approved_submission_link(self, resource_type: ResourceType, resource_id: str) -> bool:
        ...

    async def has_approved_request_link(
        self, resource_type: ResourceType, resource_id: str, at: datetime
    ) -> bool:
        ...

    async def get_user(self, user_id: str) -> Optional[UserSnapshot]:
        ...

    async def lock_for_update(self, ref: ResourceRef) -> Optional[ResourceRecord]:
        ...


@dataclass(frozen=True)
class _Loader:
    model: Type[Base]
    to_record: Callable[[Any], ResourceRecord]


def _document_parent(row: Document) -> Optional[ResourceRef]:
    try:
        return ResourceRef(ResourceType(row.related_entity), row.related_entity_id)
    except ValueError:
        # Unknown related entity: ownership cannot be resolved
        return None


_LOADERS: Dict[ResourceType, _Loader] = {
    ResourceType.INSTITUTION: _Loader(
        Institution,
        lambda row: ResourceRecord(
            ref=ResourceRef(ResourceType.INSTITUTION, row.id),
            lifecycle=lifecycle_from(row.deleted_at),
            institution_id=row.id,
        ),
    ),
    ResourceType.READINESS: _Loader(
        Readiness,
        lambda row: ResourceRecord(
            ref=ResourceRef(ResourceType.READINESS, row.id),
            lifecycle=lifecycle_from(row.deleted_at),
            institution_id=row.institution_id,
        ),
    ),
    ResourceType.FACILITATOR: _Loader(
        Facilitator,
        lambda row: ResourceRecord(
            ref=ResourceRef(ResourceType.FACILITATOR, row.id),
            lifecycle=lifecycle_from(row.deleted_at),
            parent=ResourceRef(ResourceType.READINESS, row.readiness_id),
        ),
    ),
    ResourceType.LEARNER: _Loader(
        Learner,
        lambda row: ResourceRecord(
            ref=ResourceRef(ResourceType.LEARNER, row.id),
            lifecycle=lifecycle_from(row.deleted_at),
            institution_id=row.institution_id,
            owner_user_id=row.user_id,
        ),
    ),
    ResourceType.ENROLMENT: _Loader(
        Enrolment,
        lambda row: ResourceRecord(
            ref=ResourceRef(ResourceType.ENROLMENT, row.id),
            lifecycle=lifecycle_from(row.deleted_at),
            institution_id=row.institution_id,
        ),
    ),
    ResourceType.DOCUMENT: _Loader(
        Document,
        lambda row: ResourceRecord(
            ref=ResourceRef(ResourceType.DOCUMENT, row.id),
            lifecycle=lifecycle_from(row.deleted_at),
            parent=_document_parent(row),
        ),
    ),
    ResourceType.SUBMISSION: _Loader(
        Submission,
        lambda row: ResourceRecord(
            ref=ResourceRef(ResourceType.SUBMISSION, row.id),
            lifecycle=lifecycle_from(row.deleted_at),
            institution_id=row.institution_id,
        ),
    ),
    ResourceType.REQUEST: _Loader(
        RegulatorRequest,
        lambda row: ResourceRecord(
            ref=ResourceRef(ResourceType.REQUEST, row.id),
            lifecycle=lifecycle_from(row.deleted_at),
            institution_id=row.institution_id,
        ),
    ),
}

_unloaded = set(ResourceType) - set(_LOADERS)
if _unloaded:
    raise RuntimeError(f"No resource loader for: {sorted(t.value for t in _unloaded)}")
del _unloaded


def model_for(resource_type: ResourceType) -> Type[Base]:
    """ORM model backing a resource type."""
    return _LOADERS[resource_type].model


def approved_submission_link_clause(resource_type_col, resource_id_col):
    """EXISTS clause: an APPROVED, live submission links the given columns."""
    return exists().where(
        SubmissionResource.submission_id == Submission.id,
        Submission.status == SubmissionStatus.APPROVED,
        Submission.deleted_at.is_(None),
        SubmissionResource.resource_type == resource_type_col,
        SubmissionResource.resource_id_value == resource_id_col,
    )


def approved_request_link_clause(resource_type_col, resource_id_col, at: datetime):
    """EXISTS clause: an APPROVED, live, unexpired request links the given columns."""
    return exists().where(
        RequestResource.request_id == RegulatorRequest.id,
        RegulatorRequest.status == RequestStatus.APPROVED,
        RegulatorRequest.deleted_at.is_(None),
        or_(RegulatorRequest.expires_at.is_(None), RegulatorRequest.expires_at > at),
        RequestResource.resource_type == resource_type_col,
        RequestResource.resource_id_value == resource_id_col,
    )


class SqlResourceStore:
    """
    ``ResourceStore`` backed by the kernel's tables.

    Usage:
        store = SqlResourceStore(session)
        record = await store.get_record(ResourceRef(ResourceType.LEARNER, learner_id))
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_record(self, ref: ResourceRef) -> Optional[ResourceRecord]:
        loader = _LOADERS[ref.type]
        row = await self.session.get(loader.model, ref.id)
        return loader.to_record(row) if row is not None else None

    async def lock_for_update(self, ref: ResourceRef) -> Optional[ResourceRecord]:
        """Load the row with SELECT ... FOR UPDATE (no-op lock on SQLite)."""
        loader = _LOADERS[ref.type]
        result = await self.session.execute(
            select(loader.model).where(loader.model.id == ref.id).with_for_update()
        )
        row = result.scalar_one_or_none()
        return loader.to_record(row) if row is not None else None

    async def has_approved_submission_link(self, resource_type: ResourceType, resource_id: str) -> bool:
        query = select(approved_submission_link_clause(resource_type.value, resource_id))
        result = await self.session.execute(query)
        return bool(result.scalar())

    async def has_approved_request_link(
        self, resource_type: ResourceType, resource_id: str, at: datetime
    ) -> bool:
        query = select(approved_request_link_clause(resource_type.value, resource_id, at))
        result = await self.session.execute(query)
        return bool(result.scalar())

    async def get_user(self, user_id: str) -> Optional[UserSnapshot]:
        user = await self.session.get(User, user_id)
        if user is None:
            return None
        return UserSnapshot(principal=principal_from_user(user), lifecycle=lifecycle_from(user.deleted_at))
