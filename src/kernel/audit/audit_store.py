"""
Audit Store: append-only persistence for field-level audit records.

Records are added to the caller's session and committed with the caller's
transaction, so a change and its audit trail land together or not at all.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.clock import Clock, SystemClock
from src.kernel.models.audit_log import AuditChangeType, AuditEntityType, AuditLog
from src.kernel.permissions.query_spec import QuerySpec, ScopeColumns

AUDIT_LOG_COLUMNS = ScopeColumns(
    institution_id=AuditLog.institution_id,
    actor_id=AuditLog.changed_by,
    resource_type=AuditLog.entity_type,
    resource_id=AuditLog.entity_id,
)


class AuditEntry(BaseModel):
    """One audit record to be written."""

    model_config = ConfigDict(frozen=True)

    entity_type: AuditEntityType
    entity_id: str
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: str
    role_at_time: str
    change_type: AuditChangeType
    institution_id: Optional[str] = None
    reason: Optional[str] = None
    impersonated_by: Optional[str] = None
    related_submission_id: Optional[str] = None


class AuditFilters(BaseModel):
    """Caller-supplied narrowing on top of the principal's visibility."""

    entity_type: Optional[AuditEntityType] = None
    entity_id: Optional[str] = None
    changed_by: Optional[str] = None
    institution_id: Optional[str] = None
    change_type: Optional[AuditChangeType] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None


class AuditStore:
    """
    Service for the immutable audit log.

    Usage:
        audit_store = AuditStore(session, clock)
        audit_store.append(AuditEntry(
            entity_type=AuditEntityType.LEARNER,
            entity_id=learner.id,
            field_name="first_name",
            old_value="Thabo",
            new_value="Thabiso",
            changed_by=principal.id,
            role_at_time=principal.role.value,
            change_type=AuditChangeType.UPDATE,
        ))
    """

    def __init__(self, session: AsyncSession, clock: Optional[Clock] = None):
        self.session = session
        self.clock = clock or SystemClock()

    def append(self, entry: AuditEntry) -> AuditLog:
        """
        Add an audit record to the current transaction.

        The caller commits; nothing is written if the transaction rolls back.
        """
        record = AuditLog(**entry.model_dump(), created_at=self.clock.now())
        self.session.add(record)
        return record

    def append_many(self, entries: Sequence[AuditEntry]) -> List[AuditLog]:
        """Add several records sharing one timestamp."""
        now = self.clock.now()
        records = [AuditLog(**entry.model_dump(), created_at=now) for entry in entries]
        self.session.add_all(records)
        return records

    async def get_entity_history(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLog]:
        """
        Get the audit history for a specific entity.

        Args:
            entity_type: The type of entity
            entity_id: The ID of the entity
            limit: Maximum number of records to return
            offset: Number of records to skip

        Returns:
            List of AuditLog records, newest first
        """
        query = (
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(desc(AuditLog.created_at), AuditLog.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(
        self,
        entity_type: Optional[AuditEntityType] = None,
        entity_id: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> int:
        """Count records matching the given criteria."""
        query = select(func.count(AuditLog.id))
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.where(AuditLog.entity_id == entity_id)
        if changed_by:
            query = query.where(AuditLog.changed_by == changed_by)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def search(
        self,
        spec: QuerySpec,
        filters: Optional[AuditFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AuditLog], int]:
        """
        List audit records visible under ``spec``.

        Args:
            spec: Visibility of the requesting principal
            filters: Optional additional narrowing
            limit: Page size
            offset: Records to skip

        Returns:
            Tuple of (records newest first, total matching count)
        """
        filters = filters or AuditFilters()
        conditions = [spec.to_clause(AUDIT_LOG_COLUMNS)]
        if filters.entity_type:
            conditions.append(AuditLog.entity_type == filters.entity_type)
        if filters.entity_id:
            conditions.append(AuditLog.entity_id == filters.entity_id)
        if filters.changed_by:
            conditions.append(AuditLog.changed_by == filters.changed_by)
        if filters.institution_id:
            conditions.append(AuditLog.institution_id == filters.institution_id)
        if filters.change_type:
            conditions.append(AuditLog.change_type == filters.change_type)
        if filters.since:
            conditions.append(AuditLog.created_at >= filters.since)
        if filters.until:
            conditions.append(AuditLog.created_at <= filters.until)

        total_result = await self.session.execute(select(func.count(AuditLog.id)).where(*conditions))
        total = total_result.scalar() or 0

        query = (
            select(AuditLog)
            .where(*conditions)
            .order_by(desc(AuditLog.created_at), AuditLog.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total
