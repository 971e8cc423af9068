"""
Immutable field-level audit log.

One row per changed field (or one summary row when no field applies).
This table is append-only: the ORM refuses updates and deletes.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, generate_uuid


class AuditEntityType(str, Enum):
    """Entity types that can appear in the audit log."""
    INSTITUTION = "INSTITUTION"
    READINESS = "READINESS"
    FACILITATOR = "FACILITATOR"
    LEARNER = "LEARNER"
    ENROLMENT = "ENROLMENT"
    DOCUMENT = "DOCUMENT"
    SUBMISSION = "SUBMISSION"
    REQUEST = "REQUEST"
    USER = "USER"
    IMPERSONATION_SESSION = "IMPERSONATION_SESSION"


class AuditChangeType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"


class AuditLog(Base):
    """
    Immutable audit record.

    ``changed_by`` is the effective principal; ``impersonated_by`` is the
    real actor when the change was made through an impersonation session.
    """

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)

    # Entity reference
    entity_type: Mapped[AuditEntityType] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    field_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Serialized values (see kernel.audit.diffing.serialize_value)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Actor
    changed_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role_at_time: Mapped[str] = mapped_column(String(50), nullable=False)
    impersonated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    change_type: Mapped[AuditChangeType] = mapped_column(String(50), nullable=False)
    institution_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    related_submission_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Clock-injected, immutable
    created_at: Mapped[datetime] = mapped_column(nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_actor_time", "changed_by", "created_at"),
        Index("ix_audit_logs_institution_time", "institution_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.change_type} {self.entity_type}:{self.entity_id} {self.field_name}>"


class AuditLogImmutableError(RuntimeError):
    """Raised when code attempts to modify or delete an audit record."""


@event.listens_for(AuditLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit record {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit record {target.id} is append-only")
