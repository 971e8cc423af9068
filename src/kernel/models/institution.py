"""
Tenant-owned resources.

Every row here is owned, directly or through its parent, by exactly one
institution. Ownership hops are resolved by the resource store.
"""

from typing import Optional

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, SoftDeleteMixin, TimestampMixin, generate_uuid


class Institution(Base, TimestampMixin, SoftDeleteMixin):
    """A training provider (tenant root)."""

    __tablename__ = "institutions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    trading_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    province: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    registration_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Institution {self.legal_name}>"


class Readiness(Base, TimestampMixin, SoftDeleteMixin):
    """Programme readiness application (Form 5) of an institution."""

    __tablename__ = "readiness"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    institution_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("institutions.id"),
        nullable=False,
        index=True,
    )
    qualification_title: Mapped[str] = mapped_column(String(255), nullable=False)
    readiness_status: Mapped[str] = mapped_column(String(50), nullable=False, default="NOT_STARTED")


class Facilitator(Base, TimestampMixin, SoftDeleteMixin):
    """Facilitator attached to a readiness application (owner is two hops away)."""

    __tablename__ = "facilitators"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    readiness_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("readiness.id"),
        nullable=False,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    id_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)


class Learner(Base, TimestampMixin, SoftDeleteMixin):
    """Learner enrolled with an institution; optionally linked to a student login."""

    __tablename__ = "learners"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    institution_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("institutions.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )
    national_id: Mapped[str] = mapped_column(String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        Index("ix_learners_institution_national_id", "institution_id", "national_id", unique=True),
    )


class Enrolment(Base, TimestampMixin, SoftDeleteMixin):
    """Learner enrolment on a qualification."""

    __tablename__ = "enrolments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    institution_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("institutions.id"),
        nullable=False,
        index=True,
    )
    learner_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("learners.id"),
        nullable=False,
        index=True,
    )
    qualification_title: Mapped[str] = mapped_column(String(255), nullable=False)
    enrolment_status: Mapped[str] = mapped_column(String(50), nullable=False, default="ACTIVE")


class Document(Base, TimestampMixin, SoftDeleteMixin):
    """
    Evidence document.

    Documents hang off another resource (``related_entity`` holds a resource
    type value); their owner is whatever owns that entity.
    """

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    related_entity: Mapped[str] = mapped_column(String(50), nullable=False)
    related_entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    document_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="UPLOADED")

    __table_args__ = (
        Index("ix_documents_related", "related_entity", "related_entity_id"),
    )
