"""
Regulator review artefacts: submissions and resource requests.

Regulator staff only see an institution's resources through an APPROVED link
in one of these two tables.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, SoftDeleteMixin, TimestampMixin, generate_uuid


class SubmissionStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RETURNED_FOR_CORRECTION = "RETURNED_FOR_CORRECTION"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Submission(Base, TimestampMixin, SoftDeleteMixin):
    """An institution's bundle of resources submitted for regulator review."""

    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    institution_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("institutions.id"),
        nullable=False,
        index=True,
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[SubmissionStatus] = mapped_column(
        String(50),
        nullable=False,
        default=SubmissionStatus.DRAFT,
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class SubmissionResource(Base):
    """Link row: (resource type, resource id) included in a submission."""

    __tablename__ = "submission_resources"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    submission_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("submissions.id"),
        nullable=False,
        index=True,
    )
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id_value: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_submission_resources_target", "resource_type", "resource_id_value"),
    )


class RegulatorRequest(Base, TimestampMixin, SoftDeleteMixin):
    """A regulator's request for access to specific institution resources."""

    __tablename__ = "regulator_requests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    institution_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("institutions.id"),
        nullable=False,
        index=True,
    )
    requested_by: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[RequestStatus] = mapped_column(
        String(50),
        nullable=False,
        default=RequestStatus.PENDING,
    )
    # None means the approval does not lapse
    expires_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)


class RequestResource(Base):
    """Link row: (resource type, resource id) covered by a regulator request."""

    __tablename__ = "request_resources"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    request_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("regulator_requests.id"),
        nullable=False,
        index=True,
    )
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id_value: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_request_resources_target", "resource_type", "resource_id_value"),
    )
