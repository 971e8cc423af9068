"""
User model for identity management.

Credentials live with the upstream identity provider; this table only holds
what authorization needs: role, tenancy and regulator provinces.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, SoftDeleteMixin, TimestampMixin, generate_uuid


class UserRole(str, Enum):
    """User roles in the system. Static per user; never derived from data."""
    PLATFORM_ADMIN = "PLATFORM_ADMIN"
    INSTITUTION_ADMIN = "INSTITUTION_ADMIN"
    INSTITUTION_STAFF = "INSTITUTION_STAFF"
    STUDENT = "STUDENT"
    # Regulator (QCTO) roles
    QCTO_SUPER_ADMIN = "QCTO_SUPER_ADMIN"
    QCTO_ADMIN = "QCTO_ADMIN"
    QCTO_USER = "QCTO_USER"
    QCTO_REVIEWER = "QCTO_REVIEWER"
    QCTO_AUDITOR = "QCTO_AUDITOR"
    QCTO_VIEWER = "QCTO_VIEWER"
    ADVISOR = "ADVISOR"


REGULATOR_ROLES = frozenset({
    UserRole.QCTO_SUPER_ADMIN,
    UserRole.QCTO_ADMIN,
    UserRole.QCTO_USER,
    UserRole.QCTO_REVIEWER,
    UserRole.QCTO_AUDITOR,
    UserRole.QCTO_VIEWER,
})

INSTITUTION_ROLES = frozenset({
    UserRole.INSTITUTION_ADMIN,
    UserRole.INSTITUTION_STAFF,
})


class User(Base, TimestampMixin, SoftDeleteMixin):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    full_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    role: Mapped[UserRole] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )

    # Tenancy: institution roles and students belong to one institution
    institution_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    # Regulator membership and province assignment
    qcto_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    assigned_provinces: Mapped[List[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    last_seen_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.email} {self.role}>"
