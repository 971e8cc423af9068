"""
Impersonation ("view as") session model.

Sessions are never deleted; they end in one of the terminal statuses.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, generate_uuid


class ImpersonationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"
    COMPLETED = "COMPLETED"


class ImpersonationSession(Base):
    """A bounded session in which one user acts as another."""

    __tablename__ = "impersonation_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_uuid)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    impersonator_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    target_user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    status: Mapped[ImpersonationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ImpersonationStatus.ACTIVE,
    )

    # Two independent timeouts: absolute expiry and sliding inactivity
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    last_activity_at: Mapped[datetime] = mapped_column(nullable=False)

    ended_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    ended_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Metadata
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),  # IPv6 max length
        nullable=True,
    )
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_impersonation_sessions_actor_status", "impersonator_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<ImpersonationSession {self.id} {self.impersonator_id}->{self.target_user_id} {self.status}>"


@event.listens_for(ImpersonationSession, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise RuntimeError(f"Impersonation session {target.id} cannot be deleted")
