"""
Impersonation session schemas.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.kernel.models.impersonation import ImpersonationStatus


class ImpersonationCreateRequest(BaseModel):
    target_user_id: str = Field(..., min_length=1, max_length=64)


class ImpersonationSessionResponse(BaseModel):
    """Session without its token."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    impersonator_id: str
    target_user_id: str
    status: ImpersonationStatus
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime
    ended_at: Optional[datetime] = None
    ended_by: Optional[str] = None


class ImpersonationCreatedResponse(ImpersonationSessionResponse):
    """Creation response: the only time the token is returned."""

    token: str


class ImpersonationSessionListResponse(BaseModel):
    sessions: List[ImpersonationSessionResponse]
    max_active_sessions: int
