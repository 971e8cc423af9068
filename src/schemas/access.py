"""
Access check schemas.
"""

from typing import Optional

from pydantic import BaseModel, Field

from src.kernel.permissions.resources import Action, ResourceType


class AccessCheckRequest(BaseModel):
    """Ask whether the current principal may act on a resource."""

    resource_type: ResourceType
    resource_id: str = Field(..., min_length=1, max_length=64)
    action: Action = Action.READ


class AccessCheckResponse(BaseModel):
    """
    Verdict as exposed over HTTP.

    Deny reasons are logged server-side only, so a missing resource and a
    forbidden one look the same to the caller.
    """

    allowed: bool
    reason: Optional[str] = None
    scope: str
    institution_id: Optional[str] = None
