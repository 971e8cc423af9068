"""
Audit log schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from src.kernel.models.audit_log import AuditChangeType, AuditEntityType


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity_type: AuditEntityType
    entity_id: str
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: str
    role_at_time: str
    impersonated_by: Optional[str] = None
    change_type: AuditChangeType
    institution_id: Optional[str] = None
    reason: Optional[str] = None
    related_submission_id: Optional[str] = None
    created_at: datetime
