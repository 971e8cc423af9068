"""
Audit log search endpoint.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query

from src.api.deps import CurrentPrincipal, Kernel
from src.kernel.audit.audit_store import AuditFilters
from src.kernel.models.audit_log import AuditChangeType, AuditEntityType
from src.schemas.audit import AuditLogResponse
from src.schemas.common import PaginatedResponse

router = APIRouter()


@router.get("", response_model=PaginatedResponse[AuditLogResponse])
async def search_audit_logs(
    principal: CurrentPrincipal,
    kernel: Kernel,
    entity_type: Optional[AuditEntityType] = Query(None),
    entity_id: Optional[str] = Query(None),
    changed_by: Optional[str] = Query(None),
    institution_id: Optional[str] = Query(None),
    change_type: Optional[AuditChangeType] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """List audit records within the current principal's visibility, newest first."""
    filters = AuditFilters(
        entity_type=entity_type,
        entity_id=entity_id,
        changed_by=changed_by,
        institution_id=institution_id,
        change_type=change_type,
        since=since,
        until=until,
    )
    records, total = await kernel.search_audit_log(
        principal,
        filters,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return PaginatedResponse.create(
        items=[AuditLogResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        page_size=page_size,
    )
