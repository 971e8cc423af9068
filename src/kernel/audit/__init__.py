"""
Audit Core - append-only audit log and the audited mutation executor.
"""

from src.kernel.audit.audit_store import AUDIT_LOG_COLUMNS, AuditEntry, AuditFilters, AuditStore
from src.kernel.audit.diffing import FieldChange, diff_fields, normalize, serialize_value
from src.kernel.audit.executor import AuditedMutationExecutor, MutationResult, MutationSpec

__all__ = [
    "AUDIT_LOG_COLUMNS",
    "AuditEntry",
    "AuditFilters",
    "AuditStore",
    "FieldChange",
    "diff_fields",
    "normalize",
    "serialize_value",
    "AuditedMutationExecutor",
    "MutationResult",
    "MutationSpec",
]
