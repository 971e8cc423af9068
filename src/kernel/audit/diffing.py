"""
Value serialization and field-level diffing for audit records.
"""

import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence


@dataclass(frozen=True)
class FieldChange:
    field_name: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]


def serialize_value(value: Any) -> Optional[str]:
    """Render any value as the string stored in an audit record."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return serialize_value(value.value)
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=str)
    return str(value)


def normalize(value: Any) -> Optional[str]:
    """
    Comparison form of a value.

    Strings are trimmed; None, "" and whitespace-only all normalize to None.
    """
    serialized = serialize_value(value)
    if serialized is None:
        return None
    serialized = serialized.strip()
    return serialized or None


def snapshot(obj: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Read the given attributes off an ORM object (or mapping)."""
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return {f: obj.get(f) for f in fields}
    return {f: getattr(obj, f, None) for f in fields}


def diff_fields(
    old: Mapping[str, Any],
    new: Mapping[str, Any],
    fields: Optional[Sequence[str]] = None,
) -> List[FieldChange]:
    """
    One change per field whose normalized old and new values differ.

    Args:
        old: Field values before the change
        new: Field values after the change
        fields: Fields to compare, in output order (default: old keys then new-only keys)

    Returns:
        List of FieldChange with serialized (not normalized) values
    """
    if fields is None:
        fields = list(old.keys()) + [k for k in new.keys() if k not in old]

    changes = []
    for name in fields:
        before, after = old.get(name), new.get(name)
        if normalize(before) == normalize(after):
            continue
        changes.append(FieldChange(name, serialize_value(before), serialize_value(after)))
    return changes


def present_fields(values: Mapping[str, Any], *, as_new: bool) -> List[FieldChange]:
    """
    Changes for a CREATE (as_new=True) or DELETE (as_new=False): every field
    with a non-empty value.
    """
    changes = []
    for name, value in values.items():
        if normalize(value) is None:
            continue
        serialized = serialize_value(value)
        if as_new:
            changes.append(FieldChange(name, None, serialized))
        else:
            changes.append(FieldChange(name, serialized, None))
    return changes
