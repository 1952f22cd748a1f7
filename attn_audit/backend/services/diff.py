from datetime import datetime, timezone
from typing import Any, Dict, List
from uuid import UUID

from ..models.db_models import AttendanceRecord, FieldChange

# Order in which changed fields appear in an audit entry.
TRACKED_FIELDS = ("student_id", "session_id", "recorded_at", "recorded_by")


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_value_for_diff(value: Any) -> Any:
    """
    Canonical form used only for comparison, so that the same instant in two
    time zones or a UUID against its string does not count as a change.
    """
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def compute_field_changes(existing: AttendanceRecord, incoming: Dict[str, Any]) -> List[FieldChange]:
    """
    Compares every supplied field against the stored value. Changes carry the
    raw values, not the normalized ones.
    """
    changes = []
    for field in TRACKED_FIELDS:
        if field not in incoming:
            continue
        old_value = getattr(existing, field)
        new_value = incoming[field]
        if normalize_value_for_diff(new_value) != normalize_value_for_diff(old_value):
            changes.append(FieldChange(field=field, old_value=old_value, new_value=new_value))
    return changes
