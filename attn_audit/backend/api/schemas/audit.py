from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime
from typing import Any, List, Optional

from ...models.db_models import AuditAction


class SnapshotResponse(BaseModel):
    student_id: str
    session_id: str
    recorded_at: datetime
    recorded_by: str

    model_config = ConfigDict(from_attributes=True)

class FieldChangeResponse(BaseModel):
    field: str
    old_value: Any
    new_value: Any

    model_config = ConfigDict(from_attributes=True)

class AuditEntryResponse(BaseModel):
    """Response model for one entry of the audit trail."""
    id: UUID
    record_id: UUID
    operator: str
    occurred_at: datetime
    action: AuditAction
    field_changes: List[FieldChangeResponse]
    before: Optional[SnapshotResponse] = None
    after: Optional[SnapshotResponse] = None

    model_config = ConfigDict(from_attributes=True)
