# attn_audit/backend/models/db_models.py

from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple
from uuid import UUID


class AttendanceRecord(BaseModel):
    """
    Represents one student's check-in for one session, mapping to the
    'AttendanceRecords' table. (student_id, session_id) is unique.
    """
    id: UUID = Field(..., description="Assigned by the store on insert, never changes afterwards")
    student_id: str = Field(..., description="The student's UIN")
    session_id: str = Field(..., description="Session / date key, e.g. '20251001'")
    recorded_at: datetime = Field(..., description="When the attendance was taken")
    recorded_by: str = Field(..., description="Who or what took the attendance")

    model_config = ConfigDict(frozen=True)


class AttendanceCreate(BaseModel):
    """Field values for a new record. The store assigns the id."""
    student_id: str
    session_id: str
    recorded_at: Optional[datetime] = None
    recorded_by: str


class AttendanceUpdate(BaseModel):
    """
    A partial edit. Only the fields the caller actually sets take part in the
    diff and get written; use model_dump(exclude_unset=True) to read them.
    """
    student_id: Optional[str] = None
    session_id: Optional[str] = None
    recorded_at: Optional[datetime] = None
    recorded_by: Optional[str] = None


class RecordSnapshot(BaseModel):
    """Frozen copy of a record's fields, stored inside an audit entry."""
    student_id: str
    session_id: str
    recorded_at: datetime
    recorded_by: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, record: AttendanceRecord) -> "RecordSnapshot":
        return cls(
            student_id=record.student_id,
            session_id=record.session_id,
            recorded_at=record.recorded_at,
            recorded_by=record.recorded_by,
        )


class AuditAction(str, Enum):
    ADD = "ADD"
    EDIT = "EDIT"
    REMOVE = "REMOVE"  # reserved, no operation produces it


class FieldChange(BaseModel):
    field: str
    old_value: Any
    new_value: Any

    model_config = ConfigDict(frozen=True)


class NewAuditEntry(BaseModel):
    """An audit entry before the store has assigned its id."""
    record_id: UUID
    operator: str
    occurred_at: datetime
    action: AuditAction
    field_changes: Tuple[FieldChange, ...] = ()
    before: Optional[RecordSnapshot] = None
    after: Optional[RecordSnapshot] = None

    model_config = ConfigDict(frozen=True)


class AuditEntry(NewAuditEntry):
    """
    Represents one immutable entry of the audit trail, mapping to the
    'AuditEntries' table. Entries are appended, never updated or deleted.
    """
    id: UUID = Field(..., description="Assigned by the store on append")

    @property
    def subject(self) -> Optional[RecordSnapshot]:
        """The snapshot queries filter on: 'after' when present, otherwise 'before'."""
        return self.after if self.after is not None else self.before
