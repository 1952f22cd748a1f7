from pydantic import BaseModel, Field, ConfigDict, field_validator
from uuid import UUID
from datetime import datetime
from typing import Optional

from ...models.db_models import AttendanceCreate, AttendanceUpdate


def _not_blank(v):
    if isinstance(v, str) and not v.strip():
        raise ValueError("Must not be blank.")
    return v


class AttendanceCreateRequest(BaseModel):
    """Request model for taking a student's attendance."""
    student_id: str = Field(..., min_length=1, description="The student's UIN, e.g. '12345678'.")
    session_id: str = Field(..., min_length=1, description="The session / date key, e.g. '20251001'.")
    recorded_at: Optional[datetime] = Field(None, description="When attendance was taken. Defaults to now.")
    recorded_by: str = Field(..., min_length=1, description="Who took the attendance. Also recorded as the operator.")

    @field_validator("student_id", "session_id", "recorded_by")
    @classmethod
    def reject_blank(cls, v):
        return _not_blank(v)

    def to_domain(self) -> AttendanceCreate:
        return AttendanceCreate(**self.model_dump())


class AttendanceUpdateRequest(BaseModel):
    """
    Request model for correcting a record. Only the fields present in the
    body are changed; 'operator' is who makes the correction.
    """
    operator: str = Field(..., min_length=1, description="Who performs this edit.")
    student_id: Optional[str] = Field(None, min_length=1)
    session_id: Optional[str] = Field(None, min_length=1)
    recorded_at: Optional[datetime] = None
    recorded_by: Optional[str] = Field(None, min_length=1)

    @field_validator("operator", "student_id", "session_id", "recorded_by")
    @classmethod
    def reject_blank(cls, v):
        return _not_blank(v)

    def to_domain(self) -> AttendanceUpdate:
        supplied = self.model_dump(exclude_unset=True, exclude={"operator"})
        return AttendanceUpdate(**supplied)


class AttendanceResponse(BaseModel):
    """Response model for an attendance record."""
    id: UUID
    student_id: str
    session_id: str
    recorded_at: datetime
    recorded_by: str

    model_config = ConfigDict(from_attributes=True)
