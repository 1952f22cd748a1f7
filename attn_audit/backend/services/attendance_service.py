import logging
from typing import Callable, List, Optional, Union
from uuid import UUID
from datetime import datetime, timezone

# --- Required store abstraction and models ---
from ..db.store import AttendanceStore, StoreError, UniqueConstraintViolation
from ..models.db_models import (
    AttendanceRecord,
    AttendanceCreate,
    AttendanceUpdate,
    AuditAction,
    NewAuditEntry,
    RecordSnapshot,
)
from .diff import as_utc, compute_field_changes
from .errors import DuplicateRecordError, InvalidInputError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def parse_record_id(record_id: Union[UUID, str]) -> Optional[UUID]:
    """Returns None for identifiers that cannot name any record."""
    if isinstance(record_id, UUID):
        return record_id
    try:
        return UUID(str(record_id))
    except ValueError:
        return None

def _require_text(**values: Optional[str]):
    for name, value in values.items():
        if value is not None and not value.strip():
            raise InvalidInputError(f"'{name}' must not be empty.")


class AttendanceService:
    """
    Service layer for attendance records. Every create and every effective
    update is written together with its audit entry in one unit of work.

    Edits are partial: only the fields set on the AttendanceUpdate are compared
    and written. The operator goes into the audit entry and never replaces
    recorded_by on its own.
    """
    def __init__(self, store: AttendanceStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def create(self, data: AttendanceCreate, operator: str) -> AttendanceRecord:
        _require_text(student_id=data.student_id, session_id=data.session_id, recorded_by=data.recorded_by, operator=operator)
        if data.recorded_at is not None:
            data = data.model_copy(update={"recorded_at": as_utc(data.recorded_at)})

        try:
            async with self.store.transaction() as unit:
                record = await unit.insert_record(data)
                await unit.append_audit_entry(NewAuditEntry(
                    record_id=record.id,
                    operator=operator,
                    occurred_at=self.clock(),
                    action=AuditAction.ADD,
                    field_changes=(),
                    before=None,
                    after=RecordSnapshot.of(record),
                ))
        except UniqueConstraintViolation as e:
            logger.warning(f"Duplicate attendance for student '{data.student_id}' in session '{data.session_id}'.")
            raise DuplicateRecordError("This student's attendance has already been taken for this session.") from e
        except StoreError:
            logger.error(f"Store error while creating attendance for student '{data.student_id}'.", exc_info=True)
            raise

        logger.info(f"Attendance {record.id} created for student '{record.student_id}' in session '{record.session_id}' by '{operator}'.")
        return record

    async def update(self, record_id: Union[UUID, str], changes: AttendanceUpdate, operator: str) -> Optional[AttendanceRecord]:
        """
        Applies the supplied fields. Returns None when the record does not exist
        and the unchanged record when nothing actually differs; neither case
        writes an audit entry.
        """
        _require_text(operator=operator)
        incoming = {field: value for field, value in changes.model_dump(exclude_unset=True).items() if value is not None}
        _require_text(
            student_id=incoming.get("student_id"),
            session_id=incoming.get("session_id"),
            recorded_by=incoming.get("recorded_by"),
        )
        if "recorded_at" in incoming:
            incoming["recorded_at"] = as_utc(incoming["recorded_at"])

        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            logger.warning(f"Update requested for malformed attendance id '{record_id}'.")
            return None

        try:
            async with self.store.transaction() as unit:
                existing = await unit.get_record_for_update(parsed_id)
                if existing is None:
                    logger.warning(f"Update requested for unknown attendance {parsed_id}.")
                    return None

                field_changes = compute_field_changes(existing, incoming)
                if not field_changes:
                    logger.info(f"Update of attendance {parsed_id} by '{operator}' changed nothing; skipped.")
                    return existing

                updated = await unit.update_record(existing.model_copy(update=incoming))
                await unit.append_audit_entry(NewAuditEntry(
                    record_id=updated.id,
                    operator=operator,
                    occurred_at=self.clock(),
                    action=AuditAction.EDIT,
                    field_changes=field_changes,
                    before=RecordSnapshot.of(existing),
                    after=RecordSnapshot.of(updated),
                ))
        except UniqueConstraintViolation as e:
            logger.warning(f"Update of attendance {parsed_id} would duplicate an existing student/session pair.")
            raise DuplicateRecordError("This student's attendance has already been taken for this session.") from e
        except StoreError:
            logger.error(f"Store error while updating attendance {parsed_id}.", exc_info=True)
            raise

        logger.info(f"Attendance {parsed_id} updated by '{operator}': {', '.join(c.field for c in field_changes)}.")
        return updated

    async def find_by_id(self, record_id: Union[UUID, str]) -> Optional[AttendanceRecord]:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            return None
        return await self.store.get_record(parsed_id)

    async def find_by_key(self, student_id: str, session_id: str) -> Optional[AttendanceRecord]:
        return await self.store.get_record_by_key(student_id, session_id)

    async def find_all(self) -> List[AttendanceRecord]:
        return await self.store.list_records()
