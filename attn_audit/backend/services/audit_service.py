import logging
from typing import List, Union
from uuid import UUID

from ..db.store import AttendanceStore
from ..models.db_models import AuditEntry
from .attendance_service import parse_record_id

logger = logging.getLogger(__name__)


class AuditService:
    """
    Read-only access to the audit trail. Every list is newest first; entries
    written at the same instant come back in reverse insertion order.
    """
    def __init__(self, store: AttendanceStore):
        self.store = store

    async def list_all(self) -> List[AuditEntry]:
        return await self.store.list_audit_entries()

    async def list_by_student(self, student_id: str) -> List[AuditEntry]:
        return await self.store.list_audit_entries(student_id=student_id)

    async def list_by_session(self, session_id: str) -> List[AuditEntry]:
        return await self.store.list_audit_entries(session_id=session_id)

    async def list_by_record(self, record_id: Union[UUID, str]) -> List[AuditEntry]:
        parsed_id = parse_record_id(record_id)
        if parsed_id is None:
            logger.warning(f"Audit history requested for malformed attendance id '{record_id}'.")
            return []
        return await self.store.list_audit_entries(record_id=parsed_id)

    async def list_by_operator(self, operator: str) -> List[AuditEntry]:
        return await self.store.list_audit_entries(operator=operator)
