# attn_audit/backend/db/store.py
from typing import AsyncContextManager, List, Optional, Protocol
from uuid import UUID

from ..models.db_models import AttendanceRecord, AttendanceCreate, AuditEntry, NewAuditEntry


class StoreError(Exception):
    """Any failure of the underlying store that is not a named condition."""
    pass

class UniqueConstraintViolation(StoreError):
    """Raised when a write would break the (student_id, session_id) uniqueness."""
    pass


class UnitOfWork(Protocol):
    """
    Writes that belong to one atomic transaction. Everything done through a
    unit of work is committed together when its transaction() block exits
    normally and discarded when it exits with an exception.
    """

    async def insert_record(self, data: AttendanceCreate) -> AttendanceRecord:
        ...

    async def get_record_for_update(self, record_id: UUID) -> Optional[AttendanceRecord]:
        ...

    async def update_record(self, record: AttendanceRecord) -> AttendanceRecord:
        ...

    async def append_audit_entry(self, entry: NewAuditEntry) -> AuditEntry:
        ...


class AttendanceStore(Protocol):
    """
    What the services need from persistence: unique-key enforced inserts,
    lookups and multi-document transactions with full rollback.
    """

    def transaction(self) -> AsyncContextManager[UnitOfWork]:
        ...

    async def get_record(self, record_id: UUID) -> Optional[AttendanceRecord]:
        ...

    async def get_record_by_key(self, student_id: str, session_id: str) -> Optional[AttendanceRecord]:
        ...

    async def list_records(self) -> List[AttendanceRecord]:
        ...

    async def list_audit_entries(
        self,
        *,
        student_id: Optional[str] = None,
        session_id: Optional[str] = None,
        record_id: Optional[UUID] = None,
        operator: Optional[str] = None,
    ) -> List[AuditEntry]:
        """Matching entries, newest first (occurred_at desc, then insertion order desc)."""
        ...
