import asyncio
import itertools
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from ..models.db_models import AttendanceRecord, AttendanceCreate, AuditEntry, NewAuditEntry
from .store import UniqueConstraintViolation


class InMemoryUnitOfWork:
    """
    Stages writes on a private copy of the records and a private list of audit
    entries. InMemoryStore publishes both only when the transaction commits.
    """

    def __init__(self, records: Dict[UUID, AttendanceRecord], sequence: "itertools.count[int]"):
        self.records = records
        self.audit_entries: List[Tuple[int, AuditEntry]] = []
        self._sequence = sequence

    def _check_unique(self, student_id: str, session_id: str, exclude_id: Optional[UUID] = None):
        for existing in self.records.values():
            if existing.id == exclude_id:
                continue
            if existing.student_id == student_id and existing.session_id == session_id:
                raise UniqueConstraintViolation(
                    f"Attendance for student '{student_id}' in session '{session_id}' already exists."
                )

    async def insert_record(self, data: AttendanceCreate) -> AttendanceRecord:
        self._check_unique(data.student_id, data.session_id)
        record = AttendanceRecord(
            id=uuid4(),
            student_id=data.student_id,
            session_id=data.session_id,
            recorded_at=data.recorded_at or datetime.now(timezone.utc),
            recorded_by=data.recorded_by,
        )
        self.records[record.id] = record
        return record

    async def get_record_for_update(self, record_id: UUID) -> Optional[AttendanceRecord]:
        return self.records.get(record_id)

    async def update_record(self, record: AttendanceRecord) -> AttendanceRecord:
        self._check_unique(record.student_id, record.session_id, exclude_id=record.id)
        self.records[record.id] = record
        return record

    async def append_audit_entry(self, entry: NewAuditEntry) -> AuditEntry:
        stored = AuditEntry(id=uuid4(), **entry.model_dump())
        self.audit_entries.append((next(self._sequence), stored))
        return stored


class InMemoryStore:
    """
    Process-local attendance store. Units of work are serialised by a single
    asyncio lock, which gives the same all-or-nothing and uniqueness behaviour
    the PostgreSQL store gets from its transactions.
    """

    def __init__(self):
        self._records: Dict[UUID, AttendanceRecord] = {}
        self._audit: List[Tuple[int, AuditEntry]] = []
        self._sequence = itertools.count(1)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryUnitOfWork]:
        async with self._lock:
            unit = InMemoryUnitOfWork(dict(self._records), self._sequence)
            yield unit
            # Not reached when the block raised: the staged writes are dropped.
            self._records = unit.records
            self._audit.extend(unit.audit_entries)

    async def get_record(self, record_id: UUID) -> Optional[AttendanceRecord]:
        return self._records.get(record_id)

    async def get_record_by_key(self, student_id: str, session_id: str) -> Optional[AttendanceRecord]:
        for record in self._records.values():
            if record.student_id == student_id and record.session_id == session_id:
                return record
        return None

    async def list_records(self) -> List[AttendanceRecord]:
        return sorted(self._records.values(), key=lambda r: (r.recorded_at, r.id))

    async def list_audit_entries(
        self,
        *,
        student_id: Optional[str] = None,
        session_id: Optional[str] = None,
        record_id: Optional[UUID] = None,
        operator: Optional[str] = None,
    ) -> List[AuditEntry]:
        matches = []
        for seq, entry in self._audit:
            subject = entry.subject
            if student_id is not None and (subject is None or subject.student_id != student_id):
                continue
            if session_id is not None and (subject is None or subject.session_id != session_id):
                continue
            if record_id is not None and entry.record_id != record_id:
                continue
            if operator is not None and entry.operator != operator:
                continue
            matches.append((entry.occurred_at, seq, entry))
        matches.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [entry for _, _, entry in matches]
