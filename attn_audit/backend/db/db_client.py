import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional
from uuid import UUID
import asyncpg
from pydantic import TypeAdapter
from ..models.db_models import AttendanceRecord, AttendanceCreate, AuditEntry, FieldChange, NewAuditEntry
from .store import StoreError, UniqueConstraintViolation

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS AttendanceRecords (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        student_id TEXT NOT NULL CHECK (student_id <> ''),
        session_id TEXT NOT NULL CHECK (session_id <> ''),
        recorded_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        recorded_by TEXT NOT NULL CHECK (recorded_by <> ''),
        CONSTRAINT attendance_student_session_key UNIQUE (student_id, session_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS AuditEntries (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        seq BIGSERIAL NOT NULL,
        record_id UUID NOT NULL,
        operator TEXT NOT NULL,
        occurred_at TIMESTAMPTZ NOT NULL,
        action TEXT NOT NULL CHECK (action IN ('ADD', 'EDIT', 'REMOVE')),
        field_changes JSONB NOT NULL DEFAULT '[]'::jsonb,
        before_snapshot JSONB,
        after_snapshot JSONB
    );
    """,
    "CREATE INDEX IF NOT EXISTS audit_occurred_idx ON AuditEntries (occurred_at DESC, seq DESC);",
    "CREATE INDEX IF NOT EXISTS audit_record_idx ON AuditEntries (record_id, occurred_at DESC);",
    "CREATE INDEX IF NOT EXISTS audit_operator_idx ON AuditEntries (operator, occurred_at DESC);",
    """
    CREATE INDEX IF NOT EXISTS audit_student_idx
        ON AuditEntries ((COALESCE(after_snapshot->>'student_id', before_snapshot->>'student_id')), occurred_at DESC);
    """,
    """
    CREATE INDEX IF NOT EXISTS audit_session_idx
        ON AuditEntries ((COALESCE(after_snapshot->>'session_id', before_snapshot->>'session_id')), occurred_at DESC);
    """,
]

# Audit rows are append-only: nothing in this module issues UPDATE or DELETE on AuditEntries.
_AUDIT_COLUMNS = "id, record_id, operator, occurred_at, action, field_changes, before_snapshot, after_snapshot"

# Field changes whose old and new values are datetimes.
DATETIME_FIELDS = ("recorded_at",)
_DATETIME = TypeAdapter(datetime)


def _to_record(row: asyncpg.Record) -> AttendanceRecord:
    return AttendanceRecord(**dict(row))

def _load_json(value):
    return json.loads(value) if isinstance(value, str) else value

def _to_field_change(raw: dict) -> FieldChange:
    """JSONB keeps datetimes as ISO strings; turn them back into datetimes."""
    if raw["field"] in DATETIME_FIELDS:
        raw = {
            **raw,
            "old_value": _DATETIME.validate_python(raw["old_value"]),
            "new_value": _DATETIME.validate_python(raw["new_value"]),
        }
    return FieldChange(**raw)

def _to_audit_entry(row: asyncpg.Record) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        record_id=row["record_id"],
        operator=row["operator"],
        occurred_at=row["occurred_at"],
        action=row["action"],
        field_changes=[_to_field_change(raw) for raw in _load_json(row["field_changes"]) or []],
        before=_load_json(row["before_snapshot"]),
        after=_load_json(row["after_snapshot"]),
    )


class PostgresUnitOfWork:
    """Writes bound to one connection inside an open transaction."""

    def __init__(self, connection: asyncpg.Connection):
        self._connection = connection

    async def insert_record(self, data: AttendanceCreate) -> AttendanceRecord:
        query = """
            INSERT INTO AttendanceRecords (student_id, session_id, recorded_at, recorded_by)
            VALUES ($1, $2, $3, $4)
            RETURNING *;
        """
        recorded_at = data.recorded_at or datetime.now(timezone.utc)
        try:
            row = await self._connection.fetchrow(query, data.student_id, data.session_id, recorded_at, data.recorded_by)
        except asyncpg.exceptions.UniqueViolationError as e:
            raise UniqueConstraintViolation(
                f"Attendance for student '{data.student_id}' in session '{data.session_id}' already exists."
            ) from e
        return _to_record(row)

    async def get_record_for_update(self, record_id: UUID) -> Optional[AttendanceRecord]:
        """Loads a record and locks its row until the transaction ends."""
        query = "SELECT * FROM AttendanceRecords WHERE id = $1 FOR UPDATE;"
        row = await self._connection.fetchrow(query, record_id)
        return _to_record(row) if row else None

    async def update_record(self, record: AttendanceRecord) -> AttendanceRecord:
        query = """
            UPDATE AttendanceRecords
            SET student_id = $2,
                session_id = $3,
                recorded_at = $4,
                recorded_by = $5
            WHERE id = $1
            RETURNING *;
        """
        try:
            row = await self._connection.fetchrow(
                query, record.id, record.student_id, record.session_id, record.recorded_at, record.recorded_by
            )
        except asyncpg.exceptions.UniqueViolationError as e:
            raise UniqueConstraintViolation(
                f"Attendance for student '{record.student_id}' in session '{record.session_id}' already exists."
            ) from e
        if row is None:
            raise StoreError(f"Attendance record {record.id} disappeared during the transaction.")
        return _to_record(row)

    async def append_audit_entry(self, entry: NewAuditEntry) -> AuditEntry:
        query = f"""
            INSERT INTO AuditEntries (record_id, operator, occurred_at, action, field_changes, before_snapshot, after_snapshot)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6::jsonb, $7::jsonb)
            RETURNING {_AUDIT_COLUMNS};
        """
        row = await self._connection.fetchrow(
            query,
            entry.record_id,
            entry.operator,
            entry.occurred_at,
            entry.action.value,
            json.dumps([change.model_dump(mode="json") for change in entry.field_changes]),
            entry.before.model_dump_json() if entry.before else None,
            entry.after.model_dump_json() if entry.after else None,
        )
        return _to_audit_entry(row)


class AsyncPostgresClient:
    """
    PostgreSQL implementation of the attendance store. Record and audit writes
    share one connection and one transaction per unit of work.
    """
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def ensure_schema(self):
        """Creates the tables, the uniqueness constraint and the audit indexes if missing."""
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                for statement in SCHEMA_STATEMENTS:
                    await connection.execute(statement)
        logger.info("PostgreSQL schema is ready.")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresUnitOfWork]:
        try:
            async with self._pool.acquire() as connection:
                async with connection.transaction():
                    yield PostgresUnitOfWork(connection)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise StoreError(f"Transaction aborted: {e}") from e

    async def get_record(self, record_id: UUID) -> Optional[AttendanceRecord]:
        query = "SELECT * FROM AttendanceRecords WHERE id = $1;"
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(query, record_id)
            return _to_record(row) if row else None

    async def get_record_by_key(self, student_id: str, session_id: str) -> Optional[AttendanceRecord]:
        query = "SELECT * FROM AttendanceRecords WHERE student_id = $1 AND session_id = $2;"
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(query, student_id, session_id)
            return _to_record(row) if row else None

    async def list_records(self) -> List[AttendanceRecord]:
        query = "SELECT * FROM AttendanceRecords ORDER BY recorded_at, id;"
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(query)
            return [_to_record(row) for row in rows]

    async def list_audit_entries(
        self,
        *,
        student_id: Optional[str] = None,
        session_id: Optional[str] = None,
        record_id: Optional[UUID] = None,
        operator: Optional[str] = None,
    ) -> List[AuditEntry]:
        conditions = []
        args = []
        if student_id is not None:
            args.append(student_id)
            conditions.append(f"COALESCE(after_snapshot->>'student_id', before_snapshot->>'student_id') = ${len(args)}")
        if session_id is not None:
            args.append(session_id)
            conditions.append(f"COALESCE(after_snapshot->>'session_id', before_snapshot->>'session_id') = ${len(args)}")
        if record_id is not None:
            args.append(record_id)
            conditions.append(f"record_id = ${len(args)}")
        if operator is not None:
            args.append(operator)
            conditions.append(f"operator = ${len(args)}")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"SELECT {_AUDIT_COLUMNS} FROM AuditEntries {where} ORDER BY occurred_at DESC, seq DESC;"
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(query, *args)
            return [_to_audit_entry(row) for row in rows]
