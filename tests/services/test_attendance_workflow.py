"""
End-to-end behaviour of the attendance and audit services over the in-memory
store: atomicity, uniqueness, idempotent edits and audit ordering.
"""
import asyncio
import pytest
import pytest_asyncio
from datetime import datetime, timezone
from unittest.mock import patch

from attn_audit.backend.db.memory_store import InMemoryStore, InMemoryUnitOfWork
from attn_audit.backend.db.store import StoreError
from attn_audit.backend.models.db_models import AttendanceCreate, AttendanceUpdate, AuditAction
from attn_audit.backend.services.attendance_service import AttendanceService
from attn_audit.backend.services.audit_service import AuditService
from attn_audit.backend.services.errors import DuplicateRecordError
from tests.factories import TickingClock


@pytest_asyncio.fixture
async def services():
    store = InMemoryStore()
    return AttendanceService(store=store, clock=TickingClock()), AuditService(store=store)

def new_attendance(student_id="12345678", session_id="20251001", recorded_by="instructor1") -> AttendanceCreate:
    return AttendanceCreate(student_id=student_id, session_id=session_id, recorded_by=recorded_by)


@pytest.mark.asyncio
async def test_create_then_audit_shows_one_add_entry(services):
    attendance, audit = services

    record = await attendance.create(new_attendance(), operator="instructor1")

    assert record.id is not None
    assert record.recorded_at is not None
    entries = await audit.list_all()
    assert len(entries) == 1
    assert entries[0].action == AuditAction.ADD
    assert entries[0].record_id == record.id
    assert entries[0].after.student_id == "12345678"
    assert entries[0].before is None

@pytest.mark.asyncio
async def test_second_create_for_same_key_fails_and_leaves_audit_unchanged(services):
    attendance, audit = services
    await attendance.create(new_attendance(), operator="instructor1")

    with pytest.raises(DuplicateRecordError):
        await attendance.create(new_attendance(recorded_by="instructor2"), operator="instructor2")

    assert len(await attendance.find_all()) == 1
    assert len(await audit.list_all()) == 1

@pytest.mark.asyncio
async def test_concurrent_creates_for_same_key_only_one_succeeds(services):
    attendance, audit = services

    results = await asyncio.gather(
        *(attendance.create(new_attendance(recorded_by=f"scanner{i}"), operator=f"scanner{i}") for i in range(5)),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert sum(1 for r in results if isinstance(r, DuplicateRecordError)) == 4
    assert len(await audit.list_all()) == 1

@pytest.mark.asyncio
async def test_failed_audit_write_rolls_back_the_record(services):
    attendance, audit = services

    with patch.object(InMemoryUnitOfWork, "append_audit_entry", side_effect=StoreError("audit store down")):
        with pytest.raises(StoreError):
            await attendance.create(new_attendance(), operator="instructor1")

    assert await attendance.find_by_key("12345678", "20251001") is None
    assert await audit.list_all() == []

@pytest.mark.asyncio
async def test_failed_audit_write_rolls_back_the_edit(services):
    attendance, audit = services
    record = await attendance.create(new_attendance(), operator="instructor1")

    with patch.object(InMemoryUnitOfWork, "append_audit_entry", side_effect=StoreError("audit store down")):
        with pytest.raises(StoreError):
            await attendance.update(record.id, AttendanceUpdate(session_id="20251002"), operator="Jack")

    assert (await attendance.find_by_id(record.id)).session_id == "20251001"
    assert await attendance.find_by_key("12345678", "20251002") is None
    assert [e.action for e in await audit.list_all()] == [AuditAction.ADD]

@pytest.mark.asyncio
async def test_edit_session_records_one_change_and_repeat_is_a_no_op(services):
    attendance, audit = services
    record = await attendance.create(new_attendance(), operator="instructor1")

    updated = await attendance.update(record.id, AttendanceUpdate(session_id="20251002"), operator="Jack")

    assert updated.session_id == "20251002"
    assert updated.recorded_at == record.recorded_at
    assert updated.recorded_by == "instructor1"
    edits = [e for e in await audit.list_all() if e.action == AuditAction.EDIT]
    assert len(edits) == 1
    assert edits[0].operator == "Jack"
    assert [(c.field, c.old_value, c.new_value) for c in edits[0].field_changes] == [("session_id", "20251001", "20251002")]
    assert edits[0].before.session_id == "20251001"
    assert edits[0].after.session_id == "20251002"

    again = await attendance.update(record.id, AttendanceUpdate(session_id="20251002"), operator="Jack")

    assert again == updated
    assert len(await audit.list_all()) == 2

@pytest.mark.asyncio
async def test_update_of_nonexistent_id_returns_none_without_audit(services):
    attendance, audit = services

    assert await attendance.update("nonexistent-id", AttendanceUpdate(session_id="x"), operator="Jack") is None
    assert await audit.list_all() == []

@pytest.mark.asyncio
async def test_update_onto_a_taken_key_fails_and_keeps_both_records(services):
    attendance, audit = services
    first = await attendance.create(new_attendance(session_id="20251001"), operator="instructor1")
    await attendance.create(new_attendance(session_id="20251002"), operator="instructor1")

    with pytest.raises(DuplicateRecordError):
        await attendance.update(first.id, AttendanceUpdate(session_id="20251002"), operator="Jack")

    assert (await attendance.find_by_id(first.id)).session_id == "20251001"
    assert len(await audit.list_all()) == 2

@pytest.mark.asyncio
async def test_explicit_recorded_at_change_is_audited(services):
    attendance, audit = services
    record = await attendance.create(new_attendance(), operator="instructor1")
    corrected = datetime(2025, 10, 1, 8, 30, tzinfo=timezone.utc)

    await attendance.update(record.id, AttendanceUpdate(recorded_at=corrected), operator="admin")

    history = await audit.list_by_record(record.id)
    assert history[0].field_changes[0].field == "recorded_at"
    assert history[0].field_changes[0].old_value == record.recorded_at
    assert history[0].field_changes[0].new_value == corrected

@pytest.mark.asyncio
async def test_student_history_is_newest_first(services):
    attendance, audit = services
    record = await attendance.create(new_attendance(), operator="instructor1")
    await attendance.update(record.id, AttendanceUpdate(session_id="20251002"), operator="Jack")
    await attendance.create(new_attendance(student_id="99999999"), operator="instructor1")

    history = await audit.list_by_student("12345678")

    assert [e.action for e in history] == [AuditAction.EDIT, AuditAction.ADD]
    assert history[0].occurred_at > history[1].occurred_at

@pytest.mark.asyncio
async def test_list_all_is_non_increasing_in_time(services):
    attendance, audit = services
    for i in range(4):
        record = await attendance.create(new_attendance(student_id=f"S{i}"), operator="instructor1")
        await attendance.update(record.id, AttendanceUpdate(recorded_by=f"assistant{i}"), operator="admin")

    entries = await audit.list_all()

    assert len(entries) == 8
    assert all(a.occurred_at >= b.occurred_at for a, b in zip(entries, entries[1:]))

@pytest.mark.asyncio
async def test_same_instant_entries_come_back_in_reverse_insertion_order():
    store = InMemoryStore()
    frozen = datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)
    attendance = AttendanceService(store=store, clock=lambda: frozen)
    audit = AuditService(store=store)

    first = await attendance.create(new_attendance(student_id="A"), operator="instructor1")
    second = await attendance.create(new_attendance(student_id="B"), operator="instructor1")

    assert [e.record_id for e in await audit.list_all()] == [second.id, first.id]

@pytest.mark.asyncio
async def test_session_history_follows_the_record_after_a_move(services):
    attendance, audit = services
    record = await attendance.create(new_attendance(session_id="20251001"), operator="instructor1")
    await attendance.update(record.id, AttendanceUpdate(session_id="20251002"), operator="Jack")

    assert [e.action for e in await audit.list_by_session("20251002")] == [AuditAction.EDIT]
    assert [e.action for e in await audit.list_by_session("20251001")] == [AuditAction.ADD]
    assert [e.action for e in await audit.list_by_operator("Jack")] == [AuditAction.EDIT]
