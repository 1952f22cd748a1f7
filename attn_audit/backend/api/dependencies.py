# attn_audit/backend/api/dependencies.py
from fastapi import Request, Depends

from ..db.store import AttendanceStore
from ..services.attendance_service import AttendanceService
from ..services.audit_service import AuditService


def get_store(request: Request) -> AttendanceStore:
    """
    Returns the store created at startup (PostgreSQL or in-memory) from the app state.
    """
    return request.app.state.store


def get_attendance_service(store: AttendanceStore = Depends(get_store)) -> AttendanceService:
    """
    Builds a fresh AttendanceService for every request on top of the shared
    store, so no service state outlives a request.
    """
    return AttendanceService(store=store)


def get_audit_service(store: AttendanceStore = Depends(get_store)) -> AuditService:
    return AuditService(store=store)
