from fastapi import APIRouter, Depends, Request
from typing import List

from ..services.audit_service import AuditService
from ..config.config import settings
from .schemas.audit import AuditEntryResponse
from .dependencies import get_audit_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/logs", tags=["Audit Log Endpoints"])

@router.get("", response_model=List[AuditEntryResponse], summary="List the whole audit trail, newest first")
@limiter.limit(settings.READ_RATE_LIMIT)
async def list_logs(request: Request, service: AuditService = Depends(get_audit_service)):
    return await service.list_all()

@router.get("/student/{student_id}", response_model=List[AuditEntryResponse], summary="Audit entries concerning one student")
@limiter.limit(settings.READ_RATE_LIMIT)
async def list_logs_by_student(request: Request, student_id: str, service: AuditService = Depends(get_audit_service)):
    return await service.list_by_student(student_id)

@router.get("/session/{session_id}", response_model=List[AuditEntryResponse], summary="Audit entries concerning one session")
@limiter.limit(settings.READ_RATE_LIMIT)
async def list_logs_by_session(request: Request, session_id: str, service: AuditService = Depends(get_audit_service)):
    return await service.list_by_session(session_id)

@router.get("/record/{record_id}", response_model=List[AuditEntryResponse], summary="History of one attendance record")
@limiter.limit(settings.READ_RATE_LIMIT)
async def list_logs_by_record(request: Request, record_id: str, service: AuditService = Depends(get_audit_service)):
    return await service.list_by_record(record_id)

@router.get("/operator/{operator}", response_model=List[AuditEntryResponse], summary="Audit entries written by one operator")
@limiter.limit(settings.READ_RATE_LIMIT)
async def list_logs_by_operator(request: Request, operator: str, service: AuditService = Depends(get_audit_service)):
    return await service.list_by_operator(operator)
