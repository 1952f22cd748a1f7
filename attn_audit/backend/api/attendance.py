from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from typing import List

from ..services.attendance_service import AttendanceService
from ..config.config import settings
from .schemas.attendance import AttendanceCreateRequest, AttendanceUpdateRequest, AttendanceResponse
from .schemas.error import ErrorResponse
from .dependencies import get_attendance_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/attendance", tags=["Attendance Endpoints"])

NOT_FOUND_DETAIL = "Attendance record not found."

# DuplicateRecordError and InvalidInputError are mapped to 409 / 400 by the handler registered in main.

@router.post(
    "",
    response_model=AttendanceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Take a student's attendance for a session",
)
@limiter.limit(settings.WRITE_RATE_LIMIT)
async def create_attendance(request: Request, create_request: AttendanceCreateRequest, service: AttendanceService = Depends(get_attendance_service)):
    # Whoever takes the attendance is also the operator of the ADD entry.
    return await service.create(create_request.to_domain(), operator=create_request.recorded_by)

@router.get("", response_model=List[AttendanceResponse], summary="List all attendance records")
@limiter.limit(settings.READ_RATE_LIMIT)
async def list_attendance(request: Request, service: AttendanceService = Depends(get_attendance_service)):
    return await service.find_all()

@router.get("/lookup", response_model=AttendanceResponse, summary="Find the record of a student in a session")
@limiter.limit(settings.READ_RATE_LIMIT)
async def lookup_attendance(
    request: Request,
    student_id: str = Query(..., min_length=1),
    session_id: str = Query(..., min_length=1),
    service: AttendanceService = Depends(get_attendance_service),
):
    record = await service.find_by_key(student_id, session_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return record

@router.get("/{record_id}", response_model=AttendanceResponse, summary="Get one attendance record")
@limiter.limit(settings.READ_RATE_LIMIT)
async def get_attendance(request: Request, record_id: str, service: AttendanceService = Depends(get_attendance_service)):
    record = await service.find_by_id(record_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return record

@router.patch(
    "/{record_id}",
    response_model=AttendanceResponse,
    responses={409: {"model": ErrorResponse}},
    summary="Correct fields of an attendance record",
)
@limiter.limit(settings.WRITE_RATE_LIMIT)
async def update_attendance(request: Request, record_id: str, update_request: AttendanceUpdateRequest, service: AttendanceService = Depends(get_attendance_service)):
    updated = await service.update(record_id, update_request.to_domain(), operator=update_request.operator)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return updated
