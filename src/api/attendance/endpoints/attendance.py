from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from src.api.common.dependencies import get_provider_id
from src.api.common.errors import BillingError, to_http_exception
from src.api.common.utils.database import get_db
from src.api.attendance.schemas.attendance import (
    AttendanceCreate, AttendanceRead, AttendanceUpdate, AttendanceVoid)
from src.api.attendance.services.attendance_service import AttendanceService

router = APIRouter(prefix="/attendance", tags=["attendance"])


def get_attendance_service(db: Session = Depends(get_db)):
    return AttendanceService(db)


@router.post("/", response_model=AttendanceRead)
def create_attendance(
    attendance_data: AttendanceCreate,
    provider_id: int = Depends(get_provider_id),
    attendance_service: AttendanceService = Depends(get_attendance_service)
):
    """Record attendance; the contract's invoices are recomputed"""
    try:
        return attendance_service.create_attendance(provider_id, attendance_data)
    except BillingError as e:
        raise to_http_exception(e)


@router.get("/", response_model=List[AttendanceRead])
def get_attendance_records(
    contract_id: Optional[int] = None,
    client_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    include_voided: bool = True,
    skip: int = 0,
    limit: int = 100,
    provider_id: int = Depends(get_provider_id),
    attendance_service: AttendanceService = Depends(get_attendance_service)
):
    """Get attendance records, optionally filtered by contract, client and date range"""
    return attendance_service.get_attendance_records(
        provider_id, contract_id, client_id, start, end, include_voided, skip, limit)


@router.get("/{attendance_id}", response_model=AttendanceRead)
def get_attendance(
    attendance_id: int,
    provider_id: int = Depends(get_provider_id),
    attendance_service: AttendanceService = Depends(get_attendance_service)
):
    """Get an attendance record by ID"""
    record = attendance_service.get_attendance(provider_id, attendance_id)
    if not record:
        raise HTTPException(status_code=404, detail="Attendance record not found")
    return record


@router.patch("/{attendance_id}", response_model=AttendanceRead)
def update_attendance(
    attendance_id: int,
    attendance_data: AttendanceUpdate,
    provider_id: int = Depends(get_provider_id),
    attendance_service: AttendanceService = Depends(get_attendance_service)
):
    """Correct an attendance record"""
    try:
        return attendance_service.update_attendance(provider_id, attendance_id, attendance_data)
    except BillingError as e:
        raise to_http_exception(e)


@router.post("/{attendance_id}/void", response_model=AttendanceRead)
def void_attendance(
    attendance_id: int,
    void_data: AttendanceVoid,
    provider_id: int = Depends(get_provider_id),
    attendance_service: AttendanceService = Depends(get_attendance_service)
):
    """Void an attendance record"""
    try:
        return attendance_service.void_attendance(provider_id, attendance_id, void_data)
    except BillingError as e:
        raise to_http_exception(e)
