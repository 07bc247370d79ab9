from typing import Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator
from src.api.common.constants.billing import AttendanceStatus


class AttendanceBase(BaseModel):
    """Base schema for attendance data"""
    status: AttendanceStatus
    substitute_at: Optional[datetime] = None
    memo_public: Optional[str] = None
    memo_internal: Optional[str] = None

    class Config:
        from_attributes = True


class AttendanceCreate(AttendanceBase):
    """Schema for recording attendance against a contract"""
    contract_id: int
    occurred_at: datetime
    # Consumed amount, required by amount-based contracts
    amount: Optional[Decimal] = Field(default=None, gt=0)
    recorded_by: Optional[str] = None


class AttendanceUpdate(BaseModel):
    """Schema for correcting a non-voided attendance record"""
    status: Optional[AttendanceStatus] = None
    substitute_at: Optional[datetime] = None
    memo_public: Optional[str] = None
    memo_internal: Optional[str] = None
    change_reason: Optional[str] = None
    modified_by: Optional[str] = None


class AttendanceVoid(BaseModel):
    """Schema for voiding an attendance record"""
    void_reason: str
    modified_by: Optional[str] = None

    @field_validator('void_reason')
    def validate_void_reason(cls, v):
        """Validate that the reason is not empty"""
        if not v or not v.strip():
            raise ValueError("Void reason cannot be empty")
        return v.strip()


class AttendanceRead(AttendanceBase):
    """Schema for reading attendance data"""
    id: int
    contract_id: int
    occurred_at: datetime
    amount: Optional[Decimal] = None
    voided: bool
    void_reason: Optional[str] = None
    recorded_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[str] = None
    change_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
