from typing import Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator, model_validator
from src.api.common.constants.billing import (
    AbsencePolicy, BillingMode, ContractStatus, ExtensionKind, PricingMode, Weekday)


class AccountInput(BaseModel):
    """Payout account given in plain text; encrypted when stored"""
    bank_name: str
    account_holder: Optional[str] = None
    account_number: str

    @field_validator('account_number')
    def validate_account_number(cls, v):
        """Validate that account number is not empty"""
        if not v or not v.strip():
            raise ValueError("Account number cannot be empty")
        return v.strip()


class ContractBase(BaseModel):
    """Base schema for contract data"""
    subject: str
    weekdays: List[Weekday] = []
    billing_day: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    class Config:
        from_attributes = True


class ContractCreate(ContractBase):
    """Schema for creating a new contract"""
    client_id: int
    pricing_mode: PricingMode
    base_price: Decimal = Field(ge=0)
    # Provider defaults apply when omitted
    billing_mode: Optional[BillingMode] = None
    absence_policy: Optional[AbsencePolicy] = None
    total_sessions: Optional[int] = Field(default=None, ge=1)
    per_session_amount: Optional[Decimal] = Field(default=None, ge=0)
    planned_count_override: Optional[int] = Field(default=None, ge=1)
    account_override: Optional[AccountInput] = None
    teacher_signature: Optional[str] = None
    client_signature: Optional[str] = None

    @model_validator(mode='after')
    def validate_pricing(self):
        """Check the fields each pricing mode depends on"""
        if self.pricing_mode == PricingMode.SESSIONS and not self.total_sessions:
            raise ValueError("Session contracts require total_sessions")
        if self.pricing_mode == PricingMode.CALENDAR:
            if not (self.start_date and self.end_date):
                raise ValueError("Calendar contracts require start_date and end_date")
            if not self.weekdays:
                raise ValueError("Calendar contracts require weekdays")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class ContractStatusUpdate(BaseModel):
    """Schema for moving a contract forward in its lifecycle"""
    status: ContractStatus
    teacher_signature: Optional[str] = None
    client_signature: Optional[str] = None


class ContractExtend(BaseModel):
    """Schema for extending a contract: one of sessions, amount or end date"""
    added_sessions: Optional[int] = Field(default=None, ge=1)
    added_amount: Optional[Decimal] = Field(default=None, gt=0)
    new_end_date: Optional[date] = None
    extension_price: Optional[Decimal] = Field(default=None, ge=0)
    extended_at: Optional[datetime] = None
    extended_by: Optional[str] = None


class ContractExtensionRead(BaseModel):
    """Schema for reading extension records"""
    id: int
    sequence: int
    kind: ExtensionKind
    added_sessions: Optional[int] = None
    added_amount: Optional[Decimal] = None
    extension_price: Optional[Decimal] = None
    previous_total: Optional[Decimal] = None
    new_total: Optional[Decimal] = None
    previous_end_date: Optional[date] = None
    new_end_date: Optional[date] = None
    extended_at: datetime
    extended_by: Optional[str] = None

    class Config:
        from_attributes = True


class ContractRead(ContractBase):
    """Schema for reading contract data"""
    id: int
    provider_id: int
    client_id: int
    pricing_mode: PricingMode
    billing_mode: BillingMode
    absence_policy: AbsencePolicy
    base_price: Decimal
    total_sessions: Optional[int] = None
    total_amount: Optional[Decimal] = None
    status: ContractStatus
    confirmed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    policy_snapshot: Dict[str, Any] = {}
    extensions: List[ContractExtensionRead] = []
    created_at: datetime
    updated_at: datetime


class UnprocessedAttendance(BaseModel):
    """Scheduled class dates without an attendance record"""
    contract_id: int
    dates: List[date]
