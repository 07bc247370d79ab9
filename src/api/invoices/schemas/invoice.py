from typing import Optional, List, Dict, Any
from datetime import datetime, date
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator
from src.api.common.constants.billing import PaymentStatus, SendChannel, SendStatus
from src.api.common.utils.encryption import decrypt_data


class AccountView(BaseModel):
    """Payout account as shown on an invoice"""
    bank_name: str
    account_holder: Optional[str] = None
    account_number: str


class InvoiceBase(BaseModel):
    """Base schema for invoice data"""
    client_id: int
    contract_id: int
    year: int
    month: int
    invoice_number: int

    class Config:
        from_attributes = True


class InvoiceRead(InvoiceBase):
    """Schema for reading invoice data"""
    id: int
    base_amount: Decimal
    auto_adjustment: Decimal
    manual_adjustment: Decimal
    manual_reason: Optional[str] = None
    final_amount: Decimal
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    planned_count: Optional[int] = None
    due_date: Optional[date] = None
    send_status: SendStatus
    send_history: List[Dict[str, Any]] = []
    display_period: Optional[str] = None
    force_to_today_billing: bool
    account_snapshot: Optional[AccountView] = None
    payment_status: PaymentStatus
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_validator('account_snapshot', mode='before')
    def decrypt_account(cls, v):
        """Snapshots store the account number encrypted"""
        if not v:
            return None
        if isinstance(v, dict) and "encrypted_account_number" in v:
            return {
                "bank_name": v.get("bank_name"),
                "account_holder": v.get("account_holder"),
                "account_number": decrypt_data(v.get("encrypted_account_number")),
            }
        return v


class InvoiceMonthGroup(BaseModel):
    """Invoices sharing a year/month tag"""
    year: int
    month: int
    invoices: List[InvoiceRead] = []


class InvoiceBuckets(BaseModel):
    """Invoices split by billing state"""
    in_progress: List[InvoiceRead] = []
    due_today: List[InvoiceRead] = []
    sent: List[InvoiceMonthGroup] = []


class SendableInvoices(BaseModel):
    """Unsent invoices split by whether the client has a phone to send to"""
    sendable: List[InvoiceRead] = []
    not_sendable: List[InvoiceRead] = []


class InvoiceSendRequest(BaseModel):
    """Schema for sending invoices"""
    invoice_ids: List[int] = Field(min_length=1)
    channel: SendChannel

    @field_validator('channel')
    def validate_channel(cls, v):
        """Invoices go out by text, messenger or link"""
        if v == SendChannel.CONTRACT_SEND:
            raise ValueError("contract_send is not an invoice channel")
        return v


class InvoiceSendResult(BaseModel):
    """Outcome of sending one invoice"""
    invoice_id: int
    client_name: str
    channel: SendChannel
    success: bool
    sent_at: datetime
    display_period: str
    sent_to: Optional[str] = None
    error: Optional[str] = None


class ManualAdjustmentRequest(BaseModel):
    """Schema for setting the manual adjustment of an invoice"""
    manual_adjustment: Decimal
    manual_reason: Optional[str] = None
