from typing import Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, Column, JSON, DateTime
from src.api.common.models.base import BaseModel, TimestampMixin, money_field
from src.api.common.constants.billing import (
    PaymentStatus, SendStatus, payment_status_enum, send_status_enum)
from src.api.clients.models.client import Client
from src.api.contracts.models.contract import Contract


class Invoice(BaseModel, TimestampMixin, table=True):
    """
    Invoice for one billing slice (or calendar period) of a contract.

    year/month tag the month the invoice is due in, fixed at creation.
    """
    __table_args__ = (
        UniqueConstraint("client_id", "contract_id", "year", "month", "invoice_number",
                         name="uq_invoice_billing_key"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    client_id: int = Field(foreign_key="client.id", index=True)
    client: Client = Relationship()

    contract_id: int = Field(foreign_key="contract.id", index=True)
    contract: Contract = Relationship()

    year: int
    month: int = Field(ge=1, le=12)
    # 1 = initial invoice, N = Nth extension or Nth calendar period
    invoice_number: int = Field(default=1, ge=1)

    # Amounts
    base_amount: Decimal = money_field()
    auto_adjustment: Decimal = money_field()
    manual_adjustment: Decimal = money_field()
    manual_reason: Optional[str] = None
    final_amount: Decimal = money_field()

    # Billing period (calendar contracts)
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    planned_count: Optional[int] = None
    due_date: Optional[date] = Field(default=None, index=True)

    # Delivery
    send_status: SendStatus = Field(
        default=SendStatus.NOT_SENT, sa_type=send_status_enum, nullable=False, index=True)
    send_history: List[Dict[str, Any]] = Field(default=[], sa_column=Column(JSON))
    force_to_today_billing: bool = Field(default=False)

    # Payout account captured when the invoice was created
    account_snapshot: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    payment_status: PaymentStatus = Field(
        default=PaymentStatus.UNPAID, sa_type=payment_status_enum, nullable=False)
    paid_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    @property
    def last_send_entry(self) -> Optional[Dict[str, Any]]:
        return self.send_history[-1] if self.send_history else None

    @property
    def display_period(self) -> Optional[str]:
        """Service period shown to the client, frozen at the last send"""
        entry = self.last_send_entry
        return entry.get("display_period") if entry else None

    class Config:
        from_attributes = True
        arbitrary_types_allowed = True
