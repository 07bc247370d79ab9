from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field
from src.api.common.constants.billing import (
    AbsencePolicy, BillingMode, PricingMode, Weekday)


class AccountInfo(BaseModel):
    """Payout account shown on invoices (account number kept encrypted)"""
    model_config = ConfigDict(frozen=True)

    bank_name: str
    account_holder: Optional[str] = None
    encrypted_account_number: str


class PolicySnapshot(BaseModel):
    """
    Pricing terms captured when a contract is created.

    The snapshot is the only pricing source for invoices: later changes to
    provider defaults never reach an existing contract.
    """
    model_config = ConfigDict(frozen=True)

    billing_mode: BillingMode
    absence_policy: AbsencePolicy
    pricing_mode: PricingMode
    base_price: Decimal = Field(ge=0)
    total_sessions: Optional[int] = Field(default=None, ge=0)
    per_session_amount: Optional[Decimal] = Field(default=None, ge=0)
    planned_count_override: Optional[int] = Field(default=None, ge=0)
    weekdays: List[Weekday] = Field(default_factory=list)
    account_override: Optional[AccountInfo] = None
    captured_at: Optional[datetime] = None

    @property
    def is_prepaid(self) -> bool:
        return self.billing_mode == BillingMode.PREPAID

    def to_json(self) -> dict:
        return self.model_dump(mode="json")
