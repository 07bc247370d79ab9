from typing import Optional
from sqlmodel import Field
from src.api.common.models.base import BaseModel, TimestampMixin
from src.api.common.constants.billing import (
    AbsencePolicy, BillingMode, absence_policy_enum, billing_mode_enum)
from src.api.common.utils.encryption import encrypt_data, decrypt_data


class Provider(BaseModel, TimestampMixin, table=True):
    """
    Service provider (tutor, studio) owning clients and contracts
    """
    id: Optional[int] = Field(default=None, primary_key=True)

    name: str
    # Display name on invoices
    business_name: Optional[str] = None

    # Defaults copied into a new contract's policy snapshot
    default_billing_mode: BillingMode = Field(
        default=BillingMode.PREPAID, sa_type=billing_mode_enum, nullable=False)
    default_absence_policy: AbsencePolicy = Field(
        default=AbsencePolicy.CARRY_OVER, sa_type=absence_policy_enum, nullable=False)

    # Payout account
    bank_name: Optional[str] = None
    account_holder: Optional[str] = None
    encrypted_account_number: Optional[str] = None

    @property
    def account_number(self) -> str:
        """Get decrypted account number"""
        return decrypt_data(self.encrypted_account_number)

    @account_number.setter
    def account_number(self, value: Optional[str]):
        """Set encrypted account number"""
        self.encrypted_account_number = encrypt_data(value) or None

    @property
    def display_name(self) -> str:
        return self.business_name or self.name

    def account_info(self) -> Optional[dict]:
        """Payout account as stored in invoice snapshots, None when incomplete"""
        if not (self.bank_name and self.encrypted_account_number):
            return None
        return {
            "bank_name": self.bank_name,
            "account_holder": self.account_holder or self.name,
            "encrypted_account_number": self.encrypted_account_number,
        }

    class Config:
        from_attributes = True
