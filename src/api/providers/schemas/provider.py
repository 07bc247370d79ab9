from typing import Optional
from pydantic import BaseModel, field_validator
from datetime import datetime
from src.api.common.constants.billing import AbsencePolicy, BillingMode


class ProviderBase(BaseModel):
    """Base schema for provider data"""
    name: Optional[str] = None
    business_name: Optional[str] = None
    bank_name: Optional[str] = None
    account_holder: Optional[str] = None

    class Config:
        from_attributes = True


class ProviderCreate(ProviderBase):
    """Schema for creating a new provider"""
    name: str
    default_billing_mode: BillingMode = BillingMode.PREPAID
    default_absence_policy: AbsencePolicy = AbsencePolicy.CARRY_OVER
    account_number: Optional[str] = None  # This will be encrypted in the model

    @field_validator('name')
    def validate_name(cls, v):
        """Validate that name is not empty"""
        if not v or not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip()


class ProviderUpdate(ProviderBase):
    """Schema for updating provider data"""
    default_billing_mode: Optional[BillingMode] = None
    default_absence_policy: Optional[AbsencePolicy] = None
    account_number: Optional[str] = None


class ProviderRead(ProviderBase):
    """Schema for reading provider data"""
    id: int
    name: str
    default_billing_mode: BillingMode
    default_absence_policy: AbsencePolicy
    account_number: str  # This will be decrypted from the model
    created_at: datetime
    updated_at: datetime
