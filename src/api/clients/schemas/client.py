from typing import Optional
from pydantic import BaseModel, field_validator
from datetime import datetime
from src.api.common.utils.encryption import normalize_phone


class ClientBase(BaseModel):
    """Base schema for client data"""
    name: Optional[str] = None
    guardian_name: Optional[str] = None

    class Config:
        from_attributes = True


class ClientCreate(ClientBase):
    """Schema for creating a new client"""
    name: str
    phone: Optional[str] = None  # This will be encrypted in the model
    guardian_phone: Optional[str] = None

    @field_validator('name')
    def validate_name(cls, v):
        """Validate that name is not empty"""
        if not v or not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip()

    @field_validator('phone', 'guardian_phone')
    def validate_phone(cls, v):
        """Phone numbers are stored as digits only"""
        if v is None:
            return v
        digits = normalize_phone(v)
        if not digits:
            raise ValueError("Phone number must contain digits")
        return digits


class ClientRead(ClientBase):
    """Schema for reading client data"""
    id: int
    provider_id: int
    name: str
    phone: str  # This will be decrypted from the model
    guardian_phone: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ClientUpdate(ClientBase):
    """Schema for updating client data"""
    phone: Optional[str] = None
    guardian_phone: Optional[str] = None
    is_active: Optional[bool] = None
