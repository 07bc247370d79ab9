from typing import Optional, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field


class NotificationRead(BaseModel):
    """Schema for reading notification data"""
    id: int
    provider_id: Optional[int] = None
    event: str
    payload: Dict[str, Any] = {}
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DeliveryErrorBase(BaseModel):
    """Base schema for delivery errors"""
    channel: str = Field(..., description="Side channel that failed")
    operation_type: str = Field(..., description="Operation that failed")
    entity_type: str = Field(..., description="Type of entity")
    entity_id: Optional[int] = Field(default=None, description="Related entity ID")
    error_message: str = Field(..., description="Human-readable error message")
    error_details: Optional[Dict[str, Any]] = Field(default={}, description="Additional error details")
    contract_id: Optional[int] = Field(default=None, description="Related contract ID")


class DeliveryErrorCreate(DeliveryErrorBase):
    """Schema for creating a new delivery error"""
    pass


class DeliveryErrorRead(DeliveryErrorBase):
    """Schema for reading delivery error data"""
    id: int
    is_resolved: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
