from typing import Optional, Dict, Any
from sqlmodel import Field, Column, JSON
from src.api.common.models.base import BaseModel, TimestampMixin


class Notification(BaseModel, TimestampMixin, table=True):
    """
    Outbox of provider notifications. Push delivery is handled elsewhere.
    """
    id: Optional[int] = Field(default=None, primary_key=True)

    provider_id: Optional[int] = Field(default=None, foreign_key="provider.id", index=True)
    event: str = Field(index=True)
    payload: Dict[str, Any] = Field(default={}, sa_column=Column(JSON))
    is_read: bool = Field(default=False, index=True)

    class Config:
        from_attributes = True


class DeliveryError(BaseModel, TimestampMixin, table=True):
    """
    Model to track failed best-effort side effects (SMS, notifications,
    account snapshots)
    """
    id: Optional[int] = Field(default=None, primary_key=True)

    channel: str = Field(index=True, description="Side channel that failed (e.g., 'sms', 'notification')")
    operation_type: str = Field(index=True, description="Operation that failed (e.g., 'send_invoice', 'billing_trigger')")

    entity_type: str = Field(description="Type of entity (e.g., 'invoice', 'contract', 'attendance')")
    entity_id: Optional[int] = Field(default=None, index=True)

    error_message: str = Field(description="Human-readable error message")
    error_details: Dict[str, Any] = Field(default={}, sa_column=Column(JSON), description="Additional error details as JSON")

    contract_id: Optional[int] = Field(default=None, foreign_key="contract.id")

    is_resolved: bool = Field(default=False, index=True, description="Whether the error has been resolved")

    class Config:
        from_attributes = True
