from typing import TYPE_CHECKING, Optional
from datetime import date, datetime
from decimal import Decimal
from sqlmodel import Field, Relationship, DateTime
from src.api.common.models.base import BaseModel, TimestampMixin, money_field
from src.api.common.constants.billing import (
    AttendanceStatus, CONSUMING_STATUSES, attendance_status_enum)

if TYPE_CHECKING:
    from src.api.contracts.models.contract import Contract


class AttendanceRecord(BaseModel, TimestampMixin, table=True):
    """
    One attendance event consuming a session (or an amount) of a contract.
    Records are voided, never deleted.
    """
    id: Optional[int] = Field(default=None, primary_key=True)

    contract_id: int = Field(foreign_key="contract.id", index=True)
    contract: "Contract" = Relationship(back_populates="attendance_records")

    # Wall-clock business time, see normalize_datetime
    occurred_at: datetime = Field(index=True)
    status: AttendanceStatus = Field(sa_type=attendance_status_enum, nullable=False)
    # Makeup date for substitute records
    substitute_at: Optional[datetime] = None
    # Consumed amount, amount-based contracts only
    amount: Optional[Decimal] = money_field(default=None, nullable=True)

    voided: bool = Field(default=False, index=True)
    void_reason: Optional[str] = None

    memo_public: Optional[str] = None
    memo_internal: Optional[str] = None

    recorded_by: Optional[str] = None
    modified_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    modified_by: Optional[str] = None
    change_reason: Optional[str] = None

    @property
    def is_consuming(self) -> bool:
        return not self.voided and AttendanceStatus(self.status) in CONSUMING_STATUSES

    @property
    def effective_date(self) -> date:
        """Date the record counts in: the makeup date for substitutes"""
        if self.status == AttendanceStatus.SUBSTITUTE and self.substitute_at is not None:
            return self.substitute_at.date()
        return self.occurred_at.date()

    class Config:
        from_attributes = True
        arbitrary_types_allowed = True
